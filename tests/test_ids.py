from __future__ import annotations

import random
import string

import pytest

from codecube.ids import GenerationError, generate, generate_unique
from fakes import MemoryStore

ALPHABET = set(string.ascii_lowercase + string.digits)


class _ScriptedRng:
    def __init__(self, ids: list[str]) -> None:
        self._chars = iter("".join(ids))

    def choice(self, alphabet: str) -> str:
        return next(self._chars)


class _DeadRng:
    def choice(self, alphabet: str) -> str:
        raise OSError("getrandom failed")


def test_generate_is_eight_chars_from_alphabet() -> None:
    for _ in range(500):
        paste_id = generate()
        assert len(paste_id) == 8
        assert set(paste_id) <= ALPHABET


def test_generate_sequence_has_no_unexpected_collisions() -> None:
    # 20k draws over 36**8 values: expected collisions are ~7e-5.
    ids = [generate() for _ in range(20_000)]
    assert len(set(ids)) == len(ids)


def test_generate_covers_whole_alphabet() -> None:
    seen = set("".join(generate() for _ in range(2_000)))
    assert seen == ALPHABET


def test_generate_accepts_seeded_rng() -> None:
    assert generate(rng=random.Random(7)) == generate(rng=random.Random(7))


def test_generate_wraps_randomness_failure() -> None:
    with pytest.raises(GenerationError):
        generate(rng=_DeadRng())


def test_generate_rejects_bad_arguments() -> None:
    with pytest.raises(GenerationError):
        generate(length=0)
    with pytest.raises(GenerationError):
        generate(alphabet="")


def test_generate_unique_skips_taken_ids() -> None:
    store = MemoryStore()
    store.set("aaaaaaaa", "old")
    rng = _ScriptedRng(["aaaaaaaa", "bbbbbbbb"])

    assert generate_unique(store, attempts=3, rng=rng) == "bbbbbbbb"


def test_generate_unique_gives_up_after_attempts() -> None:
    store = MemoryStore()
    store.set("aaaaaaaa", "old")
    rng = _ScriptedRng(["aaaaaaaa"] * 3)

    with pytest.raises(GenerationError):
        generate_unique(store, attempts=3, rng=rng)


def test_generate_unique_without_attempts_skips_lookup() -> None:
    store = MemoryStore()
    store.set("aaaaaaaa", "old")
    rng = _ScriptedRng(["aaaaaaaa"])

    assert generate_unique(store, attempts=0, rng=rng) == "aaaaaaaa"
