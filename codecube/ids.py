import secrets
from typing import Any, Optional

from codecube.config import ID_ALPHABET, ID_LENGTH
from codecube.utils import log_error


class GenerationError(Exception):
    """Raised when no usable identifier could be produced."""


def generate(length: int = ID_LENGTH, alphabet: str = ID_ALPHABET, rng: Optional[Any] = None) -> str:
    if length <= 0 or not alphabet:
        raise GenerationError(f"cannot draw {length} symbols from alphabet {alphabet!r}")
    source = rng if rng is not None else secrets.SystemRandom()
    try:
        return "".join(source.choice(alphabet) for _ in range(length))
    except (OSError, NotImplementedError) as exc:
        raise GenerationError(f"randomness source unavailable: {exc}") from exc


def generate_unique(store: Any, attempts: int, rng: Optional[Any] = None) -> str:
    """Draw an identifier the store does not hold yet.

    With ``attempts <= 0`` the store is not consulted and a colliding id
    simply overwrites the older paste. Otherwise up to ``attempts`` ids are
    drawn; ``GenerationError`` is raised if every one of them is taken.
    Store errors from the membership check propagate unchanged.
    """
    if attempts <= 0:
        return generate(rng=rng)
    for attempt in range(1, attempts + 1):
        paste_id = generate(rng=rng)
        if not store.contains(paste_id):
            return paste_id
        log_error(f"identifier collision on attempt {attempt}/{attempts}")
    raise GenerationError(f"no free identifier after {attempts} attempts")
