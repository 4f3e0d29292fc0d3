from __future__ import annotations

import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(__file__))

from codecube.utils import make_cache_dirs  # noqa: E402
from fakes import MemoryStore  # noqa: E402


@pytest.fixture
def cache_dirs(tmp_path):
    return make_cache_dirs(str(tmp_path / "cache"))


@pytest.fixture
def memory_store():
    return MemoryStore()
