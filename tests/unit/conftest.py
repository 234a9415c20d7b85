"""
Shared fixtures for unit tests.
"""
import os
import time

import pytest

from villager_voice.persist.sqlite_store import SqliteBackend


@pytest.fixture
def sqlite_backend(tmp_path):
    """Create a temporary SqliteBackend instance."""
    b = SqliteBackend(tmp_path / "cache.db")
    yield b
    b.close()


@pytest.fixture
def age_file():
    """Set a file's last-access time to ``seconds`` in the past."""
    def _age(path, seconds: float):
        past = time.time() - seconds
        os.utime(path, (past, past))
    return _age
