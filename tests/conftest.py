"""Shared fixtures for the Anamneon test suite."""

import pytest

from anamneon.config import ArchiveConfig
from anamneon.database.connection import DatabaseConnection
from anamneon.security import kdf

# Production uses 100k PBKDF2 rounds; tests only need the algorithm to agree
# with itself.
FAST_ITERATIONS = 1000


@pytest.fixture(autouse=True)
def fast_kdf(monkeypatch):
    monkeypatch.setattr(kdf, "ITERATIONS", FAST_ITERATIONS)


@pytest.fixture
def db(tmp_path):
    """An initialized store in a temp directory."""
    conn = DatabaseConnection(tmp_path / "anamneon.db")
    conn.initialize()
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture
def config(tmp_path):
    return ArchiveConfig(data_dir=tmp_path / "data", crypto_workers=2)
