"""Unit tests for ArchiveConfig."""

from pathlib import Path

import pytest

from anamneon.config import ArchiveConfig

ENV_VARS = (
    "ANAMNEON_DATA_DIR",
    "ANAMNEON_TEMP_TTL",
    "ANAMNEON_SESSION_TTL",
    "ANAMNEON_CRYPTO_WORKERS",
    "ANAMNEON_CRYPTO_TIMEOUT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults(tmp_path):
    config = ArchiveConfig(data_dir=tmp_path)
    assert config.db_path == tmp_path / "anamneon.db"
    assert config.media_dir == tmp_path / "media"
    assert config.profile_photo_dir == tmp_path / "profile_photos"
    assert config.temp_file_ttl == 300
    assert config.session_ttl is None
    assert config.crypto_workers == 4


def test_data_dir_expands_user():
    config = ArchiveConfig(data_dir="~/somewhere")
    assert "~" not in str(config.data_dir)


def test_from_env_default_location(monkeypatch, tmp_path):
    monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))
    config = ArchiveConfig.from_env()
    assert config.data_dir == tmp_path / ".anamneon"


def test_from_env_reads_variables(monkeypatch, tmp_path):
    monkeypatch.setenv("ANAMNEON_DATA_DIR", str(tmp_path / "env"))
    monkeypatch.setenv("ANAMNEON_TEMP_TTL", "30")
    monkeypatch.setenv("ANAMNEON_SESSION_TTL", "3600")
    monkeypatch.setenv("ANAMNEON_CRYPTO_WORKERS", "2")
    monkeypatch.setenv("ANAMNEON_CRYPTO_TIMEOUT", "12.5")

    config = ArchiveConfig.from_env()
    assert config.data_dir == tmp_path / "env"
    assert config.temp_file_ttl == 30.0
    assert config.session_ttl == 3600.0
    assert config.crypto_workers == 2
    assert config.crypto_timeout == 12.5


def test_explicit_data_dir_wins(monkeypatch, tmp_path):
    monkeypatch.setenv("ANAMNEON_DATA_DIR", str(tmp_path / "env"))
    config = ArchiveConfig.from_env(tmp_path / "explicit")
    assert config.data_dir == tmp_path / "explicit"


def test_from_env_rejects_non_numeric(monkeypatch, tmp_path):
    monkeypatch.setenv("ANAMNEON_TEMP_TTL", "soon")
    with pytest.raises(ValueError, match="ANAMNEON_TEMP_TTL"):
        ArchiveConfig.from_env(tmp_path)


def test_from_env_worker_floor(monkeypatch, tmp_path):
    monkeypatch.setenv("ANAMNEON_CRYPTO_WORKERS", "0")
    assert ArchiveConfig.from_env(tmp_path).crypto_workers == 1
