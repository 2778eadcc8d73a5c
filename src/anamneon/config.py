"""Runtime settings for the archive core."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional
import os


def _env_float(name: str) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return None
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


@dataclass
class ArchiveConfig:
    """
    Where the archive lives and how long plaintext and keys may linger.

    - ``data_dir`` holds the SQLite store and the ``media`` directory of
      encrypted file bodies.
    - ``temp_file_ttl`` is how many seconds a file decrypted for viewing stays
      on disk before it is deleted.
    - ``session_ttl`` bounds how long a cached login key stays valid; None
      keeps it until logout or shutdown.
    - ``crypto_workers`` / ``crypto_timeout`` size the key-derivation pool and
      bound each call.
    """

    data_dir: Path
    db_filename: str = "anamneon.db"
    media_dirname: str = "media"
    profile_photo_dirname: str = "profile_photos"
    temp_file_ttl: float = 5 * 60
    session_ttl: Optional[float] = None
    crypto_workers: int = 4
    crypto_timeout: Optional[float] = None

    def __post_init__(self):
        self.data_dir = Path(self.data_dir).expanduser()

    @property
    def db_path(self) -> Path:
        return self.data_dir / self.db_filename

    @property
    def media_dir(self) -> Path:
        return self.data_dir / self.media_dirname

    @property
    def profile_photo_dir(self) -> Path:
        return self.data_dir / self.profile_photo_dirname

    @classmethod
    def from_env(cls, data_dir: Optional[str | Path] = None) -> "ArchiveConfig":
        """
        Build a config from ``ANAMNEON_*`` environment variables.

        ``ANAMNEON_DATA_DIR`` (default ``~/.anamneon``), ``ANAMNEON_TEMP_TTL``,
        ``ANAMNEON_SESSION_TTL``, ``ANAMNEON_CRYPTO_WORKERS`` and
        ``ANAMNEON_CRYPTO_TIMEOUT``. An explicit ``data_dir`` wins over the
        environment.
        """
        base = data_dir or os.getenv("ANAMNEON_DATA_DIR") or Path.home() / ".anamneon"
        config = cls(data_dir=Path(base))

        temp_ttl = _env_float("ANAMNEON_TEMP_TTL")
        if temp_ttl is not None:
            config.temp_file_ttl = temp_ttl
        config.session_ttl = _env_float("ANAMNEON_SESSION_TTL")
        config.crypto_timeout = _env_float("ANAMNEON_CRYPTO_TIMEOUT")
        workers = _env_float("ANAMNEON_CRYPTO_WORKERS")
        if workers is not None:
            config.crypto_workers = max(1, int(workers))
        return config
