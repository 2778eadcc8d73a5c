""" Content hashes recorded in export manifests. """

import hashlib
from pathlib import Path
from typing import Dict, Union


CHUNK_SIZE = 65536  # 64KB
HASH_ALGO = "sha256"


def calculate_sha256(file_path: Union[str, Path]) -> str:
    # Stream the file so large decrypted media never sits in memory at once.
    sha256 = hashlib.sha256()
    with open(file_path, "rb") as f:
        for data in iter(lambda: f.read(CHUNK_SIZE), b""):
            sha256.update(data)
    return sha256.hexdigest()


def content_hash(file_path: Union[str, Path]) -> Dict[str, str]:
    """Return the ``{"algo", "value"}`` pair written next to exported files."""
    return {"algo": HASH_ALGO, "value": calculate_sha256(file_path)}
