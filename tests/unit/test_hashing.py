"""Unit tests for export content hashes."""

import hashlib
from pathlib import Path

from anamneon.core import hashing


def test_calculate_sha256_file(tmp_path: Path) -> None:
    """Hashing a file should match manual hashlib computation."""
    file_path = tmp_path / "sample.txt"
    content = b"anamneon test data"
    file_path.write_bytes(content)

    assert hashing.calculate_sha256(file_path) == hashlib.sha256(content).hexdigest()


def test_calculate_sha256_spans_chunks(tmp_path: Path) -> None:
    content = b"x" * (hashing.CHUNK_SIZE * 3 + 5)
    file_path = tmp_path / "big.bin"
    file_path.write_bytes(content)

    assert hashing.calculate_sha256(file_path) == hashlib.sha256(content).hexdigest()


def test_content_hash_shape(tmp_path: Path) -> None:
    file_path = tmp_path / "empty.bin"
    file_path.write_bytes(b"")

    assert hashing.content_hash(file_path) == {
        "algo": "sha256",
        "value": hashlib.sha256(b"").hexdigest(),
    }
