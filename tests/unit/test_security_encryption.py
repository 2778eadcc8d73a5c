"""
Unit tests for the text blob cipher.
"""

import pytest

from anamneon.core.exceptions import AuthenticationError, FormatError
from anamneon.security.encryption import (
    IV_LENGTH,
    TAG_LENGTH,
    decrypt_text,
    encrypt_text,
    is_encrypted_blob,
)
from anamneon.security.kdf import SALT_LENGTH


# ==============================================================================
# Tests: Round trip
# ==============================================================================

@pytest.mark.parametrize("plaintext", ["", "hello", "ünïcødé ✓ 日本語", "x" * 10_000])
def test_roundtrip(plaintext):
    blob = encrypt_text(plaintext, "pw")
    assert decrypt_text(blob, "pw") == plaintext


def test_blob_layout():
    blob = encrypt_text("abc", "pw")
    salt, iv, tag, ct = blob.split(":")
    assert len(bytes.fromhex(salt)) == SALT_LENGTH
    assert len(bytes.fromhex(iv)) == IV_LENGTH
    assert len(bytes.fromhex(tag)) == TAG_LENGTH
    assert len(bytes.fromhex(ct)) == 3


def test_encryption_is_not_deterministic():
    a = encrypt_text("same", "pw")
    b = encrypt_text("same", "pw")
    assert a != b
    assert a.split(":")[0] != b.split(":")[0]


# ==============================================================================
# Tests: Authentication failures
# ==============================================================================

def test_wrong_password():
    blob = encrypt_text("secret", "pw")
    with pytest.raises(AuthenticationError):
        decrypt_text(blob, "other")


@pytest.mark.parametrize("field", [0, 1, 2, 3])
def test_tampered_field(field):
    parts = encrypt_text("secret text", "pw").split(":")
    raw = bytearray(bytes.fromhex(parts[field]))
    raw[0] ^= 0x01
    parts[field] = raw.hex()
    with pytest.raises(AuthenticationError):
        decrypt_text(":".join(parts), "pw")


# ==============================================================================
# Tests: Malformed blobs
# ==============================================================================

@pytest.mark.parametrize(
    "blob",
    [
        "",
        "abc",
        "a:b:c",
        "a:b:c:d:e",
        "zz:zz:zz:zz",
        "00:00:00:00",
    ],
)
def test_malformed_blob(blob):
    with pytest.raises(FormatError):
        decrypt_text(blob, "pw")


def test_non_string_blob():
    with pytest.raises(FormatError):
        decrypt_text(None, "pw")


def test_is_encrypted_blob():
    assert is_encrypted_blob(encrypt_text("x", "pw"))
    assert not is_encrypted_blob("plain title")
    assert not is_encrypted_blob(None)
    assert not is_encrypted_blob("a:b:c:d")
