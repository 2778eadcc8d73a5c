"""
Unit tests for one-way login password hashes.
"""

import hashlib

import pytest

from anamneon.security import kdf
from anamneon.security.passwords import HASH_LENGTH, SALT_BYTES, hash_password, verify_password


def test_hash_format():
    stored = hash_password("hunter2")
    salt, digest = stored.split(":")
    assert len(salt) == SALT_BYTES * 2
    assert len(digest) == HASH_LENGTH * 2
    int(salt, 16)
    int(digest, 16)


def test_hash_uses_hex_salt_string_as_kdf_salt():
    stored = hash_password("pw")
    salt, digest = stored.split(":")
    expected = hashlib.pbkdf2_hmac("sha512", b"pw", salt.encode(), kdf.ITERATIONS, 64).hex()
    assert digest == expected


def test_hash_is_salted():
    assert hash_password("pw") != hash_password("pw")


def test_verify_correct_and_wrong():
    stored = hash_password("correct horse")
    assert verify_password("correct horse", stored)
    assert not verify_password("wrong horse", stored)


def test_verify_accepts_uppercase_digest():
    salt, digest = hash_password("pw").split(":")
    assert verify_password("pw", f"{salt}:{digest.upper()}")


@pytest.mark.parametrize("stored", ["", None, "nocolon", "a:b:c", ":abc", "abc:"])
def test_verify_malformed_stored_value(stored):
    assert verify_password("pw", stored) is False
