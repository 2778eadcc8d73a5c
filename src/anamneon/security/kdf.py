"""PBKDF2-SHA512 key derivation shared by the password hasher and both ciphers."""
import os
from typing import Optional, Union

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

ITERATIONS = 100_000
KEY_LENGTH = 32
SALT_LENGTH = 64


def generate_salt(length: int = SALT_LENGTH) -> bytes:
    """Return a cryptographically secure random salt."""
    return os.urandom(length)


def pbkdf2_sha512(
    password: Union[bytes, str],
    salt: Union[bytes, str],
    length: int,
    iterations: Optional[int] = None,
) -> bytes:
    """
    Run PBKDF2-HMAC-SHA512 and return the raw derived bytes.

    ``iterations`` defaults to the module-level ``ITERATIONS`` at call time.
    """
    if isinstance(password, str):
        password = password.encode("utf-8")
    if isinstance(salt, str):
        salt = salt.encode("utf-8")

    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA512(),
        length=length,
        salt=salt,
        iterations=iterations if iterations is not None else ITERATIONS,
    )
    return kdf.derive(password)


def derive_key(password: Union[bytes, str], salt: bytes, key_len: int = KEY_LENGTH) -> bytes:
    """Derive an AES-256 key for one blob or file from the password and its salt."""
    return pbkdf2_sha512(password, salt, key_len)

