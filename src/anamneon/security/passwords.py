"""One-way login password storage.

Stored format is ``hexsalt:hexhash``: 16 random bytes hex-encoded as the salt,
PBKDF2-HMAC-SHA512 over the password with that hex string as salt input, 64
bytes of output. The result can verify a password but never decrypt anything;
the ciphers take the raw password from the session key store instead.
"""
import hmac
import os

from .kdf import pbkdf2_sha512

SALT_BYTES = 16
HASH_LENGTH = 64


def hash_password(password: str) -> str:
    salt = os.urandom(SALT_BYTES).hex()
    digest = pbkdf2_sha512(password, salt, HASH_LENGTH).hex()
    return f"{salt}:{digest}"


def verify_password(password: str, stored: str) -> bool:
    """Check ``password`` against a value produced by :func:`hash_password`.

    A malformed stored value verifies as ``False`` rather than raising.
    """
    if not stored or stored.count(":") != 1:
        return False
    salt, expected = stored.split(":")
    if not salt or not expected:
        return False
    candidate = pbkdf2_sha512(password, salt, HASH_LENGTH).hex()
    return hmac.compare_digest(candidate, expected.lower())
