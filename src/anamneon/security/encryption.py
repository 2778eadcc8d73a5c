"""
Text cipher for short record fields (diary titles/content, file titles).

Every call derives a fresh key from the password and a new random salt, so a
blob is self-describing and decryptable on its own given the password:

    hex(salt):hex(iv):hex(authTag):hex(ciphertext)

- salt: 64 bytes, PBKDF2-HMAC-SHA512 input (:mod:`anamneon.security.kdf`)
- iv: 16 random bytes
- AES-256-GCM, 16-byte tag

Decryption verifies the tag before any plaintext is returned. A wrong password
and tampered ciphertext are indistinguishable; both raise
:class:`AuthenticationError`.
"""

from __future__ import annotations

import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .kdf import SALT_LENGTH, derive_key, generate_salt
from ..core.exceptions import AuthenticationError, FormatError

IV_LENGTH = 16
TAG_LENGTH = 16
FIELD_SEPARATOR = ":"


def encrypt_text(plaintext: str, password: str) -> str:
    """Encrypt ``plaintext`` under ``password`` and return a blob string."""
    salt = generate_salt()
    key = derive_key(password, salt)
    iv = os.urandom(IV_LENGTH)

    # AESGCM returns ciphertext || tag; the blob stores them as separate fields.
    sealed = AESGCM(key).encrypt(iv, plaintext.encode("utf-8"), None)
    ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]

    return FIELD_SEPARATOR.join((salt.hex(), iv.hex(), tag.hex(), ciphertext.hex()))


def _split_blob(blob: str):
    if not isinstance(blob, str):
        raise FormatError("encrypted blob must be a string")
    parts = blob.split(FIELD_SEPARATOR)
    if len(parts) != 4:
        raise FormatError(f"encrypted blob must have 4 fields, got {len(parts)}")

    try:
        salt, iv, tag, ciphertext = (bytes.fromhex(p) for p in parts)
    except ValueError as e:
        raise FormatError(f"encrypted blob is not valid hex: {e}") from e

    if len(salt) != SALT_LENGTH or len(iv) != IV_LENGTH or len(tag) != TAG_LENGTH:
        raise FormatError("encrypted blob has wrong salt/iv/tag length")
    return salt, iv, tag, ciphertext


def decrypt_text(blob: str, password: str) -> str:
    """Verify and decrypt a blob produced by :func:`encrypt_text`."""
    salt, iv, tag, ciphertext = _split_blob(blob)
    key = derive_key(password, salt)
    try:
        raw = AESGCM(key).decrypt(iv, ciphertext + tag, None)
    except InvalidTag as e:
        raise AuthenticationError("authentication tag mismatch") from e

    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise FormatError("decrypted payload is not UTF-8 text") from e


def is_encrypted_blob(value) -> bool:
    """Return True when ``value`` has the shape of a text blob (no key needed)."""
    try:
        _split_blob(value)
    except FormatError:
        return False
    return True
