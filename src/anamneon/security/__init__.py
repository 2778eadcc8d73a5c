"""Security helpers: key derivation, password hashing and ciphers for Anamneon.

This package provides:
- PBKDF2-SHA512 key derivation with per-blob / per-file salts
- one-way login password hashes
- AES-256-GCM text blobs and streaming file encryption
- the in-memory session key store and an async crypto worker pool
"""

from .kdf import generate_salt, derive_key
from .passwords import hash_password, verify_password
from .encryption import encrypt_text, decrypt_text, is_encrypted_blob
from .crypto import encrypt_file_stream, decrypt_file_stream, encrypted_path_for
from .session import KeyStore, InMemoryKeyStore
from .worker import CryptoWorker

__all__ = [
    "generate_salt",
    "derive_key",
    "hash_password",
    "verify_password",
    "encrypt_text",
    "decrypt_text",
    "is_encrypted_blob",
    "encrypt_file_stream",
    "decrypt_file_stream",
    "encrypted_path_for",
    "KeyStore",
    "InMemoryKeyStore",
    "CryptoWorker",
]
