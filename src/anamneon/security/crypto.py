"""Streaming AES-256-GCM file encryption for uploaded media and documents.

Layout of an encrypted file (no header fields beyond these):
- 64 bytes: PBKDF2 salt
- 16 bytes: GCM IV
- N bytes: ciphertext (same length as the plaintext)
- 16 bytes: GCM auth tag

The tag is only known once the whole plaintext has gone through the cipher, so
it is appended after finalisation. On decryption it is read first by seeking
to the end, then the body is streamed. Output is written to a temporary
sibling and renamed into place, so callers either see the complete file or
nothing at all.
"""
import contextlib
import logging
import os
import tempfile
from pathlib import Path

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .kdf import SALT_LENGTH, derive_key, generate_salt
from .encryption import IV_LENGTH, TAG_LENGTH
from ..core.exceptions import AuthenticationError, FormatError

logger = logging.getLogger(__name__)

ENCRYPTED_SUFFIX = ".enc"
HEADER_LENGTH = SALT_LENGTH + IV_LENGTH
MIN_ENCRYPTED_SIZE = HEADER_LENGTH + TAG_LENGTH
CHUNK_SIZE = 64 * 1024


def encrypted_path_for(path) -> Path:
    """``photo.jpg`` -> ``photo.jpg.enc``"""
    path = Path(path)
    return path.with_name(path.name + ENCRYPTED_SUFFIX)


def plain_name(path) -> str:
    """Strip the reserved suffix from an encrypted file's name."""
    name = Path(path).name
    if name.endswith(ENCRYPTED_SUFFIX):
        return name[: -len(ENCRYPTED_SUFFIX)]
    return name


@contextlib.contextmanager
def _atomic_output(out_path):
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{out_path.name}.", suffix=".part", dir=out_path.parent)
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as outf:
            yield outf
        os.replace(tmp_path, out_path)
    except BaseException:
        with contextlib.suppress(OSError):
            tmp_path.unlink()
        raise


def encrypt_file_stream(in_path, out_path, password: str, chunk_size: int = CHUNK_SIZE) -> None:
    salt = generate_salt()
    key = derive_key(password, salt)
    iv = os.urandom(IV_LENGTH)
    encryptor = Cipher(algorithms.AES(key), modes.GCM(iv)).encryptor()

    with open(in_path, "rb") as inf, _atomic_output(out_path) as outf:
        outf.write(salt)
        outf.write(iv)
        while True:
            chunk = inf.read(chunk_size)
            if not chunk:
                break
            outf.write(encryptor.update(chunk))
        outf.write(encryptor.finalize())
        outf.write(encryptor.tag)

    logger.debug("encrypted %s -> %s", Path(in_path).name, Path(out_path).name)


def decrypt_file_stream(in_path, out_path, password: str, chunk_size: int = CHUNK_SIZE) -> None:
    size = os.path.getsize(in_path)
    if size < MIN_ENCRYPTED_SIZE:
        raise FormatError(
            f"encrypted file too small: {size} bytes, need at least {MIN_ENCRYPTED_SIZE}"
        )

    with open(in_path, "rb") as inf:
        salt = inf.read(SALT_LENGTH)
        iv = inf.read(IV_LENGTH)
        inf.seek(size - TAG_LENGTH)
        tag = inf.read(TAG_LENGTH)
        inf.seek(HEADER_LENGTH)

        key = derive_key(password, salt)
        decryptor = Cipher(algorithms.AES(key), modes.GCM(iv, tag)).decryptor()

        remaining = size - MIN_ENCRYPTED_SIZE
        try:
            with _atomic_output(out_path) as outf:
                while remaining > 0:
                    chunk = inf.read(min(chunk_size, remaining))
                    if not chunk:
                        raise FormatError("encrypted file truncated while reading")
                    remaining -= len(chunk)
                    outf.write(decryptor.update(chunk))
                outf.write(decryptor.finalize())
        except InvalidTag as e:
            raise AuthenticationError("file authentication tag mismatch") from e

    logger.debug("decrypted %s -> %s", Path(in_path).name, Path(out_path).name)


def encrypt_bytes_to_file(data: bytes, out_path, password: str) -> None:
    """Seal an in-memory payload into the encrypted file layout."""
    salt = generate_salt()
    key = derive_key(password, salt)
    iv = os.urandom(IV_LENGTH)
    # AESGCM output is ciphertext || tag, which is already the on-disk tail
    sealed = AESGCM(key).encrypt(iv, bytes(data), None)

    with _atomic_output(out_path) as outf:
        outf.write(salt)
        outf.write(iv)
        outf.write(sealed)


def decrypt_file_to_bytes(in_path, password: str) -> bytes:
    """Open an encrypted file straight into memory (small payloads only)."""
    raw = Path(in_path).read_bytes()
    if len(raw) < MIN_ENCRYPTED_SIZE:
        raise FormatError(
            f"encrypted file too small: {len(raw)} bytes, need at least {MIN_ENCRYPTED_SIZE}"
        )
    salt, iv = raw[:SALT_LENGTH], raw[SALT_LENGTH:HEADER_LENGTH]
    key = derive_key(password, salt)
    try:
        return AESGCM(key).decrypt(iv, raw[HEADER_LENGTH:], None)
    except InvalidTag as e:
        raise AuthenticationError("file authentication tag mismatch") from e
