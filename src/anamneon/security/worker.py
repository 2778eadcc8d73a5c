"""Async front for the CPU-bound crypto calls.

PBKDF2 at 100k iterations takes long enough to stall an event loop, so every
derivation-bearing call is pushed onto a bounded thread pool. Each call may be
bounded by a timeout; on expiry ``asyncio.TimeoutError`` is raised to the
awaiting caller (the pool thread itself runs to completion).
"""
from __future__ import annotations

import asyncio
import concurrent.futures as _fut
import functools
from typing import Optional

from . import crypto, encryption, kdf, passwords


class CryptoWorker:
    def __init__(self, max_workers: int = 4, timeout: Optional[float] = None):
        self.max_workers = max(1, int(max_workers))
        self.timeout = timeout
        self._executor = _fut.ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="anamneon-crypto"
        )

    async def run(self, func, *args, timeout: Optional[float] = None, **kwargs):
        """Run ``func(*args, **kwargs)`` in the pool and await its result."""
        loop = asyncio.get_running_loop()
        call = functools.partial(func, *args, **kwargs)
        future = loop.run_in_executor(self._executor, call)
        limit = timeout if timeout is not None else self.timeout
        if limit is None:
            return await future
        return await asyncio.wait_for(future, limit)

    async def derive_key(self, password, salt: bytes, timeout: Optional[float] = None) -> bytes:
        return await self.run(kdf.derive_key, password, salt, timeout=timeout)

    async def hash_password(self, password: str, timeout: Optional[float] = None) -> str:
        return await self.run(passwords.hash_password, password, timeout=timeout)

    async def verify_password(self, password: str, stored: str, timeout: Optional[float] = None) -> bool:
        return await self.run(passwords.verify_password, password, stored, timeout=timeout)

    async def encrypt_text(self, plaintext: str, password: str, timeout: Optional[float] = None) -> str:
        return await self.run(encryption.encrypt_text, plaintext, password, timeout=timeout)

    async def decrypt_text(self, blob: str, password: str, timeout: Optional[float] = None) -> str:
        return await self.run(encryption.decrypt_text, blob, password, timeout=timeout)

    async def encrypt_file(self, in_path, out_path, password: str, timeout: Optional[float] = None) -> None:
        await self.run(crypto.encrypt_file_stream, in_path, out_path, password, timeout=timeout)

    async def decrypt_file(self, in_path, out_path, password: str, timeout: Optional[float] = None) -> None:
        await self.run(crypto.decrypt_file_stream, in_path, out_path, password, timeout=timeout)

    async def encrypt_bytes(self, data: bytes, out_path, password: str, timeout: Optional[float] = None) -> None:
        await self.run(crypto.encrypt_bytes_to_file, data, out_path, password, timeout=timeout)

    async def decrypt_bytes(self, in_path, password: str, timeout: Optional[float] = None) -> bytes:
        return await self.run(crypto.decrypt_file_to_bytes, in_path, password, timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
