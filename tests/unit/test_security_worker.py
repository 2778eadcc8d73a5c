"""
Unit tests for the async crypto worker pool.
"""

import asyncio
import threading
import time

import pytest

from anamneon.core.exceptions import AuthenticationError
from anamneon.security.passwords import hash_password
from anamneon.security.worker import CryptoWorker


@pytest.fixture
def worker():
    w = CryptoWorker(max_workers=2)
    yield w
    w.shutdown()


@pytest.mark.asyncio
async def test_text_roundtrip(worker):
    blob = await worker.encrypt_text("hello", "pw")
    assert await worker.decrypt_text(blob, "pw") == "hello"


@pytest.mark.asyncio
async def test_errors_propagate(worker):
    blob = await worker.encrypt_text("hello", "pw")
    with pytest.raises(AuthenticationError):
        await worker.decrypt_text(blob, "wrong")


@pytest.mark.asyncio
async def test_password_hash_and_verify(worker):
    stored = await worker.hash_password("pw")
    assert await worker.verify_password("pw", stored)
    assert not await worker.verify_password("nope", hash_password("pw"))


@pytest.mark.asyncio
async def test_file_roundtrip(worker, tmp_path):
    src = tmp_path / "a.bin"
    src.write_bytes(b"payload")
    await worker.encrypt_file(src, tmp_path / "a.bin.enc", "pw")
    await worker.decrypt_file(tmp_path / "a.bin.enc", tmp_path / "b.bin", "pw")
    assert (tmp_path / "b.bin").read_bytes() == b"payload"


@pytest.mark.asyncio
async def test_bytes_roundtrip(worker, tmp_path):
    target = tmp_path / "p.enc"
    await worker.encrypt_bytes(b"avatar", target, "pw")
    assert await worker.decrypt_bytes(target, "pw") == b"avatar"
    with pytest.raises(AuthenticationError):
        await worker.decrypt_bytes(target, "wrong")


@pytest.mark.asyncio
async def test_derive_key(worker):
    key = await worker.derive_key("pw", b"s" * 64)
    assert len(key) == 32


@pytest.mark.asyncio
async def test_runs_off_the_event_loop_thread(worker):
    loop_thread = threading.get_ident()
    ident = await worker.run(threading.get_ident)
    assert ident != loop_thread


@pytest.mark.asyncio
async def test_timeout(worker):
    with pytest.raises(asyncio.TimeoutError):
        await worker.run(time.sleep, 0.5, timeout=0.05)


@pytest.mark.asyncio
async def test_default_timeout_from_constructor():
    w = CryptoWorker(max_workers=1, timeout=0.05)
    try:
        with pytest.raises(asyncio.TimeoutError):
            await w.run(time.sleep, 0.5)
    finally:
        w.shutdown()


def test_max_workers_floor():
    w = CryptoWorker(max_workers=0)
    assert w.max_workers == 1
    w.shutdown()
