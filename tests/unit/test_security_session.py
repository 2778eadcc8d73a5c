"""
Unit tests for the in-memory session key store.
"""

import threading
from unittest.mock import patch

import pytest

from anamneon.core.exceptions import NotAuthenticatedError
from anamneon.security.session import InMemoryKeyStore, KeyStore


# ==============================================================================
# Fixtures
# ==============================================================================

@pytest.fixture
def store():
    """Returns a fresh store without a default TTL."""
    return InMemoryKeyStore()


# ==============================================================================
# Tests: Basic get/set/clear
# ==============================================================================

def test_set_and_get(store):
    store.set_key("u1", "pw1")
    assert store.get_key("u1") == "pw1"
    assert store.has_key("u1")
    assert store.get_key("u2") is None


def test_second_login_replaces_entry(store):
    store.set_key("u1", "old")
    store.set_key("u1", "new")
    assert store.get_key("u1") == "new"
    assert len(store) == 1


def test_clear_key_is_scoped(store):
    store.set_key("u1", "a")
    store.set_key("u2", "b")
    store.clear_key("u1")
    assert store.get_key("u1") is None
    assert store.get_key("u2") == "b"
    store.clear_key("missing")


def test_clear_all(store):
    store.set_key("u1", "a")
    store.set_key("u2", "b")
    store.clear_all()
    assert len(store) == 0


def test_require_key(store):
    with pytest.raises(NotAuthenticatedError):
        store.require_key("u1")
    store.set_key("u1", "a")
    assert store.require_key("u1") == "a"


def test_is_a_keystore(store):
    assert isinstance(store, KeyStore)


# ==============================================================================
# Tests: Expiry
# ==============================================================================

def test_entry_expires():
    store = InMemoryKeyStore(ttl_seconds=10)
    with patch("anamneon.security.session.time.time", return_value=1000.0):
        store.set_key("u1", "a")
    with patch("anamneon.security.session.time.time", return_value=1005.0):
        assert store.get_key("u1") == "a"
    with patch("anamneon.security.session.time.time", return_value=1011.0):
        assert store.get_key("u1") is None
        assert store.active_users() == []


def test_per_call_ttl_overrides_default(store):
    with patch("anamneon.security.session.time.time", return_value=0.0):
        store.set_key("u1", "a", ttl_seconds=1)
    with patch("anamneon.security.session.time.time", return_value=2.0):
        assert store.get_key("u1") is None


def test_extend():
    store = InMemoryKeyStore(ttl_seconds=10)
    with patch("anamneon.security.session.time.time", return_value=0.0):
        store.set_key("u1", "a")
        store.extend("u1", 10)
    with patch("anamneon.security.session.time.time", return_value=15.0):
        assert store.get_key("u1") == "a"


def test_extend_unknown_user(store):
    with pytest.raises(NotAuthenticatedError):
        store.extend("ghost", 5)


def test_concurrent_access(store):
    def worker(n):
        for i in range(200):
            store.set_key(f"u{n}", str(i))
            store.get_key(f"u{n}")

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert sorted(store.active_users()) == sorted(f"u{n}" for n in range(8))
