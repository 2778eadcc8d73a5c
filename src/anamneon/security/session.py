"""In-memory session key store: ``user_id -> key material`` for logged-in users.

The key material is the verified login password. Ciphers derive a fresh key
from it plus the salt embedded in each blob or file, so nothing is derived
here. Entries live for the login session (optionally bounded by a TTL) and are
never written to disk.

`KeyStore` is the interface consumers depend on; `InMemoryKeyStore` is the
default implementation.
"""
from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

from ..core.exceptions import NotAuthenticatedError


class KeyStore(ABC):
    @abstractmethod
    def set_key(self, user_id: str, key_material: str) -> None:
        """Store or overwrite the key material for ``user_id``."""

    @abstractmethod
    def get_key(self, user_id: str) -> Optional[str]:
        """Return the key material for ``user_id`` or None."""

    @abstractmethod
    def clear_key(self, user_id: str) -> None:
        """Forget the key material for ``user_id`` (no-op if absent)."""

    @abstractmethod
    def clear_all(self) -> None:
        """Forget every cached entry."""

    def require_key(self, user_id: str) -> str:
        """Return the key material or raise :class:`NotAuthenticatedError`."""
        key = self.get_key(user_id)
        if key is None:
            raise NotAuthenticatedError("user is not authenticated for encryption")
        return key

    def has_key(self, user_id: str) -> bool:
        return self.get_key(user_id) is not None


class InMemoryKeyStore(KeyStore):
    """Lock-guarded dict of session keys with optional auto-expiry.

    Args:
        ttl_seconds: lifetime of an entry after ``set_key``; None keeps entries
            until cleared
    """

    def __init__(self, ttl_seconds: Optional[float] = None):
        self._entries: Dict[str, Tuple[str, Optional[float]]] = {}
        self._lock = threading.Lock()
        self.ttl_seconds = ttl_seconds

    def set_key(self, user_id: str, key_material: str, ttl_seconds: Optional[float] = None) -> None:
        ttl = ttl_seconds if ttl_seconds is not None else self.ttl_seconds
        expires_at = time.time() + float(ttl) if ttl is not None else None
        with self._lock:
            # one entry per user: a second login replaces the first
            self._entries[user_id] = (key_material, expires_at)

    def get_key(self, user_id: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(user_id)
            if entry is None:
                return None
            key_material, expires_at = entry
            if expires_at is not None and time.time() > expires_at:
                # auto-lock on expiry
                del self._entries[user_id]
                return None
            return key_material

    def extend(self, user_id: str, extra_seconds: float) -> None:
        """Push the expiry of an unlocked entry out by ``extra_seconds``."""
        with self._lock:
            entry = self._entries.get(user_id)
            if entry is None:
                raise NotAuthenticatedError("user is not authenticated for encryption")
            key_material, expires_at = entry
            if expires_at is not None:
                self._entries[user_id] = (key_material, expires_at + float(extra_seconds))

    def clear_key(self, user_id: str) -> None:
        with self._lock:
            self._entries.pop(user_id, None)

    def clear_all(self) -> None:
        with self._lock:
            self._entries.clear()

    def active_users(self) -> List[str]:
        now = time.time()
        with self._lock:
            return [
                uid
                for uid, (_, expires_at) in self._entries.items()
                if expires_at is None or now <= expires_at
            ]

    def __len__(self) -> int:
        return len(self.active_users())
