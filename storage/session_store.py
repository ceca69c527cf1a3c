"""
Expiring session storage for the Sales Room service.

Each value written through ``ExpiringSessionStore.set`` is wrapped in an
envelope ``{"value", "createdAt", "expiresAt"}`` (epoch milliseconds) and
serialised to JSON. Expiry is lazy: nothing sweeps the backend, an entry is
only dropped when a read finds it past ``expiresAt``.

Reads have observable side effects on the backend:

- an expired envelope is removed and ``None`` is returned
- a value that is not an envelope (written before expiry was introduced,
  or by another writer) is returned as-is and rewritten with the default TTL

Writes never raise. When the backend is missing, full, or rejects the write,
``set`` returns False and callers keep their own in-memory copy.
"""

import json
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

DEFAULT_PII_TTL_MS = 1000 * 60 * 60 * 24  # 24 hours

_CHECK_KEY = "__sessionStorage_test__"


class StorageUnavailableError(Exception):
    """Raised by a backend that cannot be read or written."""


class QuotaExceededError(StorageUnavailableError):
    """Raised by a backend when a write would exceed its size quota."""


@runtime_checkable
class SessionBackend(Protocol):
    """Protocol for a string key-value store scoped to one session."""

    def get_item(self, key: str) -> Optional[str]:
        ...

    def set_item(self, key: str, value: str) -> None:
        ...

    def remove_item(self, key: str) -> None:
        ...

    def keys(self) -> List[str]:
        ...


class MemorySessionBackend:
    """
    Process-local string store with the failure modes of browser storage.

    Args:
        quota_bytes: Maximum total size of keys plus values, None for no limit
        available: When False every operation raises StorageUnavailableError
            (private browsing, storage disabled by policy)
    """

    def __init__(self, quota_bytes: Optional[int] = None, available: bool = True):
        self.quota_bytes = quota_bytes
        self.available = available
        self._data: Dict[str, str] = {}

    def _check_available(self):
        if not self.available:
            raise StorageUnavailableError("session storage is disabled")

    def get_item(self, key: str) -> Optional[str]:
        self._check_available()
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._check_available()
        if self.quota_bytes is not None:
            used = sum(len(k) + len(v) for k, v in self._data.items() if k != key)
            if used + len(key) + len(value) > self.quota_bytes:
                raise QuotaExceededError(
                    f"writing {key!r} would exceed quota of {self.quota_bytes} bytes"
                )
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._check_available()
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        self._check_available()
        return list(self._data.keys())

    def clear(self) -> None:
        self._data.clear()


def _epoch_ms() -> int:
    return int(time.time() * 1000)


def _is_envelope(parsed: Any) -> bool:
    return isinstance(parsed, dict) and "expiresAt" in parsed and "value" in parsed


class ExpiringSessionStore:
    """
    TTL envelope over a ``SessionBackend``.

    Args:
        backend: Underlying store, or None when no session storage exists
        default_ttl_ms: TTL used by ``set`` and when rewrapping legacy values
        clock: Callable returning the current time in epoch milliseconds
    """

    def __init__(
        self,
        backend: Optional[SessionBackend],
        default_ttl_ms: int = DEFAULT_PII_TTL_MS,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.backend = backend
        self.default_ttl_ms = default_ttl_ms
        self._clock = clock or _epoch_ms

    def now(self) -> int:
        return self._clock()

    def is_available(self) -> bool:
        """Check the backend with a throwaway write."""
        if self.backend is None:
            return False
        try:
            self.backend.set_item(_CHECK_KEY, "test")
            self.backend.remove_item(_CHECK_KEY)
            return True
        except StorageUnavailableError as e:
            logger.warning(f"Session storage is not available: {e}")
            return False

    # ── Expiring access ───────────────────────────────────────────

    def set(self, key: str, value: Any, ttl_ms: Optional[int] = None) -> bool:
        """
        Store ``value`` under ``key`` for ``ttl_ms`` milliseconds.

        Returns:
            True if the backend accepted the write, False otherwise
        """
        if self.backend is None:
            return False

        ttl = self.default_ttl_ms if ttl_ms is None else ttl_ms
        if ttl <= 0:
            logger.warning(f"Refusing to store {key!r} with non-positive TTL {ttl}")
            return False

        created_at = self.now()
        payload = {
            "value": value,
            "createdAt": created_at,
            "expiresAt": created_at + ttl,
        }

        try:
            self.backend.set_item(key, json.dumps(payload))
            return True
        except (StorageUnavailableError, TypeError, ValueError) as e:
            logger.warning(f"Failed to set session storage key {key!r}: {e}")
            return False

    def get(self, key: str) -> Any:
        """
        Read ``key``, enforcing expiry.

        Side effects: deletes the entry when it has expired, and rewraps a
        non-envelope value with the default TTL.

        Returns:
            The stored value, or None when absent, expired or unreadable
        """
        if self.backend is None:
            return None

        try:
            raw = self.backend.get_item(key)
            if not raw:
                return None

            parsed = json.loads(raw)

            if _is_envelope(parsed):
                if self.now() > parsed["expiresAt"]:
                    self.backend.remove_item(key)
                    logger.debug(f"Session storage key {key!r} expired")
                    return None
                return parsed["value"]

            # Legacy or non-expiring payload; rewrap with the default TTL
            self.set(key, parsed)
            return parsed

        except (StorageUnavailableError, ValueError) as e:
            logger.warning(f"Failed to read session storage key {key!r}: {e}")
            return None

    def purge_expired(self, keys: List[str]) -> None:
        """Trigger the expiry check for each of ``keys``."""
        for key in keys:
            self.get(key)

    # ── Raw passthroughs (no envelope) ────────────────────────────

    def set_item(self, key: str, value: str) -> None:
        if self.backend is None:
            return
        try:
            self.backend.set_item(key, value)
        except StorageUnavailableError as e:
            logger.warning(f"Failed to set session storage key {key!r}: {e}")

    def get_item(self, key: str) -> Optional[str]:
        if self.backend is None:
            return None
        try:
            return self.backend.get_item(key)
        except StorageUnavailableError as e:
            logger.warning(f"Failed to access session storage key {key!r}: {e}")
            return None

    def remove_item(self, key: str) -> None:
        if self.backend is None:
            return
        try:
            self.backend.remove_item(key)
        except StorageUnavailableError as e:
            logger.warning(f"Failed to remove session storage key {key!r}: {e}")

    def keys(self) -> List[str]:
        if self.backend is None:
            return []
        try:
            return self.backend.keys()
        except StorageUnavailableError as e:
            logger.warning(f"Failed to list session storage keys: {e}")
            return []
