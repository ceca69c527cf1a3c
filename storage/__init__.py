"""
Session-scoped storage for the Sales Room service.

Provides a key-value backend standing in for browser session storage and
an expiring wrapper that attaches a time-to-live envelope to each entry.
"""

from .session_store import (
    DEFAULT_PII_TTL_MS,
    ExpiringSessionStore,
    MemorySessionBackend,
    SessionBackend,
    StorageUnavailableError,
)

__all__ = [
    "DEFAULT_PII_TTL_MS",
    "ExpiringSessionStore",
    "MemorySessionBackend",
    "SessionBackend",
    "StorageUnavailableError",
]
