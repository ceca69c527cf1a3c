"""
Shared error types and logging setup for the Sales Room service.
"""

from .errors import (
    AppError,
    ChatServiceError,
    ChatErrorKind,
    NetworkError,
    StateError,
    ValidationError,
)

__all__ = [
    "AppError",
    "ChatServiceError",
    "ChatErrorKind",
    "NetworkError",
    "StateError",
    "ValidationError",
]
