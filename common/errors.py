"""
Application error types.

- ValidationError: bad user input, always recoverable, shown inline
- NetworkError / ChatServiceError: failures talking to the chat backend
- StateError: internal invariant violations (missing schema, unknown signal)
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class Severity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AppError(Exception):
    """Base class for errors raised by the service."""

    code = "APP_ERROR"
    severity = Severity.MEDIUM

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.context = context or {}
        self.timestamp = datetime.utcnow()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "severity": self.severity.value,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }


class ValidationError(AppError):
    code = "VALIDATION_ERROR"
    severity = Severity.MEDIUM

    def __init__(self, message: str, field: Optional[str] = None, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=422, context=context)
        self.field = field


class NetworkError(AppError):
    code = "NETWORK_ERROR"
    severity = Severity.HIGH


class ChatErrorKind(Enum):
    """Failure classes of a chat backend call."""
    NETWORK = "network"
    TIMEOUT = "timeout"
    API = "api"
    PARSE = "parse"


class ChatServiceError(NetworkError):
    """
    Chat backend failure.

    network/timeout are retryable by re-sending; api carries the backend's
    own message; parse means the backend broke its response contract.
    """

    code = "CHAT_SERVICE_ERROR"

    def __init__(
        self,
        message: str,
        kind: ChatErrorKind,
        status_code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, status_code=status_code, context=context)
        self.kind = kind
        self.severity = Severity.CRITICAL if kind == ChatErrorKind.PARSE else Severity.HIGH

    @property
    def retryable(self) -> bool:
        return self.kind in (ChatErrorKind.NETWORK, ChatErrorKind.TIMEOUT)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["kind"] = self.kind.value
        return data


class StateError(AppError):
    code = "STATE_ERROR"
    severity = Severity.MEDIUM


# ── Helpers ───────────────────────────────────────────────────────

USER_FRIENDLY_MESSAGES = {
    ChatErrorKind.NETWORK: "Network connection failed. Please check your connection and try again.",
    ChatErrorKind.TIMEOUT: "The assistant is taking too long to respond. Please try again.",
    ChatErrorKind.API: "Unable to process your message right now. Please try again in a moment.",
    ChatErrorKind.PARSE: "Unable to process your message right now. Please try again in a moment.",
}

GENERIC_MESSAGE = "Something went wrong. Please try again."


def get_error_message(error: Any) -> str:
    """Extract a message from any raised value."""
    if isinstance(error, AppError):
        return error.message
    if isinstance(error, BaseException):
        return str(error) or error.__class__.__name__
    if isinstance(error, str):
        return error
    return "Unknown error occurred"


def is_recoverable(error: Any) -> bool:
    if isinstance(error, AppError):
        return error.severity != Severity.CRITICAL
    return True


def get_user_friendly_message(error: Any) -> str:
    """Map an error to the text shown to the prospect."""
    if isinstance(error, ValidationError):
        return error.message
    if isinstance(error, ChatServiceError):
        if error.kind == ChatErrorKind.API and error.message:
            return error.message
        return USER_FRIENDLY_MESSAGES[error.kind]
    if isinstance(error, NetworkError):
        return USER_FRIENDLY_MESSAGES[ChatErrorKind.NETWORK]
    return GENERIC_MESSAGE


def log_error(error: Any, context: Optional[Dict[str, Any]] = None) -> None:
    """Log an error with its context and traceback."""
    details = {
        "message": get_error_message(error),
        "context": context or {},
        "timestamp": datetime.utcnow().isoformat(),
    }
    if isinstance(error, AppError):
        details["code"] = error.code
        details["severity"] = error.severity.value
    exc_info = error if isinstance(error, BaseException) else None
    logger.error(f"Application error: {details}", exc_info=exc_info)
