"""
Chat Module for the Sales Room service.

This module handles:
- Input guardrails (sanitisation, validation)
- Chat backend client with local fallback replies
- Orchestration of a prospect message through qualification, notification,
  transcript storage and CRM routing
"""

from .chat_client import ChatClient, ChatContext, ChatReply, get_fallback_response
from .guardrails import (
    ValidationResult,
    is_suspicious_input,
    sanitize_input,
    sanitize_message,
    validate_email,
    validate_message,
    validate_name,
    validate_prospect_info,
)
from .orchestrator import ChatTurn, HandoffResult, SalesRoomOrchestrator

__all__ = [
    "ChatClient",
    "ChatContext",
    "ChatReply",
    "get_fallback_response",
    "ValidationResult",
    "is_suspicious_input",
    "sanitize_input",
    "sanitize_message",
    "validate_email",
    "validate_message",
    "validate_name",
    "validate_prospect_info",
    "ChatTurn",
    "HandoffResult",
    "SalesRoomOrchestrator",
]
