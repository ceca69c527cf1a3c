"""
API Routes for the Sales Room service.
"""

from . import analytics, chat, debug, handoff, transcripts

__all__ = ["analytics", "chat", "debug", "handoff", "transcripts"]
