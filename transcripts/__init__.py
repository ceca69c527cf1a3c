"""Transcript and lead storage for the Sales Room service."""

from .models import AutoAssignRule, LeadTag, StoredConversation, TranscriptSummary
from .store import TranscriptAnalytics, TranscriptStore
from .summary import build_summary
from .tags import DEFAULT_LEAD_TAGS, assign_tags, tags_for_thresholds

__all__ = [
    "AutoAssignRule",
    "LeadTag",
    "StoredConversation",
    "TranscriptSummary",
    "TranscriptAnalytics",
    "TranscriptStore",
    "build_summary",
    "DEFAULT_LEAD_TAGS",
    "assign_tags",
    "tags_for_thresholds",
]
