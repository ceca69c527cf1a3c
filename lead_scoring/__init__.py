"""
Lead Scoring Module for the Sales Room service.

This module provides lead qualification and scoring capabilities:
- Keyword signal detection over the recent user-message window
- Qualification state machine over a criteria schema (BANT by default)
- Interchangeable scoring strategies (0-100 scale)
- Notification gating for score changes
- Business hours for live sales handoffs

CRM routing lives in ``lead_scoring.lead_router`` and is imported from
there directly, since it depends on the transcript models.
"""

from .models import (
    Conversation,
    CriterionStatus,
    Message,
    MessageRole,
    ProspectInfo,
    QualificationCriterion,
    QualificationSchema,
    QualificationStatus,
)
from .signal_detector import SignalDetector
from .scoring_model import (
    BooleanWeightScorer,
    LeadPriority,
    Scorer,
    WeightedConfidenceScorer,
    get_scorer,
    priority_for,
)
from .qualification import DEFAULT_BANT_SCHEMA, QualificationService, QualificationUpdate
from .notification_gate import NotificationGate, should_notify
from .business_hours import BusinessHours

__all__ = [
    "Conversation",
    "CriterionStatus",
    "Message",
    "MessageRole",
    "ProspectInfo",
    "QualificationCriterion",
    "QualificationSchema",
    "QualificationStatus",
    "SignalDetector",
    "BooleanWeightScorer",
    "LeadPriority",
    "Scorer",
    "WeightedConfidenceScorer",
    "get_scorer",
    "priority_for",
    "DEFAULT_BANT_SCHEMA",
    "QualificationService",
    "QualificationUpdate",
    "NotificationGate",
    "should_notify",
    "BusinessHours",
]
