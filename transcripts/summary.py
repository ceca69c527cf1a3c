"""
Rule-based transcript summaries for sales follow-up.
"""

import re
from datetime import datetime
from typing import Any, Dict, List

from lead_scoring.models import Conversation, QualificationStatus
from .models import TranscriptSummary

CONCERN_KEYWORDS = [
    "worried", "concern", "problem", "issue", "challenge",
    "difficult", "expensive", "cost", "budget", "risk",
    "not sure", "uncertain", "doubt", "hesitant",
]

MAX_CONCERNS = 5
MAX_NEXT_STEPS = 4

_SENTENCE_SPLIT = re.compile(r"[.!?]+")


def extract_key_points(conversation: Conversation) -> List[str]:
    points = []
    prospect = conversation.prospect

    for label, value in (
        ("Contact", prospect.name),
        ("Company", prospect.company),
        ("Role", prospect.title),
        ("Industry", prospect.industry),
        ("Company Size", prospect.company_size),
        ("Budget", prospect.budget),
        ("Timeline", prospect.timeline),
    ):
        if value:
            points.append(f"{label}: {value}")

    qualified = [c.name for c in conversation.qualification_status.qualified_criteria()]
    if qualified:
        points.append(f"Qualified: {', '.join(qualified)}")

    return points


def extract_concerns(conversation_text: str) -> List[str]:
    """Sentences mentioning a concern keyword, 11-199 characters long."""
    concerns = []
    for sentence in _SENTENCE_SPLIT.split(conversation_text):
        lower = sentence.lower()
        if not any(keyword in lower for keyword in CONCERN_KEYWORDS):
            continue
        trimmed = sentence.strip()
        if 10 < len(trimmed) < 200:
            concerns.append(trimmed)
    return concerns[:MAX_CONCERNS]


def format_criteria(status: QualificationStatus) -> Dict[str, Dict[str, Any]]:
    return {
        key: {"status": criterion.status.value, "evidence": list(criterion.evidence)}
        for key, criterion in status.criteria.items()
    }


def generate_next_steps(conversation: Conversation) -> List[str]:
    score = conversation.qualification_status.score
    prospect = conversation.prospect

    if score >= 75:
        steps = ["Schedule demo or discovery call", "Prepare personalized proposal"]
    elif score >= 50:
        steps = ["Continue qualification conversation", "Address any concerns or objections"]
    else:
        steps = ["Nurture lead with relevant content", "Follow up in 2-4 weeks"]

    if not prospect.email:
        steps.append("Capture contact information")
    if not prospect.budget:
        steps.append("Understand budget requirements")
    if not prospect.timeline:
        steps.append("Clarify implementation timeline")

    return steps[:MAX_NEXT_STEPS]


def summary_confidence(conversation: Conversation) -> float:
    """
    Confidence in the summary, 0-1.

    Up to 0.4 from message count, up to 0.5 from the qualification score,
    and 0.1 when an email address is known.
    """
    confidence = min(len(conversation.messages) * 0.05, 0.4)
    confidence += conversation.qualification_status.score * 0.005
    if conversation.prospect.email:
        confidence += 0.1
    return min(confidence, 1.0)


def conversation_duration_minutes(conversation: Conversation) -> int:
    messages = conversation.messages
    if len(messages) < 2:
        return 0
    elapsed = messages[-1].timestamp - messages[0].timestamp
    return round(elapsed.total_seconds() / 60)


def build_summary(conversation: Conversation) -> TranscriptSummary:
    """Summarise ``conversation`` without touching storage."""
    conversation_text = "\n".join(f"{m.role.value}: {m.content}" for m in conversation.messages)
    status = conversation.qualification_status

    return TranscriptSummary(
        id=f"summary-{conversation.session_id}",
        session_id=conversation.session_id,
        generated_at=datetime.utcnow(),
        key_points=extract_key_points(conversation),
        concerns=extract_concerns(conversation_text),
        pain_points=list(conversation.prospect.pain_points),
        qualification_summary={
            "score": status.score,
            "criteria": format_criteria(status),
            "readyToConnect": status.ready_to_connect,
        },
        next_steps=generate_next_steps(conversation),
        ai_confidence=summary_confidence(conversation),
        word_count=len(conversation_text.split(" ")) if conversation_text else 0,
        message_count=len(conversation.messages),
        duration=conversation_duration_minutes(conversation),
    )
