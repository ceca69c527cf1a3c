"""
Lead tags derived from a conversation.

Tags are recomputed from scratch on every call: score-range rules first,
then keyword rules over the whole message history. A tag that is no
longer derived is dropped.
"""

from typing import List, Optional, Sequence

from lead_scoring.models import Conversation
from .models import AutoAssignRule, LeadTag

DEFAULT_LEAD_TAGS: List[LeadTag] = [
    LeadTag(
        id="hot",
        name="Hot Lead",
        color="#ef4444",
        description="Highly qualified, ready to buy",
        auto_assign_rule=AutoAssignRule(score_min=85),
    ),
    LeadTag(
        id="warm",
        name="Warm Lead",
        color="#f59e0b",
        description="Qualified, needs nurturing",
        auto_assign_rule=AutoAssignRule(score_min=60, score_max=84),
    ),
    LeadTag(
        id="cold",
        name="Cold Lead",
        color="#6b7280",
        description="Early stage or unqualified",
        auto_assign_rule=AutoAssignRule(score_max=59),
    ),
    LeadTag(
        id="enterprise",
        name="Enterprise",
        color="#7c3aed",
        description="Large company prospect",
        auto_assign_rule=AutoAssignRule(
            keywords=["enterprise", "corporation", "fortune", "500+", "1000+", "global"],
        ),
    ),
    LeadTag(
        id="urgent",
        name="Urgent",
        color="#dc2626",
        description="Time-sensitive opportunity",
        auto_assign_rule=AutoAssignRule(
            keywords=["urgent", "asap", "immediately", "deadline", "this week", "this month"],
        ),
    ),
]


def tags_for_thresholds(hot: int = 85, warm: int = 60) -> List[LeadTag]:
    """Default tag set with the hot/warm/cold ranges moved to the given thresholds."""
    ranges = {
        "hot": AutoAssignRule(score_min=hot),
        "warm": AutoAssignRule(score_min=warm, score_max=hot - 1),
        "cold": AutoAssignRule(score_max=warm - 1),
    }
    tags = []
    for tag in DEFAULT_LEAD_TAGS:
        if tag.id in ranges:
            tag = LeadTag(
                id=tag.id,
                name=tag.name,
                color=tag.color,
                description=tag.description,
                auto_assign_rule=ranges[tag.id],
            )
        tags.append(tag)
    return tags


def assign_tags(
    conversation: Conversation,
    tags: Optional[Sequence[LeadTag]] = None,
) -> List[LeadTag]:
    """Derive the tags that apply to ``conversation`` right now."""
    candidates = DEFAULT_LEAD_TAGS if tags is None else tags
    score = conversation.qualification_status.score

    assigned = [t for t in candidates if t.auto_assign_rule.matches_score(score)]

    text = conversation.full_text()
    for tag in candidates:
        if tag in assigned:
            continue
        if tag.auto_assign_rule.matches_text(text):
            assigned.append(tag)

    return assigned
