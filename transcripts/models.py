"""
Persistence-layer models for stored transcripts.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from lead_scoring.models import Conversation, parse_datetime


@dataclass(frozen=True)
class AutoAssignRule:
    """When a tag applies: a score range, keywords in the transcript, or both."""
    score_min: Optional[int] = None
    score_max: Optional[int] = None
    keywords: List[str] = field(default_factory=list)

    def matches_score(self, score: int) -> bool:
        if self.score_min is None and self.score_max is None:
            return False
        if self.score_min is not None and score < self.score_min:
            return False
        if self.score_max is not None and score > self.score_max:
            return False
        return True

    def matches_text(self, text: str) -> bool:
        return any(keyword.lower() in text for keyword in self.keywords)


@dataclass(frozen=True)
class LeadTag:
    """Derived lead classification label."""
    id: str
    name: str
    color: str
    description: str
    auto_assign_rule: AutoAssignRule = field(default_factory=AutoAssignRule)

    def to_dict(self) -> Dict[str, Any]:
        rule = self.auto_assign_rule
        rule_data: Dict[str, Any] = {}
        if rule.score_min is not None:
            rule_data["scoreMin"] = rule.score_min
        if rule.score_max is not None:
            rule_data["scoreMax"] = rule.score_max
        if rule.keywords:
            rule_data["keywords"] = list(rule.keywords)
        return {
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "description": self.description,
            "autoAssignRule": rule_data,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LeadTag":
        rule = data.get("autoAssignRule", {})
        return cls(
            id=data["id"],
            name=data["name"],
            color=data.get("color", ""),
            description=data.get("description", ""),
            auto_assign_rule=AutoAssignRule(
                score_min=rule.get("scoreMin"),
                score_max=rule.get("scoreMax"),
                keywords=list(rule.get("keywords", [])),
            ),
        )


@dataclass
class TranscriptSummary:
    """Rule-based digest of a conversation for sales follow-up."""
    id: str
    session_id: str
    generated_at: datetime
    key_points: List[str]
    concerns: List[str]
    pain_points: List[str]
    qualification_summary: Dict[str, Any]
    next_steps: List[str]
    ai_confidence: float
    word_count: int
    message_count: int
    duration: int  # minutes

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "sessionId": self.session_id,
            "generatedAt": self.generated_at.isoformat(),
            "keyPoints": list(self.key_points),
            "concerns": list(self.concerns),
            "painPoints": list(self.pain_points),
            "qualificationSummary": self.qualification_summary,
            "nextSteps": list(self.next_steps),
            "aiConfidence": self.ai_confidence,
            "wordCount": self.word_count,
            "messageCount": self.message_count,
            "duration": self.duration,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TranscriptSummary":
        return cls(
            id=data["id"],
            session_id=data["sessionId"],
            generated_at=parse_datetime(data.get("generatedAt")),
            key_points=list(data.get("keyPoints", [])),
            concerns=list(data.get("concerns", [])),
            pain_points=list(data.get("painPoints", [])),
            qualification_summary=dict(data.get("qualificationSummary", {})),
            next_steps=list(data.get("nextSteps", [])),
            ai_confidence=float(data.get("aiConfidence", 0.0)),
            word_count=int(data.get("wordCount", 0)),
            message_count=int(data.get("messageCount", 0)),
            duration=int(data.get("duration", 0)),
        )


@dataclass
class StoredConversation:
    """A conversation snapshot as persisted, with derived lead tags."""
    conversation: Conversation
    tags: List[LeadTag] = field(default_factory=list)
    crm_synced: bool = False
    crm_id: Optional[str] = None
    last_activity: datetime = field(default_factory=datetime.utcnow)
    summary: Optional[TranscriptSummary] = None

    @property
    def session_id(self) -> str:
        return self.conversation.session_id

    @property
    def score(self) -> int:
        return self.conversation.qualification_status.score

    def has_tag(self, tag_id: str) -> bool:
        return any(tag.id == tag_id for tag in self.tags)

    def to_dict(self) -> Dict[str, Any]:
        data = self.conversation.to_dict()
        data.update({
            "tags": [tag.to_dict() for tag in self.tags],
            "crmSynced": self.crm_synced,
            "lastActivity": self.last_activity.isoformat(),
        })
        if self.crm_id is not None:
            data["crmId"] = self.crm_id
        if self.summary is not None:
            data["summary"] = self.summary.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StoredConversation":
        summary = data.get("summary")
        return cls(
            conversation=Conversation.from_dict(data),
            tags=[LeadTag.from_dict(t) for t in data.get("tags", [])],
            crm_synced=bool(data.get("crmSynced", False)),
            crm_id=data.get("crmId"),
            last_activity=parse_datetime(data.get("lastActivity")),
            summary=TranscriptSummary.from_dict(summary) if summary else None,
        )
