"""
Conversation and qualification data structures.

All models serialise to plain JSON-compatible dicts (camelCase keys, ISO
timestamps) so they can round-trip through session storage.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


def parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if value:
        return datetime.fromisoformat(value)
    return datetime.utcnow()


class CriterionStatus(Enum):
    """Qualification state of one criterion."""
    QUALIFIED = "qualified"
    UNQUALIFIED = "unqualified"
    UNKNOWN = "unknown"


class MessageRole(Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class QualificationCriterion:
    """One scored dimension of qualification (e.g. Budget)."""
    id: str
    name: str
    description: str = ""
    weight: float = 0.0  # 0-1, weights in a schema should sum to 1.0
    status: CriterionStatus = CriterionStatus.UNKNOWN
    confidence: float = 0.0
    evidence: List[str] = field(default_factory=list)

    def reset(self) -> "QualificationCriterion":
        """Copy of this criterion in its initial state."""
        return QualificationCriterion(
            id=self.id,
            name=self.name,
            description=self.description,
            weight=self.weight,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "weight": self.weight,
            "status": self.status.value,
            "confidence": self.confidence,
            "evidence": list(self.evidence),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QualificationCriterion":
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            description=data.get("description", ""),
            weight=float(data.get("weight", 0.0)),
            status=CriterionStatus(data.get("status", "unknown")),
            confidence=float(data.get("confidence", 0.0)),
            evidence=list(data.get("evidence", [])),
        )


@dataclass
class QualificationSchema:
    """A named set of criteria and the readiness threshold that goes with them."""
    id: str
    name: str
    score_threshold: int
    criteria: List[QualificationCriterion] = field(default_factory=list)

    @property
    def total_weight(self) -> float:
        return sum(c.weight for c in self.criteria)


@dataclass
class AIAssessment:
    summary: str
    confidence: float
    next_questions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary,
            "confidence": self.confidence,
            "nextQuestions": list(self.next_questions),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AIAssessment":
        return cls(
            summary=data.get("summary", ""),
            confidence=float(data.get("confidence", 0.0)),
            next_questions=list(data.get("nextQuestions", [])),
        )


@dataclass
class QualificationStatus:
    """
    Qualification state of one conversation.

    ``score`` and ``ready_to_connect`` are derived from ``criteria`` under
    the active schema and are only ever written together with them.
    """
    schema_id: str
    criteria: Dict[str, QualificationCriterion] = field(default_factory=dict)
    score: int = 0
    ready_to_connect: bool = False
    last_updated: datetime = field(default_factory=datetime.utcnow)
    notes: Optional[str] = None
    ai_assessment: Optional[AIAssessment] = None

    def copy(self) -> "QualificationStatus":
        return copy.deepcopy(self)

    def qualified_criteria(self) -> List[QualificationCriterion]:
        return [c for c in self.criteria.values() if c.status == CriterionStatus.QUALIFIED]

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "schemaId": self.schema_id,
            "criteria": {key: c.to_dict() for key, c in self.criteria.items()},
            "score": self.score,
            "readyToConnect": self.ready_to_connect,
            "lastUpdated": self.last_updated.isoformat(),
        }
        if self.notes is not None:
            data["notes"] = self.notes
        if self.ai_assessment is not None:
            data["aiAssessment"] = self.ai_assessment.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QualificationStatus":
        assessment = data.get("aiAssessment")
        return cls(
            schema_id=data.get("schemaId", ""),
            criteria={
                key: QualificationCriterion.from_dict(value)
                for key, value in data.get("criteria", {}).items()
            },
            score=int(data.get("score", 0)),
            ready_to_connect=bool(data.get("readyToConnect", False)),
            last_updated=parse_datetime(data.get("lastUpdated")),
            notes=data.get("notes"),
            ai_assessment=AIAssessment.from_dict(assessment) if assessment else None,
        )


@dataclass(frozen=True)
class Message:
    """A chat message. Never modified once appended to a conversation."""
    id: str
    content: str
    role: MessageRole
    timestamp: datetime = field(default_factory=datetime.utcnow)
    metadata: Optional[Dict[str, Any]] = None

    @property
    def is_user(self) -> bool:
        return self.role == MessageRole.USER

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "content": self.content,
            "role": self.role.value,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.metadata is not None:
            data["metadata"] = dict(self.metadata)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        return cls(
            id=str(data["id"]),
            content=data.get("content", ""),
            role=MessageRole(data.get("role", "user")),
            timestamp=parse_datetime(data.get("timestamp")),
            metadata=data.get("metadata"),
        )


@dataclass
class ProspectInfo:
    """What is known about the person on the other side of the chat."""
    name: Optional[str] = None
    email: Optional[str] = None
    company: Optional[str] = None
    title: Optional[str] = None
    phone: Optional[str] = None
    industry: Optional[str] = None
    company_size: Optional[str] = None
    pain_points: List[str] = field(default_factory=list)
    budget: Optional[str] = None
    timeline: Optional[str] = None
    decision_maker: Optional[bool] = None

    _KEYS = {
        "name": "name",
        "email": "email",
        "company": "company",
        "title": "title",
        "phone": "phone",
        "industry": "industry",
        "company_size": "companySize",
        "budget": "budget",
        "timeline": "timeline",
        "decision_maker": "decisionMaker",
    }

    def has_contact_info(self) -> bool:
        return bool(self.email or self.phone)

    def update(self, **fields: Any) -> None:
        """Overwrite the given fields, ignoring None values."""
        for key, value in fields.items():
            if value is not None and hasattr(self, key):
                setattr(self, key, value)

    def fill(self, **fields: Any) -> None:
        """Set the given fields only where they are still empty."""
        for key, value in fields.items():
            if value is not None and hasattr(self, key) and getattr(self, key) in (None, ""):
                setattr(self, key, value)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            camel: getattr(self, attr)
            for attr, camel in self._KEYS.items()
            if getattr(self, attr) is not None
        }
        data["painPoints"] = list(self.pain_points)
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ProspectInfo":
        data = data or {}
        prospect = cls(pain_points=list(data.get("painPoints", [])))
        for attr, camel in cls._KEYS.items():
            if camel in data:
                setattr(prospect, attr, data[camel])
        return prospect


@dataclass
class Conversation:
    """
    One chat session.

    ``session_id`` is the correlation key shared with the chat backend and
    used for storage lookups. ``messages`` is append-only.
    """
    id: str
    session_id: str
    qualification_status: QualificationStatus
    messages: List[Message] = field(default_factory=list)
    prospect: ProspectInfo = field(default_factory=ProspectInfo)
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    def append(self, message: Message) -> None:
        self.messages.append(message)
        self.touch()

    def touch(self) -> None:
        self.updated_at = datetime.utcnow()

    def user_messages(self) -> List[Message]:
        return [m for m in self.messages if m.is_user]

    def full_text(self) -> str:
        """Lower-cased text of every message, in order."""
        return " ".join(m.content.lower() for m in self.messages)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "sessionId": self.session_id,
            "messages": [m.to_dict() for m in self.messages],
            "prospect": self.prospect.to_dict(),
            "qualificationStatus": self.qualification_status.to_dict(),
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Conversation":
        return cls(
            id=data["id"],
            session_id=data["sessionId"],
            messages=[Message.from_dict(m) for m in data.get("messages", [])],
            prospect=ProspectInfo.from_dict(data.get("prospect")),
            qualification_status=QualificationStatus.from_dict(data.get("qualificationStatus", {})),
            created_at=parse_datetime(data.get("createdAt")),
            updated_at=parse_datetime(data.get("updatedAt")),
        )
