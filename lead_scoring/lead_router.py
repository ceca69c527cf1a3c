"""
Lead Router for the Sales Room service.

Converts stored conversations into CRM lead records and hands them to a
CRM adapter. Only the custom webhook adapter talks to a real endpoint; the
named providers return an explicit not-implemented result.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import httpx

from transcripts.models import StoredConversation, TranscriptSummary
from .models import Message
from .scoring_model import priority_for

logger = logging.getLogger(__name__)

LEAD_SOURCE = "SalesFusion Sales Room"


class CRMProvider(Enum):
    """Supported CRM providers."""
    SALESFORCE = "salesforce"
    HUBSPOT = "hubspot"
    PIPEDRIVE = "pipedrive"
    CUSTOM = "custom"


class SyncTrigger(Enum):
    """Events that may push a lead to the CRM automatically."""
    QUALIFIED = "qualified"
    HANDOFF = "handoff"


# Source field -> provider field
CRM_FIELD_MAPPINGS: Dict[CRMProvider, Dict[str, str]] = {
    CRMProvider.SALESFORCE: {
        "first_name": "FirstName",
        "last_name": "LastName",
        "email": "Email",
        "phone": "Phone",
        "company": "Company",
        "title": "Title",
        "industry": "Industry",
        "lead_source": "LeadSource",
        "lead_status": "Status",
        "lead_score": "Rating",
        "qualification_score": "Qualification_Score__c",
        "pain_points": "Pain_Points__c",
        "timeline": "Timeline__c",
        "budget": "Budget__c",
        "tags": "Tags__c",
        "transcript": "Conversation_Transcript__c",
        "summary": "AI_Summary__c",
    },
    CRMProvider.HUBSPOT: {
        "first_name": "firstname",
        "last_name": "lastname",
        "email": "email",
        "phone": "phone",
        "company": "company",
        "title": "jobtitle",
        "industry": "industry",
        "lead_source": "hs_lead_source",
        "lead_status": "hs_lead_status",
        "lead_score": "hubspotscore",
        "qualification_score": "qualification_score",
        "pain_points": "pain_points",
        "timeline": "timeline",
        "budget": "budget",
        "tags": "hs_lead_tags",
        "transcript": "conversation_transcript",
        "summary": "ai_summary",
    },
    CRMProvider.PIPEDRIVE: {
        "first_name": "first_name",
        "last_name": "last_name",
        "email": "email",
        "phone": "phone",
        "company": "org_name",
        "title": "job_title",
        "lead_source": "source",
        "lead_status": "status",
        "qualification_score": "qualification_score",
        "pain_points": "pain_points",
        "timeline": "timeline",
        "budget": "budget",
        "tags": "tags",
        "transcript": "transcript",
        "summary": "summary",
    },
}


@dataclass
class CRMLeadData:
    """Flattened prospect, qualification and transcript data for a CRM."""

    session_id: str
    lead_source: str
    lead_status: str
    lead_score: int
    qualification_score: int

    # Contact
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    company: str = ""
    title: str = ""
    industry: str = ""

    # Qualification details
    tags: List[str] = field(default_factory=list)
    pain_points: List[str] = field(default_factory=list)
    timeline: Optional[str] = None
    budget: Optional[str] = None

    # Conversation
    transcript: str = ""
    summary: str = "No summary available"
    message_count: int = 0
    conversation_duration: int = 0  # minutes

    created_at: datetime = field(default_factory=datetime.utcnow)
    last_activity: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        data["last_activity"] = self.last_activity.isoformat()
        return data

    def map_fields(self, mapping: Mapping[str, str]) -> Dict[str, Any]:
        """
        Rename fields per ``mapping``, dropping empty values and joining
        lists with "; ".
        """
        data = self.to_dict()
        mapped: Dict[str, Any] = {}
        for source, target in mapping.items():
            value = data.get(source)
            if value is None or value == "" or value == []:
                continue
            mapped[target] = "; ".join(value) if isinstance(value, list) else value
        return mapped


@dataclass
class CRMSyncResult:
    """Outcome of a CRM call. ``not_implemented`` marks stub providers."""
    success: bool
    provider: str
    crm_id: Optional[str] = None
    error: Optional[str] = None
    not_implemented: bool = False
    synced_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["synced_at"] = self.synced_at.isoformat()
        return data


class CRMAdapter(ABC):
    """Strategy interface implemented by every CRM provider."""

    provider: CRMProvider

    @abstractmethod
    async def create_lead(self, data: CRMLeadData) -> CRMSyncResult:
        ...

    @abstractmethod
    async def add_note(self, lead_id: str, text: str, note_type: str = "note") -> CRMSyncResult:
        ...


class NotImplementedCRMAdapter(CRMAdapter):
    """Provider with no integration yet. Every call reports not implemented."""

    def __init__(self, provider: CRMProvider):
        self.provider = provider

    def _result(self) -> CRMSyncResult:
        return CRMSyncResult(
            success=False,
            provider=self.provider.value,
            error=f"{self.provider.value} integration is not implemented",
            not_implemented=True,
        )

    async def create_lead(self, data: CRMLeadData) -> CRMSyncResult:
        logger.info(f"CRM provider {self.provider.value} not implemented, lead {data.session_id} not synced")
        return self._result()

    async def add_note(self, lead_id: str, text: str, note_type: str = "note") -> CRMSyncResult:
        return self._result()


class WebhookCRMAdapter(CRMAdapter):
    """
    Custom CRM reached over HTTP.

    Leads are POSTed to ``{base_url}/leads`` and notes to
    ``{base_url}/leads/{id}/notes``. Failures are logged and reported in
    the result, never raised.
    """

    provider = CRMProvider.CUSTOM

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        field_mapping: Optional[Mapping[str, str]] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.field_mapping = dict(field_mapping) if field_mapping else None
        self.timeout = timeout
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _post(self, url: str, payload: Dict[str, Any]) -> CRMSyncResult:
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                response = await client.post(url, json=payload, headers=self._headers())
        except httpx.HTTPError as e:
            logger.error(f"CRM request to {url} failed: {e}")
            return CRMSyncResult(success=False, provider=self.provider.value, error=str(e))

        if response.status_code not in (200, 201, 202):
            logger.error(f"CRM sync failed with status {response.status_code}: {response.text[:500]}")
            return CRMSyncResult(
                success=False,
                provider=self.provider.value,
                error=f"Custom CRM sync failed: HTTP {response.status_code}",
            )

        crm_id = None
        try:
            body = response.json()
            if isinstance(body, dict) and body.get("id") is not None:
                crm_id = str(body["id"])
        except ValueError:
            logger.warning("CRM response was not JSON, no lead id recorded")

        return CRMSyncResult(success=True, provider=self.provider.value, crm_id=crm_id)

    async def create_lead(self, data: CRMLeadData) -> CRMSyncResult:
        payload = data.map_fields(self.field_mapping) if self.field_mapping else data.to_dict()
        return await self._post(f"{self.base_url}/leads", payload)

    async def add_note(self, lead_id: str, text: str, note_type: str = "note") -> CRMSyncResult:
        return await self._post(
            f"{self.base_url}/leads/{lead_id}/notes",
            {"text": text, "type": note_type},
        )


def get_crm_adapter(
    provider: str,
    base_url: Optional[str] = None,
    api_key: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> CRMAdapter:
    """Build the adapter for a provider name; unknown names get a stub."""
    try:
        crm_provider = CRMProvider(provider)
    except ValueError:
        logger.warning(f"Unknown CRM provider {provider!r}, leads will not be synced")
        return NotImplementedCRMAdapter(CRMProvider.CUSTOM)

    if crm_provider == CRMProvider.CUSTOM and base_url:
        return WebhookCRMAdapter(base_url, api_key=api_key, transport=transport)
    return NotImplementedCRMAdapter(crm_provider)


def parse_name(full_name: Optional[str]) -> Dict[str, str]:
    parts = (full_name or "").strip().split()
    if not parts:
        return {"first_name": "", "last_name": ""}
    return {"first_name": parts[0], "last_name": " ".join(parts[1:])}


def format_transcript(messages: Sequence[Message]) -> str:
    return "\n\n".join(
        f"[{m.timestamp.strftime('%H:%M:%S')}] {m.role.value.upper()}: {m.content}"
        for m in messages
    )


def format_summary(summary: TranscriptSummary) -> str:
    sections = [
        f"QUALIFICATION SCORE: {summary.qualification_summary.get('score', 0)}%",
        "",
        "KEY POINTS:",
        *[f"• {point}" for point in summary.key_points],
        "",
    ]
    if summary.concerns:
        sections += ["CONCERNS:", *[f"• {c}" for c in summary.concerns], ""]
    if summary.pain_points:
        sections += ["PAIN POINTS:", *[f"• {p}" for p in summary.pain_points], ""]
    sections += ["NEXT STEPS:", *[f"• {step}" for step in summary.next_steps]]
    return "\n".join(sections)


def conversation_duration(messages: Sequence[Message]) -> int:
    if len(messages) < 2:
        return 0
    return round((messages[-1].timestamp - messages[0].timestamp).total_seconds() / 60)


def format_conversation_note(stored: StoredConversation, summary: TranscriptSummary) -> str:
    conversation = stored.conversation
    lines = [
        "Sales Room Conversation Summary",
        f"Session: {conversation.session_id}",
        f"Date: {conversation.created_at.date().isoformat()}",
        f"Messages: {len(conversation.messages)}",
        f"Qualification Score: {conversation.qualification_status.score}%",
        "",
    ]
    if summary.key_points:
        lines += ["Key Points:", *[f"• {p}" for p in summary.key_points], ""]
    if summary.pain_points:
        lines += ["Pain Points:", *[f"• {p}" for p in summary.pain_points], ""]
    if summary.next_steps:
        lines += ["Next Steps:", *[f"• {s}" for s in summary.next_steps]]
    return "\n".join(lines).rstrip()


class LeadRouter:
    """
    Routes qualified leads to the configured CRM adapter.

    Args:
        adapter: CRM strategy to deliver leads to
        hot_threshold: Score at or above which a lead is Hot
        warm_threshold: Score at or above which a lead is Warm
        auto_sync: Whether ``should_auto_sync`` may return True at all
        sync_triggers: Trigger names that cause an automatic sync
    """

    def __init__(
        self,
        adapter: CRMAdapter,
        hot_threshold: int = 85,
        warm_threshold: int = 60,
        auto_sync: bool = False,
        sync_triggers: Iterable[str] = ("qualified", "handoff"),
    ):
        self.adapter = adapter
        self.hot_threshold = hot_threshold
        self.warm_threshold = warm_threshold
        self.auto_sync = auto_sync
        self.sync_triggers = {SyncTrigger(t) for t in sync_triggers}

    def should_auto_sync(self, trigger: SyncTrigger) -> bool:
        return self.auto_sync and trigger in self.sync_triggers

    def lead_status(self, score: int) -> str:
        return priority_for(score, hot=self.hot_threshold, warm=self.warm_threshold).label

    def build_lead_data(
        self,
        stored: StoredConversation,
        summary: Optional[TranscriptSummary] = None,
    ) -> CRMLeadData:
        """Flatten a stored conversation into a CRM lead record."""
        conversation = stored.conversation
        prospect = conversation.prospect
        score = conversation.qualification_status.score
        summary = summary or stored.summary

        return CRMLeadData(
            session_id=conversation.session_id,
            lead_source=LEAD_SOURCE,
            lead_status=self.lead_status(score),
            lead_score=round(score),
            qualification_score=score,
            email=prospect.email or "",
            phone=prospect.phone or "",
            company=prospect.company or "",
            title=prospect.title or "",
            industry=prospect.industry or "",
            tags=[tag.name for tag in stored.tags],
            pain_points=list(prospect.pain_points),
            timeline=prospect.timeline,
            budget=prospect.budget,
            transcript=format_transcript(conversation.messages),
            summary=format_summary(summary) if summary else "No summary available",
            message_count=len(conversation.messages),
            conversation_duration=conversation_duration(conversation.messages),
            created_at=conversation.created_at,
            last_activity=stored.last_activity,
            **parse_name(prospect.name),
        )

    async def route(
        self,
        stored: StoredConversation,
        summary: Optional[TranscriptSummary] = None,
    ) -> CRMSyncResult:
        """
        Send one stored conversation to the CRM.

        With a summary at hand, a "Conversation" note is added to the new
        lead. A failed note is logged and does not fail the sync.
        """
        summary = summary or stored.summary
        lead = self.build_lead_data(stored, summary)
        result = await self.adapter.create_lead(lead)
        if result.success:
            logger.info(f"Lead {lead.session_id} routed to {result.provider} (crm_id={result.crm_id})")
            if summary is not None and result.crm_id:
                note = await self.adapter.add_note(
                    result.crm_id, format_conversation_note(stored, summary), note_type="Conversation"
                )
                if not note.success:
                    logger.warning(f"Conversation note for lead {result.crm_id} not added: {note.error}")
        elif not result.not_implemented:
            logger.warning(f"Lead {lead.session_id} not routed: {result.error}")
        return result

    async def route_many(self, conversations: Sequence[StoredConversation]) -> List[CRMSyncResult]:
        return [await self.route(stored) for stored in conversations]
