"""
Chat Orchestrator for the Sales Room service.

Runs one prospect message through the whole flow:

1. Validate and sanitise the input
2. Append it to the session's conversation
3. Extract prospect details
4. Re-assess qualification (criteria, score, readiness)
5. Gate and send the Slack notification
6. Get the assistant reply (canned fallback when the backend is down)
7. Store the transcript
8. Sync the lead to the CRM when it just became ready

Updates for one session are serialised by a per-session ``asyncio.Lock``;
different sessions proceed concurrently. A lock lives only while some call
holds or awaits it. Live state of a session idle for longer than
``idle_ttl_ms`` is dropped; its stored transcript restores it on demand.
"""

import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from common.errors import ChatServiceError, StateError, ValidationError, log_error
from lead_scoring.business_hours import BusinessHours
from lead_scoring.entity_extractor import EntityExtractor
from lead_scoring.lead_router import CRMSyncResult, LeadRouter, SyncTrigger
from lead_scoring.models import Conversation, Message, MessageRole
from lead_scoring.notification_gate import NotificationGate
from lead_scoring.qualification import QualificationService, QualificationUpdate
from notifications.slack import QualificationNotification, SlackNotifier
from storage import DEFAULT_PII_TTL_MS
from transcripts.models import StoredConversation, TranscriptSummary
from transcripts.store import TranscriptStore
from .chat_client import ChatClient, ChatContext, ChatReply
from .guardrails import sanitize_message, validate_message, validate_prospect_info

logger = logging.getLogger(__name__)

GREETING = "Hi! I'm here to help you learn about our AI sales platform. What brings you here today?"
HANDOFF_LIVE_MESSAGE = "Great! I'm connecting you with a member of our sales team now."
HANDOFF_OFFLINE_MESSAGE = (
    "Our sales team is offline right now. We'll follow up by email first thing next business day."
)


@dataclass
class ChatTurn:
    """Result of processing one prospect message."""
    session_id: str
    response: str
    source: str
    score: int
    previous_score: int
    ready_to_connect: bool
    became_ready: bool
    tags: List[str] = field(default_factory=list)
    notified: bool = False
    crm_sync: Optional[CRMSyncResult] = None
    processing_time_ms: float = 0.0
    timestamp: str = field(default_factory=lambda: datetime.utcnow().isoformat())

    @property
    def is_fallback(self) -> bool:
        return self.source == "fallback"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "response": self.response,
            "source": self.source,
            "is_fallback": self.is_fallback,
            "score": self.score,
            "previous_score": self.previous_score,
            "ready_to_connect": self.ready_to_connect,
            "became_ready": self.became_ready,
            "tags": self.tags,
            "notified": self.notified,
            "crm_synced": bool(self.crm_sync and self.crm_sync.success),
            "processing_time_ms": self.processing_time_ms,
            "timestamp": self.timestamp,
        }


@dataclass
class HandoffResult:
    session_id: str
    score: int
    slack_notified: bool
    crm_sync: Optional[CRMSyncResult] = None
    within_business_hours: bool = True

    @property
    def message(self) -> str:
        return HANDOFF_LIVE_MESSAGE if self.within_business_hours else HANDOFF_OFFLINE_MESSAGE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "score": self.score,
            "within_business_hours": self.within_business_hours,
            "message": self.message,
            "slack_notified": self.slack_notified,
            "crm_sync": self.crm_sync.to_dict() if self.crm_sync else None,
        }


class SalesRoomOrchestrator:
    """
    Orchestrates the qualification chat flow.

    Args:
        qualification: Qualification state machine
        gate: Notification gate for score changes
        transcripts: Transcript / lead store
        chat_client: Chat backend client
        slack: Optional Slack notifier
        lead_router: Optional CRM lead router
        entity_extractor: Prospect detail extractor
        business_hours: Opening hours for live handoffs; always open if omitted
        max_message_length: Longest accepted prospect message
        idle_ttl_ms: Idle time after which a session's live state is evicted
        clock: Callable returning the current time in epoch milliseconds
    """

    def __init__(
        self,
        qualification: QualificationService,
        gate: NotificationGate,
        transcripts: TranscriptStore,
        chat_client: ChatClient,
        slack: Optional[SlackNotifier] = None,
        lead_router: Optional[LeadRouter] = None,
        entity_extractor: Optional[EntityExtractor] = None,
        business_hours: Optional[BusinessHours] = None,
        max_message_length: int = 500,
        idle_ttl_ms: int = DEFAULT_PII_TTL_MS,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.qualification = qualification
        self.gate = gate
        self.transcripts = transcripts
        self.chat_client = chat_client
        self.slack = slack
        self.lead_router = lead_router
        self.entity_extractor = entity_extractor or EntityExtractor()
        self.business_hours = business_hours
        self.max_message_length = max_message_length
        self.idle_ttl_ms = idle_ttl_ms
        self._clock = clock or (lambda: int(time.time() * 1000))

        # Conversation state
        self._conversations: Dict[str, Conversation] = {}
        self._last_seen: Dict[str, int] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    # ── Session state ─────────────────────────────────────────────

    @asynccontextmanager
    async def _session_lock(self, session_id: str) -> AsyncIterator[None]:
        """Hold the session's lock; the lock is dropped once nobody holds or awaits it."""
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        self._lock_users[session_id] = self._lock_users.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[session_id] -= 1
            if not self._lock_users[session_id]:
                del self._lock_users[session_id]
                del self._locks[session_id]

    def _touch(self, session_id: str) -> None:
        self._last_seen[session_id] = self._clock()

    def get_conversation(self, session_id: str) -> Optional[Conversation]:
        """Live conversation for ``session_id``, restored from storage if needed."""
        conversation = self._conversations.get(session_id)
        if conversation is None:
            stored = self.transcripts.get_by_session(session_id)
            if stored is not None:
                conversation = stored.conversation
                self._conversations[session_id] = conversation
                self._touch(session_id)
        return conversation

    def _start_conversation(self, session_id: str) -> Conversation:
        conversation = Conversation(
            id=str(uuid.uuid4()),
            session_id=session_id,
            qualification_status=self.qualification.initialize_status(),
        )
        conversation.append(Message(id=str(uuid.uuid4()), content=GREETING, role=MessageRole.ASSISTANT))
        self._conversations[session_id] = conversation
        self._touch(session_id)
        logger.info(f"Started conversation for session {session_id}")
        return conversation

    def active_sessions(self) -> List[str]:
        return list(self._conversations)

    def reset_session(self, session_id: str) -> None:
        """Forget the live state of a session. Stored transcripts are kept."""
        self._conversations.pop(session_id, None)
        self._last_seen.pop(session_id, None)
        self.gate.reset(session_id)

    def evict_idle(self) -> List[str]:
        """Drop live state of sessions idle for longer than ``idle_ttl_ms``."""
        now = self._clock()
        idle = [
            session_id for session_id, seen in self._last_seen.items()
            if now - seen > self.idle_ttl_ms and session_id not in self._lock_users
        ]
        for session_id in idle:
            self.reset_session(session_id)
        if idle:
            logger.info(f"Evicted {len(idle)} idle sessions")
        return idle

    # ── Message flow ──────────────────────────────────────────────

    async def process_message(
        self,
        message: str,
        session_id: Optional[str] = None,
        prospect: Optional[Dict[str, Optional[str]]] = None,
    ) -> ChatTurn:
        """
        Process one prospect message.

        Raises:
            ValidationError: The message or prospect details were rejected
            ChatServiceError: The backend answered with an api or parse error
        """
        start_time = time.time()

        validation = validate_message(message, max_length=self.max_message_length)
        if not validation.is_valid:
            raise ValidationError(validation.error, field="message")

        if prospect:
            prospect_check = validate_prospect_info(
                name=prospect.get("name"),
                email=prospect.get("email"),
                company=prospect.get("company"),
            )
            if not prospect_check.is_valid:
                first_field = next(iter(prospect_check.errors))
                raise ValidationError(
                    prospect_check.errors[first_field],
                    field=first_field,
                    context={"errors": prospect_check.errors},
                )

        content = sanitize_message(message, max_length=self.max_message_length)
        session_id = session_id or str(uuid.uuid4())
        self.evict_idle()

        async with self._session_lock(session_id):
            conversation = self.get_conversation(session_id) or self._start_conversation(session_id)
            self._touch(session_id)

            if prospect:
                conversation.prospect.update(**{k: v.strip() for k, v in prospect.items() if v})

            conversation.append(Message(id=str(uuid.uuid4()), content=content, role=MessageRole.USER))
            self.entity_extractor.apply(conversation.prospect, content)

            update = self._assess(conversation)
            notified = await self._notify(conversation, update)

            try:
                reply = await self.chat_client.send_with_fallback(
                    content, session_id, self._chat_context(conversation)
                )
            except ChatServiceError as e:
                log_error(e, {"session_id": session_id})
                self.transcripts.store(conversation)
                raise

            self._append_reply(conversation, reply)
            stored = self.transcripts.store(conversation)

            crm_sync = None
            if update.became_ready and self.lead_router and self.lead_router.should_auto_sync(SyncTrigger.QUALIFIED):
                crm_sync = await self._sync_lead(stored)

        processing_time = (time.time() - start_time) * 1000
        return ChatTurn(
            session_id=session_id,
            response=reply.response,
            source=reply.source,
            score=update.score,
            previous_score=update.previous_score,
            ready_to_connect=update.status.ready_to_connect,
            became_ready=update.became_ready,
            tags=[tag.id for tag in stored.tags],
            notified=notified,
            crm_sync=crm_sync,
            processing_time_ms=round(processing_time, 2),
        )

    def _assess(self, conversation: Conversation) -> QualificationUpdate:
        """Run one qualification cycle; a failure leaves the status as it was."""
        current = conversation.qualification_status
        try:
            update = self.qualification.assess(conversation.messages, current)
        except StateError as e:
            log_error(e, {"session_id": conversation.session_id})
            return QualificationUpdate(
                status=current,
                previous_score=current.score,
                threshold=self.qualification.threshold,
            )

        conversation.qualification_status = update.status
        if update.score_delta:
            logger.info(
                f"Session {conversation.session_id} score {update.previous_score} -> {update.score}"
                f" (ready={update.status.ready_to_connect})"
            )
        return update

    async def _notify(self, conversation: Conversation, update: QualificationUpdate) -> bool:
        """Gate the score change once for this cycle and announce it."""
        if not self.gate.evaluate(conversation.session_id, update.score, update.previous_score):
            return False
        if self.slack is None:
            return False

        status = update.status
        notification = QualificationNotification(
            session_id=conversation.session_id,
            score=update.score,
            previous_score=update.previous_score,
            prospect_name=conversation.prospect.name,
            company=conversation.prospect.company,
            email=conversation.prospect.email,
            criteria_met=[c.name for c in status.qualified_criteria()],
            criteria_total=len(status.criteria),
        )
        return await self.slack.notify_qualification_change(notification)

    def _chat_context(self, conversation: Conversation) -> ChatContext:
        prospect = conversation.prospect
        return ChatContext(
            prospect_name=prospect.name,
            company=prospect.company,
            email=prospect.email,
            previous_messages=[
                {"role": m.role.value, "content": m.content} for m in conversation.messages[:-1]
            ],
        )

    @staticmethod
    def _append_reply(conversation: Conversation, reply: ChatReply) -> None:
        if reply.session_id and reply.session_id != conversation.session_id:
            logger.debug(f"Backend session {reply.session_id} for session {conversation.session_id}")
        conversation.append(Message(
            id=str(uuid.uuid4()),
            content=reply.response,
            role=MessageRole.ASSISTANT,
            metadata=reply.metadata,
        ))

    async def _sync_lead(
        self,
        stored: StoredConversation,
        summary: Optional[TranscriptSummary] = None,
    ) -> CRMSyncResult:
        result = await self.lead_router.route(stored, summary)
        if result.success:
            self.transcripts.mark_crm_synced(stored.session_id, result.crm_id)
        return result

    # ── Handoff & summaries ───────────────────────────────────────

    def _require_conversation(self, session_id: str) -> Conversation:
        conversation = self.get_conversation(session_id)
        if conversation is None:
            raise StateError(f"Unknown session: {session_id}", status_code=404, context={"session_id": session_id})
        return conversation

    async def handoff(self, session_id: str) -> HandoffResult:
        """
        The prospect asked to talk to sales: alert the team and, when the
        handoff sync trigger is enabled, push the lead to the CRM with a
        fresh summary. Outside business hours the same happens, but the
        alert and the result say a follow-up replaces the live call.
        """
        async with self._session_lock(session_id):
            conversation = self._require_conversation(session_id)
            self._touch(session_id)
            prospect = conversation.prospect
            score = conversation.qualification_status.score
            open_now = self.business_hours is None or self.business_hours.is_open()

            slack_notified = False
            if self.slack is not None:
                slack_notified = await self.slack.notify_handoff_ready(
                    prospect.name, prospect.company, prospect.email, score, within_business_hours=open_now
                )

            stored = self.transcripts.store(conversation)
            summary = self.transcripts.generate_summary(conversation)

            crm_sync = None
            if self.lead_router and self.lead_router.should_auto_sync(SyncTrigger.HANDOFF):
                crm_sync = await self._sync_lead(stored, summary)

        logger.info(f"Handoff requested for session {session_id} at score {score} (open={open_now})")
        return HandoffResult(
            session_id=session_id,
            score=score,
            slack_notified=slack_notified,
            crm_sync=crm_sync,
            within_business_hours=open_now,
        )

    def summarize(self, session_id: str) -> TranscriptSummary:
        conversation = self._require_conversation(session_id)
        return self.transcripts.generate_summary(conversation)
