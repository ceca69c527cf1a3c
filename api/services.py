"""
Service initialization and dependency injection for the Sales Room API.

Creates and manages all service instances used by the API. Every service is
built once at start-up from ``Settings``; there is no hot reload.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

import httpx

from config.settings import get_settings, Settings
from storage import ExpiringSessionStore, MemorySessionBackend
from lead_scoring.business_hours import BusinessHours
from lead_scoring.entity_extractor import EntityExtractor
from lead_scoring.lead_router import LeadRouter, get_crm_adapter
from lead_scoring.notification_gate import NotificationGate
from lead_scoring.qualification import (
    AVAILABLE_SCHEMAS,
    DEFAULT_BANT_SCHEMA,
    QualificationService,
    schema_from_config,
)
from lead_scoring.scoring_model import get_scorer
from lead_scoring.signal_detector import SignalDetector
from notifications.slack import SlackNotifier
from transcripts import TranscriptStore, tags_for_thresholds
from llm.chat_client import ChatClient
from llm.orchestrator import SalesRoomOrchestrator
from .middleware.rate_limit import RateLimiter

logger = logging.getLogger(__name__)

CONFIGURED_SCHEMA = "configured"


class Services:
    """Container for all application services."""

    def __init__(self):
        self.settings: Optional[Settings] = None
        self.session_backend: Optional[MemorySessionBackend] = None
        self.session_store: Optional[ExpiringSessionStore] = None
        self.qualification: Optional[QualificationService] = None
        self.notification_gate: Optional[NotificationGate] = None
        self.transcripts: Optional[TranscriptStore] = None
        self.chat_client: Optional[ChatClient] = None
        self.slack: Optional[SlackNotifier] = None
        self.lead_router: Optional[LeadRouter] = None
        self.business_hours: Optional[BusinessHours] = None
        self.entity_extractor: Optional[EntityExtractor] = None
        self.rate_limiter: Optional[RateLimiter] = None
        self.orchestrator: Optional[SalesRoomOrchestrator] = None
        self._initialized = False

    def initialize(
        self,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], int]] = None,
        chat_transport: Optional[httpx.AsyncBaseTransport] = None,
        slack_transport: Optional[httpx.AsyncBaseTransport] = None,
        crm_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize all services.

        ``clock`` and the transports are injection points for tests; in
        production they are left unset.
        """
        if self._initialized:
            return

        self.settings = settings or get_settings()
        logger.info(
            f"Initializing services with schema {self.settings.qualification_schema}"
            f" and scorer {self.settings.qualification_scoring_strategy}"
        )

        self._init_storage(clock)
        self._init_qualification()
        self._init_notifications(slack_transport)
        self._init_transcripts()
        self._init_chat(chat_transport)
        self._init_crm(crm_transport, clock)
        self._init_orchestrator(clock)
        self._initialized = True
        logger.info("All services initialized successfully")

    def _init_storage(self, clock):
        s = self.settings
        self.session_backend = MemorySessionBackend(quota_bytes=s.session_quota_bytes)
        self.session_store = ExpiringSessionStore(
            self.session_backend,
            default_ttl_ms=s.session_ttl_ms,
            clock=clock,
        )

    def _init_qualification(self):
        """Initialize the qualification state machine and notification gate."""
        s = self.settings
        scorer = get_scorer(s.qualification_scoring_strategy)

        if s.qualification_schema == CONFIGURED_SCHEMA:
            threshold = s.qualification_threshold
            if threshold is None:
                threshold = DEFAULT_BANT_SCHEMA.score_threshold
            schema, keywords, rules = schema_from_config(s.qualification_criteria, threshold)
            self.qualification = QualificationService(
                schema=schema,
                scorer=scorer,
                detector=SignalDetector(keywords, window=s.qualification_window),
                rules=rules,
            )
        else:
            schema = AVAILABLE_SCHEMAS.get(s.qualification_schema)
            if schema is None:
                logger.warning(f"Unknown qualification schema {s.qualification_schema!r}, using BANT")
                schema = AVAILABLE_SCHEMAS["bant-default"]
            self.qualification = QualificationService(
                schema=schema,
                scorer=scorer,
                threshold=s.qualification_threshold,
            )
            self.qualification.detector.window = s.qualification_window

        self.notification_gate = NotificationGate(
            thresholds=s.notify_thresholds_list,
            significant_change=s.significant_change_threshold,
            rearm_margin=s.notification_rearm_margin,
        )
        self.entity_extractor = EntityExtractor()
        self.rate_limiter = RateLimiter(max_requests=s.rate_limit_per_minute, window_ms=60000)
        logger.info(
            f"Qualification ready: schema={self.qualification.get_schema().id},"
            f" threshold={self.qualification.threshold}"
        )

    def _init_notifications(self, transport):
        s = self.settings
        self.slack = SlackNotifier(
            webhook_url=s.slack_webhook_url,
            enabled=s.is_slack_enabled,
            transport=transport,
        )
        if not self.slack.enabled:
            logger.warning("SLACK_WEBHOOK_URL not set or Slack disabled, notifications off")

    def _init_transcripts(self):
        s = self.settings
        self.transcripts = TranscriptStore(
            self.session_store,
            retention_ms=s.session_ttl_ms,
            tags=tags_for_thresholds(hot=s.hot_lead_threshold, warm=s.warm_lead_threshold),
        )

    def _init_chat(self, transport):
        s = self.settings
        self.chat_client = ChatClient(
            base_url=s.chat_api_url,
            model=s.chat_model,
            api_key=s.chat_api_key,
            timeout=s.chat_timeout_seconds,
            transport=transport,
        )
        logger.info(f"Chat client ready: {self.chat_client.endpoint}")

    def _init_crm(self, transport, clock):
        s = self.settings
        adapter = get_crm_adapter(
            s.crm_provider,
            base_url=s.crm_base_url,
            api_key=s.crm_api_key,
            transport=transport,
        )
        self.lead_router = LeadRouter(
            adapter,
            hot_threshold=s.hot_lead_threshold,
            warm_threshold=s.warm_lead_threshold,
            auto_sync=s.crm_auto_sync,
            sync_triggers=s.crm_sync_triggers_list,
        )
        logger.info(f"Lead router ready: provider={s.crm_provider}, auto_sync={s.crm_auto_sync}")

        if s.business_hours_enabled:
            self.business_hours = BusinessHours.weekly(
                start=s.business_hours_start,
                end=s.business_hours_end,
                weekdays=s.business_days_list,
                utc_offset_minutes=s.business_utc_offset_minutes,
                clock=(lambda: datetime.fromtimestamp(clock() / 1000, timezone.utc)) if clock else None,
            )
            logger.info(
                f"Handoff business hours {s.business_hours_start}-{s.business_hours_end} on {s.business_days}"
            )

    def _init_orchestrator(self, clock):
        """Initialize the chat orchestrator."""
        self.orchestrator = SalesRoomOrchestrator(
            qualification=self.qualification,
            gate=self.notification_gate,
            transcripts=self.transcripts,
            chat_client=self.chat_client,
            slack=self.slack,
            lead_router=self.lead_router,
            entity_extractor=self.entity_extractor,
            max_message_length=self.settings.max_message_length,
            business_hours=self.business_hours,
            idle_ttl_ms=self.settings.session_ttl_ms,
            clock=clock,
        )
        logger.info("Chat orchestrator ready")

    @property
    def is_ready(self) -> bool:
        return self._initialized and self.orchestrator is not None

    def health(self) -> dict:
        """Return health status of all services."""
        return {
            "initialized": self._initialized,
            "session_storage": bool(self.session_store and self.session_store.is_available()),
            "transcripts_in_memory": bool(self.transcripts and self.transcripts.in_memory),
            "slack": bool(self.slack and self.slack.enabled),
            "orchestrator": self.orchestrator is not None,
        }


# Singleton
_services = Services()


def get_services() -> Services:
    """Get the global services instance."""
    return _services


def set_services(services: Services) -> None:
    """Replace the global services instance (used by tests)."""
    global _services
    _services = services


def initialize_services():
    """Initialize all services (called at startup)."""
    _services.initialize()
