"""Shared fixtures for Sales Room tests."""

import json
import uuid

import httpx
import pytest
from fastapi.testclient import TestClient

from config.settings import Settings
from lead_scoring.models import Conversation, Message, MessageRole
from lead_scoring.qualification import QualificationService
from storage import ExpiringSessionStore, MemorySessionBackend
from transcripts import TranscriptStore

SCENARIO_MESSAGE = "We have budget approved and need this live by next month, I'm the VP who signs off"

CHAT_URL = "http://chat.test"
SLACK_URL = "https://hooks.slack.test/services/T000/B000/XXXX"
CRM_URL = "http://crm.test/api/crm"


class FakeClock:
    """Controllable epoch-millisecond clock."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def backend():
    return MemorySessionBackend()


@pytest.fixture
def session_store(backend, clock):
    return ExpiringSessionStore(backend, clock=clock)


@pytest.fixture
def transcript_store(session_store):
    return TranscriptStore(session_store)


@pytest.fixture
def qualification():
    return QualificationService()


@pytest.fixture
def make_conversation(qualification):
    """Build a conversation from user message texts."""

    def _make(*texts, session_id=None, assistant_first=True):
        conversation = Conversation(
            id=str(uuid.uuid4()),
            session_id=session_id or f"session-{uuid.uuid4().hex[:8]}",
            qualification_status=qualification.initialize_status(),
        )
        if assistant_first:
            conversation.append(Message(id=str(uuid.uuid4()), content="Hi! How can I help?", role=MessageRole.ASSISTANT))
        for text in texts:
            conversation.append(Message(id=str(uuid.uuid4()), content=text, role=MessageRole.USER))
        return conversation

    return _make


@pytest.fixture
def qualified_conversation(make_conversation, qualification):
    """Conversation after one assessment of the BANT scenario message."""
    conversation = make_conversation(SCENARIO_MESSAGE, session_id="scenario")
    update = qualification.assess(conversation.messages, conversation.qualification_status)
    conversation.qualification_status = update.status
    return conversation


# ── HTTP stubs ────────────────────────────────────────────────────

class RecordingTransport:
    """Wraps a handler in ``httpx.MockTransport`` and keeps every request."""

    def __init__(self, handler):
        self.requests = []
        self.handler = handler
        self.transport = httpx.MockTransport(self._record)

    def _record(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    def json_bodies(self):
        return [json.loads(r.content) for r in self.requests]


def chat_ok(request: httpx.Request) -> httpx.Response:
    body = json.loads(request.content)
    return httpx.Response(200, json={
        "success": True,
        "response": "Great, let's get you connected with the right person.",
        "sessionId": body.get("sessionId"),
    })


@pytest.fixture
def chat_backend():
    return RecordingTransport(chat_ok)


@pytest.fixture
def slack_webhook():
    return RecordingTransport(lambda request: httpx.Response(200, text="ok"))


@pytest.fixture
def crm_backend():
    return RecordingTransport(lambda request: httpx.Response(201, json={"id": "lead-123"}))


# ── Application ───────────────────────────────────────────────────

@pytest.fixture
def test_settings():
    return Settings(
        chat_api_url=CHAT_URL,
        slack_webhook_url=SLACK_URL,
        crm_provider="custom",
        crm_base_url=CRM_URL,
        crm_auto_sync=True,
        rate_limit_per_minute=100,
        debug_api_enabled=True,
        chat_api_key="secret-chat-key",
    )


@pytest.fixture
def make_services(clock, chat_backend, slack_webhook, crm_backend):
    """Build an isolated ``Services`` container and install it globally."""
    from api.services import Services, get_services, set_services

    original = get_services()

    def _make(settings):
        services = Services()
        services.initialize(
            settings=settings,
            clock=clock,
            chat_transport=chat_backend.transport,
            slack_transport=slack_webhook.transport,
            crm_transport=crm_backend.transport,
        )
        set_services(services)
        return services

    yield _make
    set_services(original)


@pytest.fixture
def services(make_services, test_settings):
    return make_services(test_settings)


@pytest.fixture
def client(services):
    """Create a FastAPI test client over the test services."""
    from api.main import create_app
    with TestClient(create_app()) as test_client:
        yield test_client
