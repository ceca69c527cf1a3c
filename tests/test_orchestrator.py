"""Tests for the chat orchestrator."""

import asyncio
from datetime import datetime, timezone

import httpx
import pytest

from common.errors import ChatServiceError, StateError, ValidationError
from conftest import CHAT_URL, CRM_URL, SCENARIO_MESSAGE, SLACK_URL, RecordingTransport
from lead_scoring.business_hours import BusinessHours
from lead_scoring.lead_router import LeadRouter, WebhookCRMAdapter
from lead_scoring.models import MessageRole
from lead_scoring.notification_gate import NotificationGate
from llm import ChatClient, SalesRoomOrchestrator
from llm.orchestrator import GREETING, HANDOFF_LIVE_MESSAGE, HANDOFF_OFFLINE_MESSAGE
from notifications import SlackNotifier


@pytest.fixture
def make_orchestrator(qualification, transcript_store, chat_backend, slack_webhook, crm_backend, clock):
    def _make(
        chat_transport=None,
        auto_sync=True,
        sync_triggers=("qualified", "handoff"),
        idle_ttl_ms=60_000,
        business_hours=None,
    ):
        return SalesRoomOrchestrator(
            qualification=qualification,
            gate=NotificationGate([60, 75], significant_change=15),
            transcripts=transcript_store,
            chat_client=ChatClient(CHAT_URL, transport=chat_transport or chat_backend.transport),
            slack=SlackNotifier(SLACK_URL, transport=slack_webhook.transport),
            lead_router=LeadRouter(
                WebhookCRMAdapter(CRM_URL, transport=crm_backend.transport),
                auto_sync=auto_sync,
                sync_triggers=sync_triggers,
            ),
            business_hours=business_hours,
            idle_ttl_ms=idle_ttl_ms,
            clock=clock,
        )
    return _make


@pytest.fixture
def orchestrator(make_orchestrator):
    return make_orchestrator()


class TestProcessMessage:
    async def test_scenario_turn(self, orchestrator, slack_webhook, crm_backend, transcript_store):
        turn = await orchestrator.process_message(SCENARIO_MESSAGE, "s1")

        assert turn.session_id == "s1"
        assert turn.response == "Great, let's get you connected with the right person."
        assert turn.source == "backend"
        assert turn.score == 78
        assert turn.previous_score == 0
        assert turn.ready_to_connect is True
        assert turn.became_ready is True
        assert turn.tags == ["warm"]
        assert turn.notified is True
        assert turn.crm_sync.crm_id == "lead-123"
        assert turn.to_dict()["crm_synced"] is True

        assert len(slack_webhook.requests) == 1
        assert len(crm_backend.requests) == 1

        stored = transcript_store.get_by_session("s1")
        assert stored.crm_synced is True
        assert stored.crm_id == "lead-123"
        roles = [m.role for m in stored.conversation.messages]
        assert roles == [MessageRole.ASSISTANT, MessageRole.USER, MessageRole.ASSISTANT]
        assert stored.conversation.messages[0].content == GREETING
        assert stored.conversation.messages[-1].metadata == {"source": "backend"}

    async def test_follow_up_without_change(self, orchestrator, slack_webhook, crm_backend):
        await orchestrator.process_message(SCENARIO_MESSAGE, "s1")
        turn = await orchestrator.process_message("Thanks, sounds good", "s1")

        assert turn.score == 78
        assert turn.previous_score == 78
        assert turn.became_ready is False
        assert turn.notified is False
        assert turn.crm_sync is None
        assert len(slack_webhook.requests) == 1
        assert len(crm_backend.requests) == 1

    async def test_no_auto_sync(self, make_orchestrator, crm_backend):
        turn = await make_orchestrator(auto_sync=False).process_message(SCENARIO_MESSAGE, "s1")
        assert turn.crm_sync is None
        assert crm_backend.requests == []

    async def test_session_id_generated(self, orchestrator):
        turn = await orchestrator.process_message("Hello there", None)
        assert turn.session_id
        assert orchestrator.get_conversation(turn.session_id) is not None

    async def test_prospect_details_reach_backend(self, orchestrator, chat_backend):
        await orchestrator.process_message(
            "Hello there",
            "s1",
            prospect={"name": " Dana Reyes ", "email": "dana@acme.io", "company": "Acme"},
        )

        conversation = orchestrator.get_conversation("s1")
        assert conversation.prospect.name == "Dana Reyes"
        context = chat_backend.json_bodies()[0]["context"]
        assert context["prospectName"] == "Dana Reyes"
        assert context["email"] == "dana@acme.io"
        assert context["previousMessages"] == [{"role": "assistant", "content": GREETING}]

    async def test_entities_extracted_from_message(self, orchestrator):
        await orchestrator.process_message("I'm Dana Reyes from Acme Robotics, email dana@acme.io", "s1")
        prospect = orchestrator.get_conversation("s1").prospect
        assert prospect.name == "Dana Reyes"
        assert prospect.email == "dana@acme.io"

    async def test_known_prospect_details_survive_later_messages(self, orchestrator):
        await orchestrator.process_message("Hello there", "s1", prospect={"name": "Dana Smith", "company": "Acme"})
        await orchestrator.process_message("I'm Interested in pricing, I work at Globex", "s1")

        prospect = orchestrator.get_conversation("s1").prospect
        assert prospect.name == "Dana Smith"
        assert prospect.company == "Acme"

    async def test_message_is_sanitised(self, orchestrator):
        await orchestrator.process_message("Hello   <b>there</b>", "s1")
        assert orchestrator.get_conversation("s1").messages[1].content == "Hello there"


class TestValidation:
    async def test_empty_message(self, orchestrator, chat_backend, transcript_store):
        with pytest.raises(ValidationError) as info:
            await orchestrator.process_message("   ", "s1")
        assert info.value.message == "Message cannot be empty"
        assert info.value.field == "message"
        assert chat_backend.requests == []
        assert orchestrator.get_conversation("s1") is None

    async def test_invalid_prospect(self, orchestrator):
        with pytest.raises(ValidationError) as info:
            await orchestrator.process_message("Hello", "s1", prospect={"email": "nope"})
        assert info.value.field == "email"
        assert orchestrator.get_conversation("s1") is None


class TestBackendFailures:
    async def test_unreachable_backend_uses_fallback(self, make_orchestrator, transcript_store):
        def down(request):
            raise httpx.ConnectError("refused", request=request)

        turn = await make_orchestrator(RecordingTransport(down).transport).process_message(SCENARIO_MESSAGE, "s1")

        assert turn.source == "fallback"
        assert turn.is_fallback is True
        assert turn.score == 78
        last = transcript_store.get_by_session("s1").conversation.messages[-1]
        assert last.metadata == {"source": "fallback", "errorKind": "network"}

    async def test_api_error_propagates_and_keeps_message(self, make_orchestrator, transcript_store):
        recorder = RecordingTransport(lambda r: httpx.Response(500, json={"error": "Model overloaded"}))
        orchestrator = make_orchestrator(recorder.transport)

        with pytest.raises(ChatServiceError):
            await orchestrator.process_message(SCENARIO_MESSAGE, "s1")

        messages = transcript_store.get_by_session("s1").conversation.messages
        assert messages[-1].content == SCENARIO_MESSAGE
        assert messages[-1].role == MessageRole.USER


class TestSessions:
    async def test_restored_from_storage(self, orchestrator, make_orchestrator):
        await orchestrator.process_message(SCENARIO_MESSAGE, "s1")

        restored = make_orchestrator().get_conversation("s1")
        assert restored.qualification_status.score == 78
        assert len(restored.messages) == 3

    async def test_same_session_is_serialised(self, orchestrator):
        await asyncio.gather(
            orchestrator.process_message("First question", "s1"),
            orchestrator.process_message("Second question", "s1"),
        )
        messages = orchestrator.get_conversation("s1").messages
        assert len(messages) == 5
        assert [m.role for m in messages[1:]] == [
            MessageRole.USER, MessageRole.ASSISTANT, MessageRole.USER, MessageRole.ASSISTANT,
        ]
        # Locks only live while a call holds or awaits them
        assert orchestrator._locks == {}

    async def test_reset_session(self, orchestrator):
        await orchestrator.process_message(SCENARIO_MESSAGE, "s1")
        orchestrator.reset_session("s1")
        assert "s1" not in orchestrator.active_sessions()
        # Stored transcript survives and is picked up again
        assert orchestrator.get_conversation("s1") is not None

    async def test_idle_sessions_are_evicted(self, make_orchestrator, clock):
        orchestrator = make_orchestrator(idle_ttl_ms=1000)
        await orchestrator.process_message("Hello there", "old")
        clock.advance(600)
        await orchestrator.process_message("Hello there", "recent")

        clock.advance(600)
        await orchestrator.process_message("Hello again", "new")

        assert sorted(orchestrator.active_sessions()) == ["new", "recent"]
        restored = orchestrator.get_conversation("old")
        assert len(restored.messages) == 3


class TestHandoff:
    async def test_handoff(self, orchestrator, slack_webhook, crm_backend, transcript_store):
        await orchestrator.process_message(SCENARIO_MESSAGE, "s1")
        result = await orchestrator.handoff("s1")

        assert result.score == 78
        assert result.slack_notified is True
        assert result.crm_sync.success is True
        assert slack_webhook.json_bodies()[-1]["text"].startswith("🚨 HANDOFF READY")

        lead, note = crm_backend.json_bodies()[-2:]
        assert lead["summary"].startswith("QUALIFICATION SCORE: 78%")
        assert note["type"] == "Conversation"
        assert note["text"].startswith("Sales Room Conversation Summary\nSession: s1")
        assert str(crm_backend.requests[-1].url) == f"{CRM_URL}/leads/lead-123/notes"
        assert transcript_store.get_summary("s1") is not None

    async def test_handoff_without_handoff_trigger(self, make_orchestrator, crm_backend, transcript_store):
        orchestrator = make_orchestrator(sync_triggers=["qualified"])
        await orchestrator.process_message("Hello there", "s1")

        result = await orchestrator.handoff("s1")

        assert result.slack_notified is True
        assert result.crm_sync is None
        assert crm_backend.requests == []
        assert transcript_store.get_summary("s1") is not None

    async def test_handoff_outside_business_hours(self, make_orchestrator, slack_webhook, crm_backend):
        saturday = datetime(2023, 11, 18, 11, 0, tzinfo=timezone.utc)
        orchestrator = make_orchestrator(business_hours=BusinessHours.weekly(clock=lambda: saturday))
        await orchestrator.process_message(SCENARIO_MESSAGE, "s1")

        result = await orchestrator.handoff("s1")

        assert result.within_business_hours is False
        assert result.to_dict()["message"] == HANDOFF_OFFLINE_MESSAGE
        assert result.crm_sync.success is True
        reminder = slack_webhook.json_bodies()[-1]["blocks"][-1]["elements"][0]["text"]
        assert reminder.startswith("Requested outside business hours")

    async def test_handoff_during_business_hours(self, make_orchestrator):
        tuesday = datetime(2023, 11, 14, 10, 0, tzinfo=timezone.utc)
        orchestrator = make_orchestrator(business_hours=BusinessHours.weekly(clock=lambda: tuesday))
        await orchestrator.process_message("Hello there", "s1")

        result = await orchestrator.handoff("s1")

        assert result.within_business_hours is True
        assert result.message == HANDOFF_LIVE_MESSAGE

    async def test_unknown_session(self, orchestrator):
        with pytest.raises(StateError) as info:
            await orchestrator.handoff("missing")
        assert info.value.status_code == 404

    async def test_summarize(self, orchestrator):
        await orchestrator.process_message(SCENARIO_MESSAGE, "s1")
        summary = orchestrator.summarize("s1")
        assert summary.session_id == "s1"
        assert summary.qualification_summary["score"] == 78
