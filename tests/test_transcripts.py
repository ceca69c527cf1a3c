"""Tests for the transcript / lead store."""

import json
from datetime import timedelta

import pytest

from conftest import SCENARIO_MESSAGE
from lead_scoring.models import CriterionStatus, Message, MessageRole
from storage import ExpiringSessionStore, MemorySessionBackend
from transcripts import DEFAULT_LEAD_TAGS, TranscriptStore, assign_tags, build_summary
from transcripts.store import SUMMARIES_KEY, TRANSCRIPTS_KEY, summary_key


def _with_score(conversation, score):
    conversation.qualification_status.score = score
    return conversation


class TestTags:
    @pytest.mark.parametrize("score,expected", [
        (0, ["cold"]),
        (59, ["cold"]),
        (60, ["warm"]),
        (84, ["warm"]),
        (85, ["hot"]),
        (100, ["hot"]),
    ])
    def test_score_ranges_are_exclusive(self, make_conversation, score, expected):
        conversation = _with_score(make_conversation("hello"), score)
        assert [t.id for t in assign_tags(conversation)] == expected

    def test_keyword_tags_scan_whole_history(self, make_conversation):
        conversation = make_conversation(
            "We are a global enterprise",
            *[f"message {i}" for i in range(15)],
            "Also this is urgent",
        )
        ids = [t.id for t in assign_tags(_with_score(conversation, 90))]
        assert ids == ["hot", "enterprise", "urgent"]

    def test_tags_are_not_sticky(self, make_conversation):
        conversation = _with_score(make_conversation("hello"), 90)
        assert [t.id for t in assign_tags(conversation)] == ["hot"]
        conversation.qualification_status.score = 40
        assert [t.id for t in assign_tags(conversation)] == ["cold"]

    def test_default_tag_colours(self):
        colours = {t.id: t.color for t in DEFAULT_LEAD_TAGS}
        assert colours["hot"] == "#ef4444"
        assert colours["warm"] == "#f59e0b"


class TestStore:
    def test_store_and_read_back(self, transcript_store, qualified_conversation):
        stored = transcript_store.store(qualified_conversation)
        assert [t.id for t in stored.tags] == ["warm"]

        loaded = transcript_store.get_by_session("scenario")
        assert loaded.score == 78
        assert loaded.conversation.messages[-1].content == SCENARIO_MESSAGE
        assert loaded.conversation.qualification_status.criteria["budget"].status == CriterionStatus.QUALIFIED

    def test_store_is_idempotent(self, transcript_store, qualified_conversation):
        first = transcript_store.store(qualified_conversation)
        analytics = transcript_store.get_analytics().to_dict()

        for _ in range(3):
            again = transcript_store.store(qualified_conversation)

        assert [t.id for t in again.tags] == [t.id for t in first.tags]
        assert again.score == first.score
        assert len(transcript_store.get_stored_transcripts()) == 1
        assert transcript_store.get_analytics().to_dict() == analytics

    def test_upsert_by_session_id(self, transcript_store, make_conversation):
        transcript_store.store(make_conversation("first", session_id="a"))
        transcript_store.store(make_conversation("second", session_id="b"))
        transcript_store.store(make_conversation("first again", session_id="a"))

        stored = {t.session_id: t for t in transcript_store.get_stored_transcripts()}
        assert set(stored) == {"a", "b"}
        assert stored["a"].conversation.messages[-1].content == "first again"

    def test_persisted_under_expiring_key(self, transcript_store, backend, qualified_conversation):
        transcript_store.store(qualified_conversation)
        envelope = json.loads(backend.get_item(TRANSCRIPTS_KEY))
        assert envelope["value"][0]["sessionId"] == "scenario"
        assert envelope["value"][0]["crmSynced"] is False

    def test_transcripts_expire(self, transcript_store, clock, qualified_conversation):
        transcript_store.store(qualified_conversation)
        clock.advance(transcript_store.retention_ms + 1)
        assert transcript_store.get_stored_transcripts() == []

    def test_restore_keeps_crm_state(self, transcript_store, qualified_conversation):
        transcript_store.store(qualified_conversation)
        assert transcript_store.mark_crm_synced("scenario", "lead-9") is True

        stored = transcript_store.store(qualified_conversation)
        assert stored.crm_synced is True
        assert stored.crm_id == "lead-9"

    def test_mark_unknown_session(self, transcript_store):
        assert transcript_store.mark_crm_synced("missing") is False

    def test_get_by_prospect(self, transcript_store, make_conversation):
        older = make_conversation("hello", session_id="old")
        older.prospect.email = "dana@acme.io"
        newer = make_conversation("hello again", session_id="new")
        newer.prospect.email = "dana@acme.io"
        other = make_conversation("hi", session_id="other")
        other.prospect.email = "sam@else.io"

        for conversation in (older, other, newer):
            transcript_store.store(conversation)

        assert [t.session_id for t in transcript_store.get_by_prospect("dana@acme.io")] == ["new", "old"]

    def test_search(self, transcript_store, qualified_conversation, make_conversation):
        other = make_conversation("Just browsing", session_id="browsing")
        other.prospect.company = "Initech"
        transcript_store.store(qualified_conversation)
        transcript_store.store(other)

        assert [t.session_id for t in transcript_store.search("SIGNS OFF")] == ["scenario"]
        assert [t.session_id for t in transcript_store.search("initech")] == ["browsing"]
        assert [t.session_id for t in transcript_store.search("warm lead")] == ["scenario"]
        assert transcript_store.search("nothing like this") == []

    def test_unreadable_entries_are_skipped(self, transcript_store, session_store, qualified_conversation):
        transcript_store.store(qualified_conversation)
        items = session_store.get(TRANSCRIPTS_KEY)
        items.append({"garbage": True})
        session_store.set(TRANSCRIPTS_KEY, items)

        assert [t.session_id for t in transcript_store.get_stored_transcripts()] == ["scenario"]


class TestInMemoryFallback:
    def test_unavailable_storage(self, make_conversation):
        store = TranscriptStore(ExpiringSessionStore(MemorySessionBackend(available=False)))
        assert store.in_memory is True

        store.store(make_conversation("hello", session_id="a"))
        assert [t.session_id for t in store.get_stored_transcripts()] == ["a"]

    def test_failed_write_switches_to_memory(self, make_conversation):
        backend = MemorySessionBackend(quota_bytes=2000)
        store = TranscriptStore(ExpiringSessionStore(backend))
        assert store.in_memory is False

        conversation = make_conversation("x" * 3000, session_id="big")
        store.store(conversation)

        assert store.in_memory is True
        assert store.get_by_session("big") is not None

    def test_switch_keeps_persisted_entries(self, make_conversation):
        store = TranscriptStore(ExpiringSessionStore(MemorySessionBackend(quota_bytes=20000)))
        small = make_conversation("Our reporting is slow", session_id="small")
        store.store(small)
        store.generate_summary(small)
        assert store.in_memory is False

        store.store(make_conversation("x" * 20000, session_id="big"))

        assert store.in_memory is True
        assert store.get_summary("small").session_id == "small"
        assert [t.session_id for t in store.get_stored_transcripts()] == ["small", "big"]


class TestAnalytics:
    def test_empty(self, transcript_store):
        assert transcript_store.get_analytics().to_dict() == {
            "total_conversations": 0,
            "hot_leads": 0,
            "warm_leads": 0,
            "cold_leads": 0,
            "avg_qualification_score": 0,
            "avg_message_count": 0,
            "crm_synced_count": 0,
            "tag_distribution": {},
        }

    def test_aggregates(self, transcript_store, make_conversation):
        scores = {"hot": 90, "warm": 70, "cold": 20}
        for session_id, score in scores.items():
            transcript_store.store(_with_score(make_conversation("hello", session_id=session_id), score))
        transcript_store.mark_crm_synced("hot", "lead-1")

        analytics = transcript_store.get_analytics()
        assert analytics.total_conversations == 3
        assert (analytics.hot_leads, analytics.warm_leads, analytics.cold_leads) == (1, 1, 1)
        assert analytics.avg_qualification_score == 60
        assert analytics.avg_message_count == 2
        assert analytics.crm_synced_count == 1
        assert analytics.tag_distribution == {"Hot Lead": 1, "Warm Lead": 1, "Cold Lead": 1}


class TestSummaries:
    def test_build_summary(self, qualified_conversation):
        qualified_conversation.prospect.update(name="Dana Reyes", email="dana@acme.io")
        summary = build_summary(qualified_conversation)

        assert summary.id == "summary-scenario"
        assert "Contact: Dana Reyes" in summary.key_points
        assert "Qualified: Budget, Authority, Need, Timeline" in summary.key_points
        assert summary.qualification_summary["score"] == 78
        assert summary.qualification_summary["readyToConnect"] is True
        assert summary.next_steps[:2] == ["Schedule demo or discovery call", "Prepare personalized proposal"]
        assert summary.message_count == 2
        assert 0 < summary.ai_confidence <= 1

    def test_concerns(self, make_conversation):
        conversation = make_conversation("I'm worried about the rollout risk. Otherwise great")
        summary = build_summary(conversation)
        assert summary.concerns == ["user: I'm worried about the rollout risk"]

    def test_next_steps_for_cold_lead(self, make_conversation):
        summary = build_summary(make_conversation("hello"))
        assert summary.next_steps == [
            "Nurture lead with relevant content",
            "Follow up in 2-4 weeks",
            "Capture contact information",
            "Understand budget requirements",
        ]

    def test_generate_persists_and_mirrors(self, transcript_store, backend, qualified_conversation):
        summary = transcript_store.generate_summary(qualified_conversation)

        assert transcript_store.get_summary("scenario").to_dict() == summary.to_dict()
        envelope = json.loads(backend.get_item(SUMMARIES_KEY))
        assert envelope["value"][0]["id"] == "summary-scenario"
        raw = json.loads(backend.get_item(summary_key("scenario")))
        assert raw["sessionId"] == "scenario"
        assert "expiresAt" not in raw

    def test_missing_summary(self, transcript_store):
        assert transcript_store.get_summary("nope") is None

    def test_duration(self, make_conversation):
        conversation = make_conversation("hello")
        first = conversation.messages[0]
        later = Message(
            id="late",
            content="still here",
            role=MessageRole.USER,
            timestamp=first.timestamp + timedelta(minutes=12),
        )
        conversation.append(later)
        assert build_summary(conversation).duration == 12
