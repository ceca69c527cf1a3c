"""
Transcript / lead store.

Persists ``StoredConversation`` snapshots and their summaries in the
expiring session store under fixed keys. Every write re-reads the whole
list, replaces or appends one entry by ``session_id`` and writes the whole
list back, so a write is O(n) in the number of stored conversations. There
is a single writer per store; concurrent writers from other processes
would race on that read-modify-write cycle.

When session storage is unavailable, or a write is rejected, the store
switches to an in-memory copy for the rest of its life.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from lead_scoring.models import Conversation
from storage import DEFAULT_PII_TTL_MS, ExpiringSessionStore
from .models import LeadTag, StoredConversation, TranscriptSummary
from .summary import build_summary
from .tags import assign_tags

logger = logging.getLogger(__name__)

TRANSCRIPTS_KEY = "salesfusion_transcripts"
SUMMARIES_KEY = "salesfusion_summaries"


def summary_key(session_id: str) -> str:
    return f"summary-{session_id}"


@dataclass
class TranscriptAnalytics:
    """Aggregates over every stored conversation, computed by full scan."""
    total_conversations: int = 0
    hot_leads: int = 0
    warm_leads: int = 0
    cold_leads: int = 0
    avg_qualification_score: int = 0
    avg_message_count: int = 0
    crm_synced_count: int = 0
    tag_distribution: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_conversations": self.total_conversations,
            "hot_leads": self.hot_leads,
            "warm_leads": self.warm_leads,
            "cold_leads": self.cold_leads,
            "avg_qualification_score": self.avg_qualification_score,
            "avg_message_count": self.avg_message_count,
            "crm_synced_count": self.crm_synced_count,
            "tag_distribution": dict(self.tag_distribution),
        }


class TranscriptStore:
    """
    Stores conversation transcripts, derived tags and summaries.

    Args:
        session_store: Expiring store that holds the persisted lists
        retention_ms: TTL applied to every write
        tags: Tag definitions used by ``assign_tags``; the defaults if omitted
    """

    def __init__(
        self,
        session_store: ExpiringSessionStore,
        retention_ms: int = DEFAULT_PII_TTL_MS,
        tags: Optional[Sequence[LeadTag]] = None,
    ):
        self.session_store = session_store
        self.retention_ms = retention_ms
        self.tags = list(tags) if tags is not None else None

        self._in_memory_transcripts: List[Dict[str, Any]] = []
        self._in_memory_summaries: List[Dict[str, Any]] = []
        self._use_memory = not session_store.is_available()

        if self._use_memory:
            logger.warning("Session storage unavailable, transcripts will be kept in memory")
        else:
            self.session_store.purge_expired([TRANSCRIPTS_KEY, SUMMARIES_KEY])

    @property
    def in_memory(self) -> bool:
        return self._use_memory

    # ── Raw list access ───────────────────────────────────────────

    def _load(self, key: str, fallback: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if self._use_memory:
            return list(fallback)
        stored = self.session_store.get(key)
        if not isinstance(stored, list):
            return []
        return stored

    def _save(self, key: str, items: List[Dict[str, Any]]) -> None:
        if not self._use_memory and self.session_store.set(key, items, self.retention_ms):
            return
        if not self._use_memory:
            logger.warning(f"Could not persist {key!r}, switching to in-memory storage")
            # Carry over what is already persisted under both keys
            self._in_memory_transcripts = self._load(TRANSCRIPTS_KEY, [])
            self._in_memory_summaries = self._load(SUMMARIES_KEY, [])
            self._use_memory = True
        if key == TRANSCRIPTS_KEY:
            self._in_memory_transcripts = items
        else:
            self._in_memory_summaries = items

    @staticmethod
    def _upsert(items: List[Dict[str, Any]], entry: Dict[str, Any]) -> List[Dict[str, Any]]:
        for index, existing in enumerate(items):
            if existing.get("sessionId") == entry["sessionId"]:
                items[index] = entry
                break
        else:
            items.append(entry)
        return items

    # ── Transcripts ───────────────────────────────────────────────

    def assign_tags(self, conversation: Conversation) -> List[LeadTag]:
        return assign_tags(conversation, self.tags)

    def store(self, conversation: Conversation) -> StoredConversation:
        """
        Upsert ``conversation`` by session id with freshly derived tags.

        CRM sync state and any attached summary of an existing entry are kept.
        """
        previous = self.get_by_session(conversation.session_id)
        stored = StoredConversation(
            conversation=conversation,
            tags=self.assign_tags(conversation),
            crm_synced=previous.crm_synced if previous else False,
            crm_id=previous.crm_id if previous else None,
            summary=previous.summary if previous else None,
            last_activity=datetime.utcnow(),
        )

        items = self._load(TRANSCRIPTS_KEY, self._in_memory_transcripts)
        self._save(TRANSCRIPTS_KEY, self._upsert(items, stored.to_dict()))
        logger.debug(
            f"Stored transcript {conversation.session_id} "
            f"(score={stored.score}, tags={[t.id for t in stored.tags]})"
        )
        return stored

    def get_stored_transcripts(self) -> List[StoredConversation]:
        transcripts = []
        for item in self._load(TRANSCRIPTS_KEY, self._in_memory_transcripts):
            try:
                transcripts.append(StoredConversation.from_dict(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.error(f"Skipping unreadable stored transcript: {e}")
        return transcripts

    def get_by_session(self, session_id: str) -> Optional[StoredConversation]:
        for transcript in self.get_stored_transcripts():
            if transcript.session_id == session_id:
                return transcript
        return None

    def get_by_prospect(self, email: str) -> List[StoredConversation]:
        """Conversations of the prospect with ``email``, most recently active first."""
        matches = [
            t for t in self.get_stored_transcripts()
            if t.conversation.prospect.email == email
        ]
        return sorted(matches, key=lambda t: t.last_activity, reverse=True)

    def mark_crm_synced(self, session_id: str, crm_id: Optional[str] = None) -> bool:
        items = self._load(TRANSCRIPTS_KEY, self._in_memory_transcripts)
        for item in items:
            if item.get("sessionId") == session_id:
                item["crmSynced"] = True
                if crm_id is not None:
                    item["crmId"] = crm_id
                self._save(TRANSCRIPTS_KEY, items)
                return True
        return False

    def search(self, query: str) -> List[StoredConversation]:
        """
        Case-insensitive match against prospect name, email and company,
        message content, and tag names.
        """
        needle = query.lower()
        results = []

        for transcript in self.get_stored_transcripts():
            prospect = transcript.conversation.prospect
            fields = [prospect.name, prospect.email, prospect.company]
            if any(value and needle in value.lower() for value in fields):
                results.append(transcript)
            elif any(needle in m.content.lower() for m in transcript.conversation.messages):
                results.append(transcript)
            elif any(needle in tag.name.lower() for tag in transcript.tags):
                results.append(transcript)

        return results

    def get_analytics(self) -> TranscriptAnalytics:
        transcripts = self.get_stored_transcripts()
        if not transcripts:
            return TranscriptAnalytics()

        total = len(transcripts)
        distribution: Dict[str, int] = {}
        for transcript in transcripts:
            for tag in transcript.tags:
                distribution[tag.name] = distribution.get(tag.name, 0) + 1

        return TranscriptAnalytics(
            total_conversations=total,
            hot_leads=sum(1 for t in transcripts if t.has_tag("hot")),
            warm_leads=sum(1 for t in transcripts if t.has_tag("warm")),
            cold_leads=sum(1 for t in transcripts if t.has_tag("cold")),
            avg_qualification_score=round(sum(t.score for t in transcripts) / total),
            avg_message_count=round(sum(len(t.conversation.messages) for t in transcripts) / total),
            crm_synced_count=sum(1 for t in transcripts if t.crm_synced),
            tag_distribution=distribution,
        )

    # ── Summaries ─────────────────────────────────────────────────

    def generate_summary(self, conversation: Conversation) -> TranscriptSummary:
        """Build a summary of ``conversation`` and persist it."""
        summary = build_summary(conversation)
        data = summary.to_dict()

        items = self._load(SUMMARIES_KEY, self._in_memory_summaries)
        self._save(SUMMARIES_KEY, self._upsert(items, data))

        # Raw copy without the expiry envelope
        self.session_store.set_item(summary_key(conversation.session_id), json.dumps(data))
        return summary

    def get_summary(self, session_id: str) -> Optional[TranscriptSummary]:
        for item in self._load(SUMMARIES_KEY, self._in_memory_summaries):
            if item.get("sessionId") == session_id:
                return TranscriptSummary.from_dict(item)
        return None
