"""
Keyword-based qualification signal detection.

A signal fires when any keyword of its list occurs as a case-insensitive
substring of the text. There is no stemming and no negation handling:
"no budget" and "have budget" both fire the ``budget`` signal.

Keyword tables are pluggable per deployment. Two vocabularies ship:

- ``bant``: budget / authority / need / timeline, used by the
  weighted-confidence qualification flow
- ``signals``: budget / timeline / painPoint / demoInterest, used by the
  boolean point-weight flow
"""

import logging
import re
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from common.errors import StateError
from .models import Message

logger = logging.getLogger(__name__)

KeywordTable = Mapping[str, Sequence[str]]

BANT_KEYWORDS: Dict[str, List[str]] = {
    "budget": [
        "budget", "cost", "price", "expensive", "affordable", "invest",
        "roi", "worth", "value", "money", "financial", "funds", "allocated",
    ],
    "authority": [
        "decision", "decide", "choose", "approve", "manager", "director",
        "ceo", "cto", "owner", "founder", "lead", "responsible", "authority",
        "vp", "signs off",
    ],
    "need": [
        "problem", "issue", "challenge", "struggle", "difficult", "pain",
        "frustrat", "inefficient", "slow", "manual", "broken", "need help",
        "need this", "we need",
    ],
    "timeline": [
        "soon", "urgent", "immediately", "asap", "this month", "next month",
        "next quarter", "by end of", "timeline", "deadline", "when", "schedule",
    ],
}

SIGNAL_KEYWORDS: Dict[str, List[str]] = {
    "budget": [
        "budget", "pricing", "price", "cost", "invest", "roi", "spend",
        "afford", "pay", "subscription", "monthly", "annual",
    ],
    "timeline": [
        "timeline", "timeframe", "next month", "next quarter", "this quarter",
        "by end of", "asap", "soon", "urgent", "immediately", "weeks", "days",
    ],
    "painPoint": [
        "pain", "problem", "challenge", "struggle", "manual", "slow",
        "inefficient", "frustrated", "time-consuming", "bottleneck",
        "difficult", "broken",
    ],
    "demoInterest": [
        "demo", "trial", "see it", "show me", "walkthrough", "presentation",
        "call", "meeting", "schedule", "book",
    ],
}

KEYWORD_TABLES: Dict[str, Dict[str, List[str]]] = {
    "bant": BANT_KEYWORDS,
    "signals": SIGNAL_KEYWORDS,
}

EMAIL_PATTERN = re.compile(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b')
PHONE_PATTERN = re.compile(
    r'(?:\+\d{1,3}[\s-]?)?'
    r'(?:'
    r'\(?\d{3}\)?[\s.-]?\d{3}[\s.-]?\d{4}'  # 3-3-4 format
    r'|\d{10}'
    r')'
)


class SignalDetector:
    """
    Detects qualification signals in conversation text.

    Args:
        keywords: Mapping of signal type to keyword list
        window: Number of most recent messages considered by the batch form
    """

    def __init__(self, keywords: Optional[KeywordTable] = None, window: int = 10):
        table = keywords if keywords is not None else BANT_KEYWORDS
        self.keywords: Dict[str, List[str]] = {
            signal: [kw.lower() for kw in words] for signal, words in table.items()
        }
        self.window = window

    @classmethod
    def from_table(cls, name: str, window: int = 10) -> "SignalDetector":
        """Build a detector from one of the registered keyword tables."""
        if name not in KEYWORD_TABLES:
            raise StateError(
                f"Unknown keyword table: {name}",
                context={"available": sorted(KEYWORD_TABLES)},
            )
        return cls(KEYWORD_TABLES[name], window=window)

    @property
    def signal_types(self) -> List[str]:
        return list(self.keywords.keys())

    def detect_signal(self, text: str, signal_type: str) -> bool:
        """True if ``text`` contains any keyword of ``signal_type``."""
        if signal_type not in self.keywords:
            raise StateError(
                f"Unknown signal type: {signal_type}",
                context={"signal_types": self.signal_types},
            )
        lower = text.lower()
        return any(keyword in lower for keyword in self.keywords[signal_type])

    def detect_all(self, text: str) -> Dict[str, bool]:
        return {signal: self.detect_signal(text, signal) for signal in self.keywords}

    def recent_user_messages(self, messages: Sequence[Message]) -> List[Message]:
        """User messages among the last ``window`` messages."""
        recent = list(messages)[-self.window:] if self.window > 0 else []
        return [m for m in recent if m.is_user]

    def window_text(self, messages: Sequence[Message]) -> str:
        """Lower-cased user text of the recent window, space-joined."""
        return " ".join(m.content.lower() for m in self.recent_user_messages(messages))

    def collect_evidence(
        self,
        messages: Sequence[Message],
        signal_types: Optional[Iterable[str]] = None,
    ) -> Dict[str, List[str]]:
        """
        Collect the user messages that triggered each signal.

        Only the last ``window`` messages are scanned and assistant messages
        never contribute. Signals with no evidence map to an empty list.
        """
        user_messages = self.recent_user_messages(messages)
        evidence: Dict[str, List[str]] = {}
        for signal in signal_types or self.keywords:
            evidence[signal] = [
                m.content for m in user_messages if self.detect_signal(m.content, signal)
            ]
        return evidence


def detect_contact_info(text: str) -> bool:
    """True if the text contains something that looks like an email or phone number."""
    return bool(EMAIL_PATTERN.search(text) or PHONE_PATTERN.search(text))
