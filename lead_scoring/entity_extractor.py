"""
Prospect entity extraction.

Pulls what a prospect says about themselves out of their chat messages:
- Name and company ("I'm Jane Doe", "I work at Acme")
- Email and phone
- Job title
- Budget amounts and timeline phrases
- Pain points
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .models import ProspectInfo
from .signal_detector import EMAIL_PATTERN, PHONE_PATTERN, SIGNAL_KEYWORDS

logger = logging.getLogger(__name__)


@dataclass
class ExtractedEntities:
    """Container for entities extracted from one message."""
    name: Optional[str] = None
    company: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    title: Optional[str] = None
    budget: Optional[str] = None
    timeline: Optional[str] = None
    pain_points: List[str] = field(default_factory=list)

    def has_contact_info(self) -> bool:
        return bool(self.email or self.phone)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "company": self.company,
            "email": self.email,
            "phone": self.phone,
            "title": self.title,
            "budget": self.budget,
            "timeline": self.timeline,
            "pain_points": self.pain_points,
        }


class EntityExtractor:
    """
    Extracts prospect details from chat messages with regular expressions.

    Trigger phrases match in any case; the captured name or company must be
    capitalised, so "I'm the VP" does not yield a name.
    """

    NAME_PATTERN = re.compile(r"(?i:\bi'm |\bmy name is |\bi am )([A-Z][a-z]+(?: [A-Z][a-z]+)?)")
    COMPANY_PATTERN = re.compile(
        r"(?i:\bwork at |\bwork for |\bcompany is |\bat )([A-Z][a-zA-Z0-9&]*(?: [A-Z][a-zA-Z0-9&]*)*)"
    )

    TITLES = [
        "ceo", "cto", "cfo", "coo", "founder", "co-founder", "owner",
        "vp of sales", "vp", "head of sales", "sales director", "director",
        "sales manager", "manager",
    ]
    TITLE_PATTERN = re.compile(
        r"\b(?:i'm|i am|as)\s+(?:the|a|an)?\s*(" + "|".join(re.escape(t) for t in TITLES) + r")\b",
        re.IGNORECASE,
    )

    BUDGET_PATTERN = re.compile(
        r"\$\s?\d[\d,]*(?:\.\d+)?\s?(?:k|m|K|M)?(?:\s?(?:-|to)\s?\$?\s?\d[\d,]*(?:\.\d+)?\s?(?:k|m|K|M)?)?"
        r"(?:\s?(?:/|per\s)(?:month|mo|year|yr))?"
    )

    TIMELINE_PATTERN = re.compile(
        r"\b(asap|immediately|this (?:week|month|quarter|year)|next (?:week|month|quarter|year)"
        r"|within \d+ (?:days|weeks|months)|in \d+ (?:days|weeks|months)|by (?:the )?end of \w+)\b",
        re.IGNORECASE,
    )

    PAIN_SPLIT = re.compile(r"[.!?]+")

    def __init__(self, pain_keywords: Optional[List[str]] = None):
        self.pain_keywords = [k.lower() for k in (pain_keywords or SIGNAL_KEYWORDS["painPoint"])]

    def extract(self, text: str) -> ExtractedEntities:
        entities = ExtractedEntities()

        match = self.NAME_PATTERN.search(text)
        if match:
            entities.name = match.group(1).strip()

        match = self.COMPANY_PATTERN.search(text)
        if match:
            entities.company = match.group(1).strip()

        match = EMAIL_PATTERN.search(text)
        if match:
            entities.email = match.group(0)

        match = PHONE_PATTERN.search(text)
        if match:
            entities.phone = match.group(0).strip()

        match = self.TITLE_PATTERN.search(text)
        if match:
            entities.title = match.group(1).upper() if len(match.group(1)) <= 3 else match.group(1).title()

        match = self.BUDGET_PATTERN.search(text)
        if match:
            entities.budget = match.group(0).strip()

        match = self.TIMELINE_PATTERN.search(text)
        if match:
            entities.timeline = match.group(1).lower()

        entities.pain_points = self._extract_pain_points(text)
        return entities

    def _extract_pain_points(self, text: str) -> List[str]:
        points = []
        for sentence in self.PAIN_SPLIT.split(text):
            trimmed = sentence.strip()
            if trimmed and any(k in trimmed.lower() for k in self.pain_keywords):
                points.append(trimmed)
        return points

    def apply(self, prospect: ProspectInfo, text: str) -> ExtractedEntities:
        """
        Extract from ``text`` and merge the findings into ``prospect``.

        Only empty fields are filled; details already known are kept.
        """
        entities = self.extract(text)
        prospect.fill(
            name=entities.name,
            company=entities.company,
            email=entities.email,
            phone=entities.phone,
            title=entities.title,
            budget=entities.budget,
            timeline=entities.timeline,
        )
        for point in entities.pain_points:
            if point not in prospect.pain_points:
                prospect.pain_points.append(point)
        return entities
