"""
Qualification state machine.

Each criterion starts ``unknown`` with zero confidence and moves to
``qualified`` or ``unqualified`` when evidence shows up in the user's recent
messages. There is no transition back to ``unknown`` and no terminal state:
a later detection simply overwrites the earlier one (last write wins).

Every assessment recomputes all criteria from the recent message window,
then the score, then ``ready_to_connect``, and returns a fresh
``QualificationStatus``. Callers never see updated criteria with a stale
score. The service does not send notifications itself; it reports the
previous score and whether readiness was just reached.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from common.errors import StateError
from .models import (
    AIAssessment,
    CriterionStatus,
    Message,
    QualificationCriterion,
    QualificationSchema,
    QualificationStatus,
)
from .scoring_model import Scorer, WeightedConfidenceScorer
from .signal_detector import BANT_KEYWORDS, SIGNAL_KEYWORDS, SignalDetector, detect_contact_info

logger = logging.getLogger(__name__)


@dataclass
class CriterionRule:
    """
    How one criterion is assessed.

    ``signal`` names the keyword list that must fire before the criterion
    is touched at all. Once it fires, ``positive`` phrases qualify,
    ``negative`` phrases disqualify, and otherwise ``default_status`` applies.
    """
    signal: str
    confidence: float
    positive: Sequence[str] = ()
    negative: Sequence[str] = ()
    default_status: CriterionStatus = CriterionStatus.UNKNOWN
    question: Optional[str] = None
    matcher: Optional[Callable[[str], bool]] = None

    def detect(self, detector: SignalDetector, text: str) -> bool:
        if self.matcher is not None:
            return self.matcher(text)
        return detector.detect_signal(text, self.signal)

    def assess(self, text: str) -> CriterionStatus:
        lower = text.lower()
        if any(phrase in lower for phrase in self.positive):
            return CriterionStatus.QUALIFIED
        if any(phrase in lower for phrase in self.negative):
            return CriterionStatus.UNQUALIFIED
        return self.default_status


BANT_RULES: Dict[str, CriterionRule] = {
    "budget": CriterionRule(
        signal="budget",
        confidence=0.8,
        positive=["budget allocated", "have budget", "have a budget", "can invest", "worth it", "approved budget", "budget approved"],
        negative=["no budget", "too expensive", "cannot afford", "can't afford", "budget constraints"],
        question="What's your budget range for solving this challenge?",
    ),
    "authority": CriterionRule(
        signal="authority",
        confidence=0.7,
        positive=["ceo", "cto", "vp", "director", "manager", "owner", "founder", "decision maker", "signs off"],
        negative=["intern", "assistant", "junior", "need approval"],
        question="Who else would be involved in making this decision?",
    ),
    "need": CriterionRule(
        signal="need",
        confidence=0.85,
        default_status=CriterionStatus.QUALIFIED,  # Pain points usually indicate qualified need
        question="What's the biggest pain point you're facing right now?",
    ),
    "timeline": CriterionRule(
        signal="timeline",
        confidence=0.75,
        positive=["urgent", "asap", "immediately", "this month", "next month", "this quarter", "this week", "soon"],
        negative=["maybe next year", "not urgent", "no rush", "someday"],
        question="When are you looking to have a solution in place?",
    ),
}

SIGNAL_RULES: Dict[str, CriterionRule] = {
    "budget": CriterionRule(
        signal="budget", confidence=0.8, default_status=CriterionStatus.QUALIFIED,
        question="What's your budget range for solving this challenge?",
    ),
    "timeline": CriterionRule(
        signal="timeline", confidence=0.75, default_status=CriterionStatus.QUALIFIED,
        question="When are you looking to have a solution in place?",
    ),
    "painPoint": CriterionRule(
        signal="painPoint", confidence=0.85, default_status=CriterionStatus.QUALIFIED,
        question="What's the biggest pain point you're facing right now?",
    ),
    "contactInfo": CriterionRule(
        signal="contactInfo", confidence=0.95, default_status=CriterionStatus.QUALIFIED,
        matcher=detect_contact_info,
        question="What's the best email to send a follow-up to?",
    ),
    "demoInterest": CriterionRule(
        signal="demoInterest", confidence=0.9, default_status=CriterionStatus.QUALIFIED,
        question="Would a short personalised demo be useful?",
    ),
}


def _criterion(id: str, name: str, description: str, weight: float) -> QualificationCriterion:
    return QualificationCriterion(id=id, name=name, description=description, weight=weight)


DEFAULT_BANT_SCHEMA = QualificationSchema(
    id="bant-default",
    name="BANT (Budget, Authority, Need, Timeline)",
    score_threshold=75,
    criteria=[
        _criterion("budget", "Budget", "Has budget allocated or authority to allocate budget", 0.25),
        _criterion("authority", "Authority", "Has decision-making power or influences the decision", 0.25),
        _criterion("need", "Need", "Has a clear business need or pain point", 0.3),
        _criterion("timeline", "Timeline", "Has a defined timeframe for implementation", 0.2),
    ],
)

SAAS_QUALIFICATION_SCHEMA = QualificationSchema(
    id="saas-custom",
    name="SaaS Qualification",
    score_threshold=70,
    criteria=DEFAULT_BANT_SCHEMA.criteria + [
        _criterion("tech-stack", "Tech Stack Fit", "Current technology stack is compatible", 0.15),
        _criterion("team-size", "Team Size", "Team size fits our ideal customer profile", 0.1),
    ],
)

SIGNALS_SCHEMA = QualificationSchema(
    id="signals",
    name="Buying Signals",
    score_threshold=75,
    criteria=[
        _criterion("budget", "Budget", "Talked about pricing or budget", 0.2),
        _criterion("timeline", "Timeline", "Mentioned a timeframe", 0.15),
        _criterion("painPoint", "Pain Point", "Described a problem worth solving", 0.15),
        _criterion("contactInfo", "Contact Info", "Shared an email or phone number", 0.1),
        _criterion("demoInterest", "Demo Interest", "Asked for a demo, trial or call", 0.15),
    ],
)

AVAILABLE_SCHEMAS: Dict[str, QualificationSchema] = {
    s.id: s for s in (DEFAULT_BANT_SCHEMA, SAAS_QUALIFICATION_SCHEMA, SIGNALS_SCHEMA)
}

SCHEMA_KEYWORDS = {
    "bant-default": BANT_KEYWORDS,
    "saas-custom": BANT_KEYWORDS,
    "signals": SIGNAL_KEYWORDS,
}

SCHEMA_RULES = {
    "bant-default": BANT_RULES,
    "saas-custom": BANT_RULES,
    "signals": SIGNAL_RULES,
}

CRITERION_NAMES = {
    "budget": "Budget",
    "timeline": "Timeline",
    "painPoint": "Pain Point",
    "authority": "Authority",
    "need": "Need",
}


def schema_from_config(
    criteria_config: Mapping[str, Mapping[str, object]],
    threshold: int,
) -> Tuple[QualificationSchema, Dict[str, List[str]], Dict[str, CriterionRule]]:
    """
    Build a schema, keyword table and rules from the
    ``criteria.{budget,timeline,painPoint,authority,need}`` settings block.

    Weights are given in points and normalised to fractions of their sum.
    """
    total = sum(float(c["weight"]) for c in criteria_config.values()) or 1.0
    criteria = []
    keywords: Dict[str, List[str]] = {}
    rules: Dict[str, CriterionRule] = {}

    for criterion_id, config in criteria_config.items():
        criteria.append(_criterion(
            criterion_id,
            CRITERION_NAMES.get(criterion_id, criterion_id),
            "Required criterion" if config.get("required") else "",
            float(config["weight"]) / total,
        ))
        keywords[criterion_id] = list(config.get("keywords", []))
        base = BANT_RULES.get(criterion_id)
        if base is not None:
            rules[criterion_id] = replace(base, signal=criterion_id)
        else:
            rules[criterion_id] = CriterionRule(
                signal=criterion_id,
                confidence=0.85,
                default_status=CriterionStatus.QUALIFIED,
            )

    schema = QualificationSchema(
        id="configured",
        name="Configured Qualification",
        score_threshold=threshold,
        criteria=criteria,
    )
    return schema, keywords, rules


@dataclass
class QualificationUpdate:
    """Result of one assessment cycle."""
    status: QualificationStatus
    previous_score: int
    threshold: int
    changed_criteria: List[str] = field(default_factory=list)

    @property
    def score(self) -> int:
        return self.status.score

    @property
    def score_delta(self) -> int:
        return self.status.score - self.previous_score

    @property
    def became_ready(self) -> bool:
        return self.status.ready_to_connect and self.previous_score < self.threshold


class QualificationService:
    """
    Tracks criterion statuses and the overall score for conversations.

    Args:
        schema: Active qualification schema
        scorer: Scoring strategy (weighted confidence by default)
        detector: Signal detector; built from the schema's keyword table if omitted
        rules: Per-criterion assessment rules; the schema's rules if omitted
        threshold: Readiness threshold overriding ``schema.score_threshold``
    """

    def __init__(
        self,
        schema: QualificationSchema = DEFAULT_BANT_SCHEMA,
        scorer: Optional[Scorer] = None,
        detector: Optional[SignalDetector] = None,
        rules: Optional[Mapping[str, CriterionRule]] = None,
        threshold: Optional[int] = None,
    ):
        self.scorer = scorer or WeightedConfidenceScorer()
        self._threshold_override = threshold
        self._schema = schema
        self.detector = detector or SignalDetector(SCHEMA_KEYWORDS.get(schema.id, BANT_KEYWORDS))
        self.rules: Dict[str, CriterionRule] = dict(
            rules if rules is not None else SCHEMA_RULES.get(schema.id, BANT_RULES)
        )

    # ── Schema management ─────────────────────────────────────────

    @property
    def threshold(self) -> int:
        if self._threshold_override is not None:
            return self._threshold_override
        return self._schema.score_threshold

    def get_schema(self) -> QualificationSchema:
        return self._schema

    def set_schema(self, schema: QualificationSchema, threshold: Optional[int] = None) -> None:
        """
        Switch to a built-in schema's criteria, keywords and rules.

        Any earlier threshold override is dropped; pass ``threshold`` to set a new one.
        """
        self._schema = schema
        self._threshold_override = threshold
        if schema.id in SCHEMA_KEYWORDS:
            self.detector = SignalDetector(SCHEMA_KEYWORDS[schema.id], window=self.detector.window)
            self.rules = dict(SCHEMA_RULES[schema.id])
        logger.info(f"Qualification schema set to {schema.id}")

    def available_schemas(self) -> List[QualificationSchema]:
        return list(AVAILABLE_SCHEMAS.values())

    # ── Status lifecycle ──────────────────────────────────────────

    def initialize_status(self) -> QualificationStatus:
        """Fresh status with every criterion unknown."""
        if not self._schema.criteria:
            raise StateError("Qualification schema has no criteria", context={"schema_id": self._schema.id})
        return QualificationStatus(
            schema_id=self._schema.id,
            criteria={c.id: c.reset() for c in self._schema.criteria},
        )

    def calculate_score(self, status: QualificationStatus) -> int:
        return self.scorer.score(status.criteria)

    def assess(
        self,
        messages: Sequence[Message],
        current: QualificationStatus,
    ) -> QualificationUpdate:
        """
        Run one qualification cycle over the recent message window.

        Returns:
            QualificationUpdate carrying the new status and the previous score
        """
        if current.schema_id != self._schema.id:
            raise StateError(
                "Qualification status belongs to a different schema",
                context={"status_schema": current.schema_id, "active_schema": self._schema.id},
            )

        user_messages = self.detector.recent_user_messages(messages)
        window_text = " ".join(m.content.lower() for m in user_messages)

        criteria = {key: replace(c, evidence=list(c.evidence)) for key, c in current.criteria.items()}
        changed: List[str] = []

        for criterion_id, rule in self.rules.items():
            if criterion_id not in criteria:
                continue
            try:
                if not rule.detect(self.detector, window_text):
                    continue
                criteria[criterion_id] = replace(
                    criteria[criterion_id],
                    status=rule.assess(window_text),
                    confidence=rule.confidence,
                    evidence=[m.content for m in user_messages if rule.detect(self.detector, m.content)],
                )
                changed.append(criterion_id)
            except Exception:
                logger.exception(f"Failed to assess criterion {criterion_id}, keeping previous state")

        status = QualificationStatus(
            schema_id=current.schema_id,
            criteria=criteria,
            notes=current.notes,
            last_updated=datetime.utcnow(),
        )
        status.score = self.scorer.score(criteria)
        status.ready_to_connect = status.score >= self.threshold
        status.ai_assessment = AIAssessment(
            summary=self._assessment_summary(criteria),
            confidence=self._overall_confidence(criteria),
            next_questions=self._next_questions(criteria),
        )

        return QualificationUpdate(
            status=status,
            previous_score=current.score,
            threshold=self.threshold,
            changed_criteria=changed,
        )

    # ── Assessment helpers ────────────────────────────────────────

    def _assessment_summary(self, criteria: Mapping[str, QualificationCriterion]) -> str:
        qualified = sum(1 for c in criteria.values() if c.status == CriterionStatus.QUALIFIED)
        total = len(criteria)

        if qualified == total:
            return "Highly qualified prospect with clear fit"
        if qualified >= total * 0.75:
            return "Strong qualification with minor gaps"
        if qualified >= total * 0.5:
            return "Partially qualified, needs more information"
        return "Early stage qualification, requires additional discovery"

    def _overall_confidence(self, criteria: Mapping[str, QualificationCriterion]) -> float:
        confidences = [c.confidence for c in criteria.values() if c.confidence > 0]
        if not confidences:
            return 0.0
        return sum(confidences) / len(confidences)

    def _next_questions(self, criteria: Mapping[str, QualificationCriterion]) -> List[str]:
        questions = []
        for criterion in criteria.values():
            if criterion.status == CriterionStatus.UNKNOWN or criterion.confidence < 0.7:
                rule = self.rules.get(criterion.id)
                if rule and rule.question:
                    questions.append(rule.question)
        return questions[:2]
