"""Tests for the qualification state machine."""

from dataclasses import replace

import pytest

from common.errors import StateError
from conftest import SCENARIO_MESSAGE
from lead_scoring.models import CriterionStatus, Message, MessageRole, QualificationSchema
from lead_scoring.qualification import (
    DEFAULT_BANT_SCHEMA,
    SAAS_QUALIFICATION_SCHEMA,
    SIGNALS_SCHEMA,
    QualificationService,
    schema_from_config,
)
from lead_scoring.scoring_model import BooleanWeightScorer
from transcripts import assign_tags, tags_for_thresholds
from config.settings import Settings


def _assess(service, conversation):
    update = service.assess(conversation.messages, conversation.qualification_status)
    conversation.qualification_status = update.status
    return update


class TestInitialState:
    def test_all_criteria_unknown(self, qualification):
        status = qualification.initialize_status()
        assert status.schema_id == "bant-default"
        assert set(status.criteria) == {"budget", "authority", "need", "timeline"}
        for criterion in status.criteria.values():
            assert criterion.status == CriterionStatus.UNKNOWN
            assert criterion.confidence == 0.0
            assert criterion.evidence == []
        assert status.score == 0
        assert status.ready_to_connect is False

    def test_empty_schema_is_a_state_error(self):
        service = QualificationService(QualificationSchema(id="empty", name="Empty", score_threshold=75))
        with pytest.raises(StateError):
            service.initialize_status()


class TestScenario:
    def test_bant_scenario(self, qualification, make_conversation):
        conversation = make_conversation(SCENARIO_MESSAGE)
        update = _assess(qualification, conversation)
        criteria = update.status.criteria

        assert criteria["budget"].status == CriterionStatus.QUALIFIED
        assert criteria["timeline"].status == CriterionStatus.QUALIFIED
        assert criteria["authority"].status == CriterionStatus.QUALIFIED
        assert len(update.status.qualified_criteria()) >= 3
        assert update.score == 78
        assert update.status.ready_to_connect is True
        assert update.became_ready is True
        assert update.previous_score == 0
        assert update.score_delta == 78

    def test_scenario_tags(self, qualified_conversation):
        assert [t.id for t in assign_tags(qualified_conversation)] == ["warm"]

    def test_scenario_tags_with_lower_hot_threshold(self, qualified_conversation):
        tags = assign_tags(qualified_conversation, tags_for_thresholds(hot=75, warm=50))
        assert [t.id for t in tags] == ["hot"]

    def test_evidence_is_the_triggering_message(self, qualified_conversation):
        budget = qualified_conversation.qualification_status.criteria["budget"]
        assert budget.evidence == [SCENARIO_MESSAGE]
        assert budget.confidence == 0.8


class TestTransitions:
    def test_negative_phrase_disqualifies(self, qualification, make_conversation):
        conversation = make_conversation("Honestly it's too expensive for us")
        update = _assess(qualification, conversation)
        assert update.status.criteria["budget"].status == CriterionStatus.UNQUALIFIED
        assert update.score == 0

    def test_detected_but_undecided_stays_unknown(self, qualification, make_conversation):
        conversation = make_conversation("What does it cost?")
        update = _assess(qualification, conversation)
        budget = update.status.criteria["budget"]
        assert budget.status == CriterionStatus.UNKNOWN
        assert budget.confidence == 0.8
        assert update.changed_criteria == ["budget"]

    def test_last_write_wins(self, qualification, make_conversation):
        conversation = make_conversation("There is no budget for this")
        _assess(qualification, conversation)
        assert conversation.qualification_status.criteria["budget"].status == CriterionStatus.UNQUALIFIED

        conversation.append(Message(id="m2", content="Good news, budget approved", role=MessageRole.USER))
        _assess(qualification, conversation)
        assert conversation.qualification_status.criteria["budget"].status == CriterionStatus.QUALIFIED

    def test_assess_returns_new_status(self, qualification, make_conversation):
        conversation = make_conversation(SCENARIO_MESSAGE)
        before = conversation.qualification_status
        update = qualification.assess(conversation.messages, before)

        assert update.status is not before
        assert before.score == 0
        assert before.criteria["budget"].status == CriterionStatus.UNKNOWN

    def test_ready_iff_score_reaches_threshold(self, make_conversation):
        for threshold in (50, 75, 78, 79, 100):
            service = QualificationService(threshold=threshold)
            conversation = make_conversation(SCENARIO_MESSAGE)
            conversation.qualification_status = service.initialize_status()
            update = service.assess(conversation.messages, conversation.qualification_status)
            assert update.status.ready_to_connect is (update.score >= threshold)

    def test_became_ready_only_on_crossing(self, qualification, make_conversation):
        conversation = make_conversation(SCENARIO_MESSAGE)
        first = _assess(qualification, conversation)
        second = _assess(qualification, conversation)
        assert first.became_ready is True
        assert second.became_ready is False
        assert second.score_delta == 0

    def test_schema_mismatch(self, qualification, make_conversation):
        conversation = make_conversation("hello")
        other = QualificationService(SIGNALS_SCHEMA)
        with pytest.raises(StateError):
            other.assess(conversation.messages, conversation.qualification_status)

    def test_failing_criterion_does_not_block_others(self, qualification, make_conversation):
        def boom(text):
            raise RuntimeError("detector exploded")

        qualification.rules["budget"] = replace(qualification.rules["budget"], matcher=boom)
        conversation = make_conversation(SCENARIO_MESSAGE)
        update = _assess(qualification, conversation)

        assert update.status.criteria["budget"].status == CriterionStatus.UNKNOWN
        assert update.status.criteria["authority"].status == CriterionStatus.QUALIFIED

    def test_ai_assessment(self, qualified_conversation):
        assessment = qualified_conversation.qualification_status.ai_assessment
        assert assessment.summary == "Highly qualified prospect with clear fit"
        assert assessment.next_questions == []


class TestSchemas:
    def test_set_schema_switches_rules(self, qualification):
        qualification.set_schema(SIGNALS_SCHEMA)
        assert qualification.get_schema().id == "signals"
        assert "contactInfo" in qualification.rules
        assert qualification.initialize_status().schema_id == "signals"

    def test_available_schemas(self, qualification):
        ids = {s.id for s in qualification.available_schemas()}
        assert ids == {"bant-default", "saas-custom", "signals"}

    def test_saas_schema_threshold(self):
        service = QualificationService(SAAS_QUALIFICATION_SCHEMA)
        assert service.threshold == 70

    def test_saas_schema_ready_at_its_own_threshold(self, make_conversation):
        service = QualificationService(SAAS_QUALIFICATION_SCHEMA, scorer=BooleanWeightScorer())
        conversation = make_conversation("I'm the VP and we need this live next month")
        conversation.qualification_status = service.initialize_status()

        update = _assess(service, conversation)

        # authority 25 + need 30 + timeline 15
        assert update.score == 70
        assert update.status.ready_to_connect is True
        assert update.became_ready is True

    def test_set_schema_drops_threshold_override(self):
        service = QualificationService(DEFAULT_BANT_SCHEMA, threshold=90)
        assert service.threshold == 90

        service.set_schema(SAAS_QUALIFICATION_SCHEMA)
        assert service.threshold == 70

        service.set_schema(DEFAULT_BANT_SCHEMA, threshold=80)
        assert service.threshold == 80

    def test_signals_schema_with_boolean_scorer(self, make_conversation):
        service = QualificationService(SIGNALS_SCHEMA, scorer=BooleanWeightScorer())
        conversation = make_conversation("Pricing matters and I'd like a demo, email me at dana@acme.io")
        conversation.qualification_status = service.initialize_status()
        update = service.assess(conversation.messages, conversation.qualification_status)
        # budget 20 + contactInfo 10 + demoInterest 15
        assert update.score == 45

    def test_schema_from_settings(self, make_conversation):
        settings = Settings(criteria_budget_weight=50, criteria_need_weight=50,
                            criteria_timeline_weight=0, criteria_pain_point_weight=0,
                            criteria_authority_weight=0)
        schema, keywords, rules = schema_from_config(settings.qualification_criteria, 75)

        weights = {c.id: c.weight for c in schema.criteria}
        assert weights["budget"] == 0.5
        assert weights["need"] == 0.5
        assert sum(weights.values()) == pytest.approx(1.0)
        assert schema.score_threshold == 75
        assert "pricing" in keywords["budget"]
        assert rules["need"].default_status == CriterionStatus.QUALIFIED

    def test_default_schema_weights_sum_to_one(self):
        assert DEFAULT_BANT_SCHEMA.total_weight == pytest.approx(1.0)
