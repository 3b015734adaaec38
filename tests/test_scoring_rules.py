"""Teacher-configured scoring rules and how a job's rule is resolved."""

import pytest
from pydantic import ValidationError as SchemaValidationError

from app.core.config import settings
from app.core.exceptions import NotFoundError, ValidationError
from app.models.enums import SkillType
from app.schemas.scoring_rule import ScoringRuleCreate, ScoringWeights
from app.services import scoring_rule_service


class TestScoringWeights:
    def test_sum_within_tolerance(self):
        weights = ScoringWeights(task_response=0.3, coherence=0.3, lexical=0.2, grammar=0.25)
        assert weights.as_dict() == {"task_response": 0.3, "coherence": 0.3, "lexical": 0.2, "grammar": 0.25}

    def test_sum_outside_tolerance(self):
        with pytest.raises(SchemaValidationError, match="sum to 1.0"):
            ScoringWeights(fluency=0.5, coherence=0.5, lexical=0.5)

    def test_weight_out_of_range(self):
        with pytest.raises(SchemaValidationError):
            ScoringWeights(fluency=1.5)

    def test_unknown_criterion(self):
        with pytest.raises(SchemaValidationError):
            ScoringWeights(vocabulary=1.0)


class TestCreateRule:
    def test_create(self, db_session):
        rule = scoring_rule_service.create_rule(
            db_session,
            obj_in=ScoringRuleCreate(
                name="Lenient speaking",
                model_id="gemini-flash-latest",
                rubric_id="ielts_speaking",
                weights=ScoringWeights(fluency=0.3, coherence=0.2, lexical=0.2, grammar=0.2, pronunciation=0.1),
                strictness=0.8,
            ),
        )

        assert rule.id is not None
        assert rule.is_active is True
        assert rule.weights["fluency"] == 0.3
        assert rule.strictness == 0.8

    def test_weights_must_belong_to_rubric(self, db_session):
        with pytest.raises(ValidationError, match="pronunciation"):
            scoring_rule_service.create_rule(
                db_session,
                obj_in=ScoringRuleCreate(
                    name="Bad writing rule",
                    model_id="gpt-4o-mini",
                    rubric_id="ielts_writing",
                    weights=ScoringWeights(task_response=0.5, pronunciation=0.5),
                ),
            )

    def test_unknown_rubric(self, db_session):
        with pytest.raises(ValidationError):
            scoring_rule_service.create_rule(
                db_session,
                obj_in=ScoringRuleCreate(
                    name="x", model_id="gpt-4o-mini", rubric_id="toefl", weights=ScoringWeights(grammar=1.0)
                ),
            )


class TestResolveRule:
    def test_default_rule_has_equal_weights(self):
        config = scoring_rule_service.default_rule_config(SkillType.WRITING, settings)

        assert config.rule_id is None
        assert config.rubric_id == "ielts_writing"
        assert config.model_id == settings.DEFAULT_SCORING_MODEL
        assert config.weights == {"task_response": 0.25, "coherence": 0.25, "lexical": 0.25, "grammar": 0.25}

    def test_stored_rule(self, db_session, speaking_rule):
        config = scoring_rule_service.resolve_rule_config(db_session, speaking_rule.id, SkillType.SPEAKING)

        assert config.rule_id == speaking_rule.id
        assert config.strictness == 1.2
        assert config.extra_config == {"temperature": 0.1}

    def test_missing_rule(self, db_session):
        with pytest.raises(NotFoundError):
            scoring_rule_service.resolve_rule_config(db_session, 999, SkillType.SPEAKING)

    def test_skill_mismatch(self, db_session, writing_rule):
        with pytest.raises(ValidationError):
            scoring_rule_service.resolve_rule_config(db_session, writing_rule.id, SkillType.SPEAKING)

    def test_inactive_rule(self, db_session, speaking_rule):
        speaking_rule.is_active = False
        db_session.commit()

        with pytest.raises(ValidationError, match=f"Scoring rule {speaking_rule.id} is inactive"):
            scoring_rule_service.resolve_rule_config(db_session, speaking_rule.id, SkillType.SPEAKING)
