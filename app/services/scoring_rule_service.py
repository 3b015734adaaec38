# app/services/scoring_rule_service.py
from sqlalchemy.orm import Session

from app.core.config import settings as default_settings
from app.core.exceptions import NotFoundError, ValidationError
from app.models.enums import SkillType
from app.models.scoring_rule import ScoringRule
from app.schemas.scoring_rule import ScoringRuleConfig, ScoringRuleCreate
from app.services.scoring_adapter import (
    DEFAULT_RUBRIC_FOR_SKILL,
    UnsupportedScoringError,
    get_rubric,
)


def create_rule(db: Session, *, obj_in: ScoringRuleCreate) -> ScoringRule:
    """
    Weights were already checked for sum by the schema; here they are
    checked against the rubric's criteria.
    """
    try:
        rubric = get_rubric(obj_in.rubric_id)
    except UnsupportedScoringError as e:
        raise ValidationError(str(e)) from e

    weights = obj_in.weights.as_dict()
    unknown = sorted(set(weights) - set(rubric.criteria))
    if unknown:
        raise ValidationError(
            f"Weights {unknown} are not criteria of rubric '{rubric.rubric_id}'"
        )

    db_obj = ScoringRule(
        name=obj_in.name,
        description=obj_in.description,
        model_id=obj_in.model_id,
        rubric_id=rubric.rubric_id,
        weights=weights,
        strictness=obj_in.strictness,
        extra_config=obj_in.extra_config,
        is_active=True,
    )
    db.add(db_obj)
    db.commit()
    db.refresh(db_obj)
    return db_obj


def get_rule(db: Session, rule_id: int) -> ScoringRule:
    rule = db.get(ScoringRule, rule_id)
    if rule is None:
        raise NotFoundError(f"Scoring rule {rule_id} not found")
    return rule


def to_config(rule: ScoringRule) -> ScoringRuleConfig:
    return ScoringRuleConfig(
        rule_id=rule.id,
        model_id=rule.model_id,
        rubric_id=rule.rubric_id,
        weights=dict(rule.weights or {}),
        strictness=rule.strictness,
        extra_config=rule.extra_config,
    )


def default_rule_config(skill_type: SkillType, settings=default_settings) -> ScoringRuleConfig:
    """Equal weights over the skill's default rubric."""
    rubric = get_rubric(DEFAULT_RUBRIC_FOR_SKILL[SkillType(skill_type)])
    share = round(1 / len(rubric.criteria), 4)
    return ScoringRuleConfig(
        rule_id=None,
        model_id=settings.DEFAULT_SCORING_MODEL,
        rubric_id=rubric.rubric_id,
        weights={name: share for name in rubric.criteria},
        strictness=1.0,
    )


def resolve_rule_config(
    db: Session,
    rule_id: int | None,
    skill_type: SkillType,
    settings=default_settings,
) -> ScoringRuleConfig:
    if rule_id is None:
        return default_rule_config(skill_type, settings)

    rule = get_rule(db, rule_id)
    if not rule.is_active:
        raise ValidationError(f"Scoring rule {rule_id} is inactive")

    config = to_config(rule)
    try:
        get_rubric(config.rubric_id, skill_type)
    except UnsupportedScoringError as e:
        raise ValidationError(str(e)) from e
    return config
