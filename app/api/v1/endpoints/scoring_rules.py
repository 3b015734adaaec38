# app/api/v1/endpoints/scoring_rules.py
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.schemas.scoring_rule import ScoringRuleCreate, ScoringRulePublic
from app.services import scoring_rule_service

router = APIRouter(prefix="/scoring-rules", tags=["scoring-rules"])


@router.post("/", response_model=ScoringRulePublic, status_code=status.HTTP_201_CREATED)
def create_scoring_rule(obj_in: ScoringRuleCreate, db: Session = Depends(get_db)):
    return scoring_rule_service.create_rule(db, obj_in=obj_in)


@router.get("/{rule_id}", response_model=ScoringRulePublic)
def get_scoring_rule(rule_id: int, db: Session = Depends(get_db)):
    return scoring_rule_service.get_rule(db, rule_id)
