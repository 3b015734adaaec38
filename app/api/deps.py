# app/api/deps.py
from fastapi import Request

from app.services.assignment_stats_service import AssignmentStatsSynchronizer
from app.workers.queue import ScoringQueue


def get_scoring_queue(request: Request) -> ScoringQueue:
    return request.app.state.scoring_queue


def get_stats_synchronizer(request: Request) -> AssignmentStatsSynchronizer:
    return request.app.state.stats_synchronizer
