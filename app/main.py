# app/main.py
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app import init_db
from app.api.v1.endpoints import health, scoring_jobs, scoring_rules, submissions
from app.core.config import settings
from app.core.exceptions import DomainError
from app.core.logging_config import setup_logging
from app.services.assignment_stats_service import AssignmentStatsSynchronizer
from app.workers.queue import ScoringQueue

app = FastAPI(title=settings.PROJECT_NAME)

origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.stats_synchronizer = AssignmentStatsSynchronizer()


@app.on_event("startup")
def on_startup():
    setup_logging(settings.LOG_LEVEL)
    init_db()
    app.state.scoring_queue = ScoringQueue.from_settings(settings)


@app.exception_handler(DomainError)
def domain_error_handler(request: Request, exc: DomainError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


app.include_router(health.router, prefix="/api/v1")
app.include_router(submissions.router, prefix="/api/v1")
app.include_router(scoring_rules.router, prefix="/api/v1")
app.include_router(scoring_jobs.router, prefix="/api/v1")
