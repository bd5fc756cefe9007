"""Main FastAPI application."""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from lead_inbox import __version__
from lead_inbox.config import settings
from lead_inbox.database import Base, engine
from lead_inbox.exceptions import (
    AlreadyClaimed,
    EmptyNote,
    IllegalTransition,
    InvalidLeadData,
    LeadConflict,
    LeadInboxError,
    LeadNotFound,
)
from lead_inbox.routers import lead_routes
from lead_inbox.schemas import ErrorResponse, LeadResponse
from lead_inbox.scheduler import start_scheduler, stop_scheduler

# Import models to register them with SQLAlchemy
from lead_inbox import models  # noqa: F401

# Configure logging
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Engine outcome -> HTTP status. Order matters: subclasses first.
ERROR_STATUS_CODES = [
    (LeadNotFound, 404),
    (AlreadyClaimed, 409),
    (LeadConflict, 409),
    (IllegalTransition, 422),
    (EmptyNote, 400),
    (InvalidLeadData, 400),
]


def status_code_for(exc: LeadInboxError) -> int:
    for exc_type, code in ERROR_STATUS_CODES:
        if isinstance(exc, exc_type):
            return code
    return 400


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables and start background jobs."""
    logger.info("Starting Lead Inbox API...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Registered {len(Base.metadata.tables)} SQLAlchemy tables")

    if settings.ENABLE_SLA_SCHEDULER:
        start_scheduler()

    yield

    stop_scheduler()
    await engine.dispose()
    logger.info("Lead Inbox API stopped")


# Create FastAPI app
app = FastAPI(
    title="Salon Lead Inbox API",
    description="Lead routing and assignment for salon inquiries",
    version=__version__,
    redirect_slashes=False,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify your frontend domain
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LeadInboxError)
async def lead_inbox_error_handler(request: Request, exc: LeadInboxError):
    """Render engine outcomes as distinguishable error kinds with the lead's true state."""
    body = ErrorResponse(
        error=exc.kind,
        message=exc.message,
        lead=LeadResponse.model_validate(exc.lead) if exc.lead is not None else None,
    )
    return JSONResponse(status_code=status_code_for(exc), content=body.model_dump(mode="json"))


app.include_router(lead_routes.router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": __version__,
        "environment": settings.ENVIRONMENT,
    }
