"""
Lead Routes - inbox lists, badge counts and the assignment engine commands.

Acting user ids travel in the request; permission checks happen upstream.
Engine outcomes (already_claimed, illegal_transition, conflict, ...) are
rendered by the LeadInboxError handler registered in main.
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from uuid import UUID

from lead_inbox.database import get_db
from lead_inbox.enums import LeadBucket
from lead_inbox.redis_client import redis_client
from lead_inbox.schemas import (
    AssignRequest,
    ClaimRequest,
    ErrorResponse,
    FunnelSummaryResponse,
    LeadActivityListResponse,
    LeadActivityResponse,
    LeadCountsResponse,
    LeadCreate,
    LeadListResponse,
    LeadResponse,
    NoteCreate,
    RevenueRecordRequest,
    StatusChangeRequest,
)
from lead_inbox.services.activity_logger import ActivityLogger
from lead_inbox.services.assignment_engine import AssignmentEngine
from lead_inbox.services.lead_filters import LeadFilter
from lead_inbox.services.lead_queries import LeadCountsCache, LeadQueries
from lead_inbox.services.lead_store import LeadStore

router = APIRouter(
    prefix="/api/v1/leads",
    tags=["Leads"],
    responses={
        400: {"model": ErrorResponse, "description": "invalid_data or empty_note"},
        404: {"model": ErrorResponse, "description": "not_found"},
        409: {"model": ErrorResponse, "description": "already_claimed or conflict"},
    },
)


def get_counts_cache() -> LeadCountsCache:
    return LeadCountsCache(redis_client)


def get_engine(
    db: AsyncSession = Depends(get_db),
    counts_cache: LeadCountsCache = Depends(get_counts_cache),
) -> AssignmentEngine:
    return AssignmentEngine(db, counts_cache=counts_cache)


def get_queries(
    db: AsyncSession = Depends(get_db),
    counts_cache: LeadCountsCache = Depends(get_counts_cache),
) -> LeadQueries:
    return LeadQueries(db, counts_cache=counts_cache)


# ============================================================================
# LIST / AGGREGATES
# ============================================================================

@router.get("/", response_model=LeadListResponse)
async def list_leads(
    bucket: Optional[LeadBucket] = None,
    user_id: Optional[str] = Query(None, description="Current user, required for my_leads"),
    search: Optional[str] = None,
    source: Optional[str] = Query(None, description="LeadSource value or 'all'"),
    location: Optional[str] = None,
    assigned_to: Optional[str] = Query(None, description="User id, 'unassigned' or 'all'"),
    status_filter: Optional[str] = Query(None, alias="status", description="LeadStatus value or 'all'"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    queries: LeadQueries = Depends(get_queries),
):
    """Lead list for an inbox tab (``bucket``) or an ad-hoc filter."""
    lead_filter = LeadFilter(
        search=search,
        source=source,
        location=location,
        assigned_to=assigned_to,
        status=status_filter,
    )
    leads = await queries.list_leads(lead_filter, bucket=bucket, user_id=user_id, limit=limit, offset=offset)
    return LeadListResponse(
        leads=[LeadResponse.model_validate(lead) for lead in leads],
        total=await queries.count_leads(lead_filter, bucket=bucket, user_id=user_id),
    )


@router.get("/counts", response_model=LeadCountsResponse, response_model_exclude_none=True)
async def lead_counts(
    user_id: Optional[str] = None,
    queries: LeadQueries = Depends(get_queries),
):
    """Tab badge counts."""
    return LeadCountsResponse(**await queries.counts(user_id=user_id))


@router.get("/overdue", response_model=LeadListResponse)
async def overdue_leads(
    sla_hours: Optional[int] = Query(None, ge=0),
    queries: LeadQueries = Depends(get_queries),
):
    """Leads still new past the response-time SLA."""
    leads = await queries.find_overdue_leads(sla_hours=sla_hours)
    return LeadListResponse(
        leads=[LeadResponse.model_validate(lead) for lead in leads],
        total=len(leads),
    )


@router.get("/funnel", response_model=FunnelSummaryResponse)
async def funnel_summary(
    location: Optional[str] = None,
    queries: LeadQueries = Depends(get_queries),
):
    return FunnelSummaryResponse(**await queries.funnel_summary(location=location))


# ============================================================================
# INTAKE & DETAIL
# ============================================================================

@router.post("/", response_model=LeadResponse, status_code=status.HTTP_201_CREATED)
async def create_lead(
    payload: LeadCreate,
    db: AsyncSession = Depends(get_db),
    counts_cache: LeadCountsCache = Depends(get_counts_cache),
):
    """Intake: a new, unassigned lead."""
    lead = await LeadStore(db).create(**payload.model_dump(exclude_none=True))
    await db.commit()
    await counts_cache.invalidate()
    return LeadResponse.model_validate(lead)


@router.get("/{lead_id}", response_model=LeadResponse)
async def get_lead(lead_id: UUID, db: AsyncSession = Depends(get_db)):
    return LeadResponse.model_validate(await LeadStore(db).get(lead_id))


@router.get("/{lead_id}/activities", response_model=LeadActivityListResponse)
async def get_lead_activities(
    lead_id: UUID,
    newest_first: bool = True,
    db: AsyncSession = Depends(get_db),
):
    """Activity timeline for a lead (display only)."""
    await LeadStore(db).get(lead_id)
    entries = await ActivityLogger(db).history(lead_id, newest_first=newest_first)
    return LeadActivityListResponse(
        activities=[LeadActivityResponse.model_validate(entry) for entry in entries],
        total=len(entries),
    )


# ============================================================================
# ENGINE COMMANDS
# ============================================================================

@router.post("/{lead_id}/claim", response_model=LeadResponse)
async def claim_lead(
    lead_id: UUID,
    payload: ClaimRequest,
    engine: AssignmentEngine = Depends(get_engine),
):
    return LeadResponse.model_validate(await engine.claim(lead_id, payload.claimant_id))


@router.post("/{lead_id}/assign", response_model=LeadResponse)
async def assign_lead(
    lead_id: UUID,
    payload: AssignRequest,
    engine: AssignmentEngine = Depends(get_engine),
):
    lead = await engine.assign(lead_id, payload.assigner_id, payload.assignee_id)
    return LeadResponse.model_validate(lead)


@router.post("/{lead_id}/status", response_model=LeadResponse)
async def change_lead_status(
    lead_id: UUID,
    payload: StatusChangeRequest,
    engine: AssignmentEngine = Depends(get_engine),
):
    lead = await engine.change_status(
        lead_id, payload.status, payload.performer_id, additional_data=payload.additional_data,
    )
    return LeadResponse.model_validate(lead)


@router.post("/{lead_id}/notes", response_model=LeadActivityResponse, status_code=status.HTTP_201_CREATED)
async def add_lead_note(
    lead_id: UUID,
    payload: NoteCreate,
    engine: AssignmentEngine = Depends(get_engine),
):
    entry = await engine.add_note(lead_id, payload.note, payload.performer_id)
    return LeadActivityResponse.model_validate(entry)


@router.post("/{lead_id}/revenue", response_model=LeadResponse)
async def record_first_service_revenue(
    lead_id: UUID,
    payload: RevenueRecordRequest,
    engine: AssignmentEngine = Depends(get_engine),
):
    lead = await engine.record_first_service_revenue(lead_id, payload.amount, payload.performer_id)
    return LeadResponse.model_validate(lead)
