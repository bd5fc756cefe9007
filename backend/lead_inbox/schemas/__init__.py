"""Pydantic schemas for request/response validation."""

from pydantic import BaseModel, EmailStr, Field, ConfigDict
from typing import Optional, List, Dict, Any
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from lead_inbox.enums import LeadSource, LeadStatus


# ========================================
# LEAD SCHEMAS
# ========================================

class LeadCreate(BaseModel):
    """Intake payload (forms, call logs, integrations)."""
    name: str = Field(..., min_length=1, max_length=255)
    source: LeadSource
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    message: Optional[str] = None
    source_detail: Optional[str] = Field(None, max_length=255)
    preferred_location: Optional[str] = Field(None, max_length=100)
    preferred_service: Optional[str] = Field(None, max_length=255)
    preferred_stylist: Optional[str] = Field(None, max_length=100)
    utm_source: Optional[str] = Field(None, max_length=255)
    utm_medium: Optional[str] = Field(None, max_length=255)
    utm_campaign: Optional[str] = Field(None, max_length=255)


class LeadResponse(BaseModel):
    """Lead as stored."""
    id: UUID
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    message: Optional[str] = None
    source: LeadSource
    source_detail: Optional[str] = None
    status: LeadStatus
    assigned_to: Optional[str] = None
    assigned_by: Optional[str] = None
    assigned_at: Optional[datetime] = None
    preferred_location: Optional[str] = None
    preferred_service: Optional[str] = None
    preferred_stylist: Optional[str] = None
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    response_time_seconds: Optional[int] = None
    consultation_booked_at: Optional[datetime] = None
    converted_at: Optional[datetime] = None
    first_service_revenue: Optional[Decimal] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LeadListResponse(BaseModel):
    leads: List[LeadResponse]
    total: int  # All matching leads, not just this page


# ========================================
# ENGINE COMMANDS
# ========================================

class ClaimRequest(BaseModel):
    claimant_id: str = Field(..., min_length=1)


class AssignRequest(BaseModel):
    assigner_id: str = Field(..., min_length=1)
    assignee_id: str = Field(..., min_length=1)


class StatusChangeRequest(BaseModel):
    status: LeadStatus
    performer_id: Optional[str] = None
    additional_data: Optional[Dict[str, Any]] = None


class NoteCreate(BaseModel):
    # Blank notes are rejected by the engine as empty_note, not here
    note: str
    performer_id: Optional[str] = None


class RevenueRecordRequest(BaseModel):
    amount: Decimal = Field(..., ge=0)
    performer_id: Optional[str] = None


# ========================================
# ACTIVITY SCHEMAS
# ========================================

class LeadActivityResponse(BaseModel):
    id: UUID
    lead_id: UUID
    action: str
    notes: Optional[str] = None
    performer_id: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LeadActivityListResponse(BaseModel):
    activities: List[LeadActivityResponse]
    total: int


# ========================================
# AGGREGATES
# ========================================

class LeadCountsResponse(BaseModel):
    total: int
    new: int
    unassigned: int
    contacted: int
    assigned: int
    consultation_booked: int
    converted: int
    lost: int
    my_leads: Optional[int] = None


class FunnelSummaryResponse(BaseModel):
    total_leads: int
    converted: int
    conversion_rate: float
    avg_response_time_seconds: Optional[float] = None
    total_first_service_revenue: Decimal
    by_source: Dict[str, int]


class ErrorResponse(BaseModel):
    """Distinguishable error kinds: not_found, already_claimed, conflict, ..."""
    error: str
    message: str
    lead: Optional[LeadResponse] = None
