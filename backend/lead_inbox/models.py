"""
SQLAlchemy ORM models for the lead inbox.

Lead is the single source of truth for lead state. LeadActivity is an
append-only history owned by its lead; it is never used to rebuild state.
"""

from sqlalchemy import (
    Column, String, Integer, Numeric, Text, DateTime, Enum, ForeignKey, Index, Uuid
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
import uuid

from lead_inbox.database import Base
from lead_inbox.enums import LeadSource, LeadStatus


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


# ============================================================================
# LEAD MODEL
# ============================================================================

class Lead(Base):
    """Inbound salon inquiry tracked from first contact to conversion or loss."""
    __tablename__ = "salon_inquiries"

    # ========================================================================
    # BASIC INFO
    # ========================================================================
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    # ========================================================================
    # CONTACT / INTENT (set at intake)
    # ========================================================================
    name = Column(String(255), nullable=False)
    email = Column(String(255), index=True)
    phone = Column(String(50))
    message = Column(Text)

    # ========================================================================
    # SOURCE & ROUTING HINTS (immutable)
    # ========================================================================
    source = Column(
        Enum(LeadSource, native_enum=False, length=32, values_callable=_enum_values),
        nullable=False,
        index=True,
    )
    source_detail = Column(String(255))
    preferred_location = Column(String(100), index=True)
    preferred_service = Column(String(255))
    preferred_stylist = Column(String(100))
    utm_source = Column(String(255))
    utm_medium = Column(String(255))
    utm_campaign = Column(String(255))

    # ========================================================================
    # ASSIGNMENT & STATUS (mutated only by the assignment engine)
    # ========================================================================
    status = Column(
        Enum(LeadStatus, native_enum=False, length=32, values_callable=_enum_values),
        nullable=False,
        default=LeadStatus.NEW,
        index=True,
    )
    assigned_to = Column(String(100), index=True)
    assigned_by = Column(String(100))
    assigned_at = Column(DateTime(timezone=True))

    response_time_seconds = Column(Integer)  # Stamped once, on first move away from 'new'
    consultation_booked_at = Column(DateTime(timezone=True))
    converted_at = Column(DateTime(timezone=True))
    first_service_revenue = Column(Numeric(10, 2))  # Write-once, after conversion

    # ========================================================================
    # TIMESTAMPS
    # ========================================================================
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    activities = relationship(
        "LeadActivity",
        back_populates="lead",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="LeadActivity.seq",
    )

    __table_args__ = (
        Index("idx_inquiries_status_assignee", "status", "assigned_to"),
    )

    def __repr__(self):
        return f"<Lead(id={self.id}, status='{self.status}', assigned_to='{self.assigned_to}')>"


# ============================================================================
# ACTIVITY LOG
# ============================================================================

class LeadActivity(Base):
    """One audit entry in a lead's history. Append-only."""
    __tablename__ = "inquiry_activity_log"

    # Monotonic insertion order; breaks created_at ties
    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(Uuid, unique=True, nullable=False, default=uuid.uuid4)
    lead_id = Column(
        Uuid,
        ForeignKey("salon_inquiries.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    action = Column(String(64), nullable=False, index=True)
    notes = Column(Text)
    performer_id = Column(String(100))  # NULL = system generated
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    lead = relationship("Lead", back_populates="activities")

    __table_args__ = (
        Index("idx_inquiry_activity_lead_created", "lead_id", "created_at"),
    )

    def __repr__(self):
        return f"<LeadActivity(lead_id={self.lead_id}, action='{self.action}')>"
