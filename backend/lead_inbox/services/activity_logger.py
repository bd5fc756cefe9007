# backend/lead_inbox/services/activity_logger.py
"""
Activity Logger - append-only audit history per lead.

Entries are added inside the caller's transaction so they persist together
with the lead mutation they describe, or not at all.
"""

from typing import Optional, List
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import uuid

from lead_inbox.enums import ActivityAction, LeadStatus
from lead_inbox.models import LeadActivity, utcnow


class ActivityLogger:
    """Appends and reads lead activity entries."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def _to_uuid(value):
        """Safely convert to UUID"""
        if value is None:
            return None
        if isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(str(value))

    async def append(
        self,
        lead_id,
        action: str,
        performer_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> LeadActivity:
        """Add one entry; never updates or removes existing ones."""
        activity = LeadActivity(
            id=uuid.uuid4(),
            lead_id=self._to_uuid(lead_id),
            action=action,
            notes=notes,
            performer_id=performer_id,
            created_at=utcnow(),
        )
        self.db.add(activity)
        await self.db.flush()
        return activity

    async def log_claim(self, lead_id, claimant_id: str) -> LeadActivity:
        return await self.append(
            lead_id, ActivityAction.CLAIMED, performer_id=claimant_id,
            notes="Lead self-claimed",
        )

    async def log_assignment(
        self,
        lead_id,
        assigner_id: str,
        assignee_id: str,
        previous_assignee: Optional[str] = None,
    ) -> LeadActivity:
        if previous_assignee and previous_assignee != assignee_id:
            notes = f"Lead reassigned from {previous_assignee} to {assignee_id}"
        else:
            notes = f"Lead assigned to {assignee_id}"
        return await self.append(
            lead_id, ActivityAction.ASSIGNED, performer_id=assigner_id, notes=notes,
        )

    async def log_status_change(
        self,
        lead_id,
        from_status: LeadStatus,
        to_status: LeadStatus,
        performer_id: Optional[str] = None,
    ) -> LeadActivity:
        return await self.append(
            lead_id,
            ActivityAction.status_changed_to(to_status),
            performer_id=performer_id,
            notes=f"{LeadStatus(from_status).value} -> {LeadStatus(to_status).value}",
        )

    async def log_note(self, lead_id, note: str, performer_id: Optional[str]) -> LeadActivity:
        return await self.append(lead_id, ActivityAction.NOTE_ADDED, performer_id=performer_id, notes=note)

    async def log_revenue(self, lead_id, amount, performer_id: Optional[str]) -> LeadActivity:
        return await self.append(
            lead_id, ActivityAction.REVENUE_RECORDED, performer_id=performer_id,
            notes=f"First service revenue: {amount}",
        )

    async def history(self, lead_id, newest_first: bool = False) -> List[LeadActivity]:
        """A lead's entries in display order (created_at, then insertion)."""
        query = select(LeadActivity).where(LeadActivity.lead_id == self._to_uuid(lead_id))
        if newest_first:
            query = query.order_by(LeadActivity.created_at.desc(), LeadActivity.seq.desc())
        else:
            query = query.order_by(LeadActivity.created_at, LeadActivity.seq)
        result = await self.db.execute(query)
        return list(result.scalars().all())
