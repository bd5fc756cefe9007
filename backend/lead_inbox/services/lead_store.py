# backend/lead_inbox/services/lead_store.py
"""
Lead Store - durable lead records with a conditional-update primitive.

``update`` issues one ``UPDATE ... WHERE id = :id AND <expectations>`` and
decides success from the affected row count, so two writers racing on the
same expectation can never both win.
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from lead_inbox.enums import LeadSource, LeadStatus
from lead_inbox.exceptions import InvalidLeadData, LeadConflict, LeadNotFound
from lead_inbox.models import Lead, utcnow
from lead_inbox.services.lead_filters import LeadFilter

logger = logging.getLogger(__name__)

# Fields an intake collaborator may populate
INTAKE_FIELDS = frozenset({
    "name", "email", "phone", "message", "source", "source_detail",
    "preferred_location", "preferred_service", "preferred_stylist",
    "utm_source", "utm_medium", "utm_campaign",
})

# Fields the store lets callers patch; contact and routing fields stay immutable
MUTABLE_FIELDS = frozenset({
    "status", "assigned_to", "assigned_by", "assigned_at",
    "response_time_seconds", "consultation_booked_at", "converted_at",
    "first_service_revenue",
})


class LeadStore:
    """Reads and conditional writes against the leads table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def _to_uuid(value) -> UUID:
        if isinstance(value, UUID):
            return value
        try:
            return UUID(str(value))
        except (TypeError, ValueError):
            raise LeadNotFound(value)

    async def create(self, **fields) -> Lead:
        """Intake: persist a new lead as ``new`` and unassigned."""
        unknown = set(fields) - INTAKE_FIELDS
        if unknown:
            raise InvalidLeadData(f"Unknown intake fields: {', '.join(sorted(unknown))}")
        if not (fields.get("name") or "").strip():
            raise InvalidLeadData("Lead name is required")
        try:
            fields["source"] = LeadSource(fields.get("source"))
        except ValueError:
            raise InvalidLeadData(f"Invalid lead source: {fields.get('source')!r}")

        now = utcnow()
        lead = Lead(
            **fields,
            status=LeadStatus.NEW,
            assigned_to=None,
            created_at=now,
            updated_at=now,
        )
        self.db.add(lead)
        await self.db.flush()
        logger.info(f"Lead created: {lead.id} (source={lead.source.value})")
        return lead

    async def get(self, lead_id, *, for_update: bool = False) -> Lead:
        """Fetch the current stored lead; raises LeadNotFound."""
        stmt = select(Lead).where(Lead.id == self._to_uuid(lead_id))
        if for_update:
            stmt = stmt.with_for_update()
        stmt = stmt.execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        lead = result.scalar_one_or_none()
        if lead is None:
            raise LeadNotFound(lead_id)
        return lead

    async def update(
        self,
        lead_id,
        patch: Mapping[str, Any],
        *,
        expect: Optional[Mapping[str, Any]] = None,
        status_in: Optional[Iterable[LeadStatus]] = None,
    ) -> Lead:
        """
        Conditionally update one lead.

        ``expect`` maps column names to the value that must currently be
        stored (``None`` means the column must be NULL). ``status_in``
        restricts the update to leads in one of the given statuses.
        Raises LeadNotFound if the lead does not exist and LeadConflict
        (carrying the current lead) if any expectation does not hold.
        """
        unknown = set(patch) - MUTABLE_FIELDS
        if unknown:
            raise InvalidLeadData(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

        uid = self._to_uuid(lead_id)
        conditions = [Lead.id == uid]
        for field, value in (expect or {}).items():
            column = getattr(Lead, field)
            conditions.append(column.is_(None) if value is None else column == value)
        if status_in is not None:
            conditions.append(Lead.status.in_(list(status_in)))

        values: Dict[str, Any] = dict(patch)
        values["updated_at"] = utcnow()

        stmt = (
            update(Lead)
            .where(*conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)

        if result.rowcount != 1:
            current = await self.get(uid)
            raise LeadConflict(
                f"Lead {uid} changed since it was read",
                lead=current,
            )

        return await self.get(uid)

    async def list(self, lead_filter: Optional[LeadFilter] = None, limit: Optional[int] = None, offset: int = 0) -> List[Lead]:
        """Leads matching the filter, newest first."""
        conditions = (lead_filter or LeadFilter()).conditions()
        stmt = select(Lead).where(*conditions).order_by(Lead.created_at.desc(), Lead.id)
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def count(self, lead_filter: Optional[LeadFilter] = None) -> int:
        """Number of leads matching the filter, ignoring paging."""
        conditions = (lead_filter or LeadFilter()).conditions()
        result = await self.db.execute(select(func.count(Lead.id)).where(*conditions))
        return int(result.scalar_one())
