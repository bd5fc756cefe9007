# backend/lead_inbox/services/assignment_engine.py
"""
Assignment Engine - claim/assign semantics and the lead status machine.

Every operation runs in one transaction: read the lead, compute the new
values, write them with a conditional update, append exactly one activity
entry, commit. A failed expectation is reported to the caller and never
retried here; the decision behind it is stale.

Status rules:
- nothing leaves ``converted`` or ``lost``
- entering ``assigned`` needs an assignee in the same write
- entering ``new`` needs the lead to be unassigned
- the first move away from ``new`` stamps ``response_time_seconds``
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Optional

from sqlalchemy import Integer, and_, case, literal
from sqlalchemy.ext.asyncio import AsyncSession

from lead_inbox.enums import LeadStatus, TERMINAL_STATUSES
from lead_inbox.exceptions import (
    AlreadyClaimed,
    EmptyNote,
    IllegalTransition,
    InvalidLeadData,
    LeadConflict,
    LeadInboxError,
    RevenueAlreadyRecorded,
)
from lead_inbox.models import Lead, LeadActivity, utcnow
from lead_inbox.services.activity_logger import ActivityLogger
from lead_inbox.services.lead_store import LeadStore

logger = logging.getLogger(__name__)

NON_TERMINAL_STATUSES = frozenset(LeadStatus) - TERMINAL_STATUSES

# Fields a status change may set alongside the status
ANCILLARY_FIELDS = frozenset({"first_service_revenue"})


def response_time_seconds(created_at: datetime, now: datetime) -> int:
    """Whole seconds between intake and now, never negative."""
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return max(0, int((now - created_at).total_seconds()))


def _require_user(value: Optional[str], role: str) -> str:
    if value is None or not str(value).strip():
        raise InvalidLeadData(f"{role} id is required")
    return str(value)


def _parse_revenue(amount: Any) -> Decimal:
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidLeadData(f"Invalid revenue amount: {amount!r}")
    if not value.is_finite() or value < 0:
        raise InvalidLeadData(f"Invalid revenue amount: {amount!r}")
    return value.quantize(Decimal("0.01"))


class AssignmentEngine:
    """Race-safe lead mutations. Authorization is the caller's job."""

    def __init__(self, db: AsyncSession, counts_cache=None):
        self.db = db
        self.store = LeadStore(db)
        self.activity = ActivityLogger(db)
        self.counts_cache = counts_cache

    @asynccontextmanager
    async def _transaction(self, invalidates_counts: bool = True):
        """Commit the lead mutation and its activity entry together."""
        try:
            yield
            await self.db.commit()
        except LeadInboxError as e:
            # Keep the lead snapshot readable after rollback expires the session
            if e.lead is not None and e.lead in self.db:
                self.db.expunge(e.lead)
            await self.db.rollback()
            raise
        except Exception:
            await self.db.rollback()
            raise
        if invalidates_counts and self.counts_cache is not None:
            await self.counts_cache.invalidate()

    # ------------------------------------------------------------------
    # claim
    # ------------------------------------------------------------------

    async def claim(self, lead_id, claimant_id: str) -> Lead:
        """
        Self-service assignment of an unassigned lead.

        Of any number of concurrent claims on the same lead exactly one
        succeeds; the rest get AlreadyClaimed.
        """
        claimant_id = _require_user(claimant_id, "Claimant")

        async with self._transaction():
            lead = await self.store.get(lead_id)
            if LeadStatus(lead.status).is_terminal:
                raise IllegalTransition(
                    f"Lead {lead.id} is {lead.status.value} and cannot be claimed", lead=lead,
                )
            if lead.assigned_to is not None:
                logger.warning(f"Claim rejected: lead {lead.id} already owned by {lead.assigned_to}")
                raise AlreadyClaimed(f"Lead {lead.id} is already claimed", lead=lead)

            now = utcnow()
            # Status and response time are decided by the row as written, not as read;
            # created_at is immutable so the elapsed time computed here stays valid.
            was_new = Lead.status == LeadStatus.NEW
            patch: Dict[str, Any] = {
                "assigned_to": claimant_id,
                "assigned_by": claimant_id,
                "assigned_at": now,
                "status": case(
                    (was_new, literal(LeadStatus.ASSIGNED, Lead.status.type)),
                    else_=Lead.status,
                ),
                "response_time_seconds": case(
                    (
                        and_(was_new, Lead.response_time_seconds.is_(None)),
                        literal(response_time_seconds(lead.created_at, now), Integer),
                    ),
                    else_=Lead.response_time_seconds,
                ),
            }

            try:
                updated = await self.store.update(
                    lead.id,
                    patch,
                    expect={"assigned_to": None},
                    status_in=NON_TERMINAL_STATUSES,
                )
            except LeadConflict as e:
                current = e.lead
                if current.assigned_to is not None:
                    logger.warning(f"Claim race lost on lead {lead.id}: owned by {current.assigned_to}")
                    raise AlreadyClaimed(f"Lead {lead.id} is already claimed", lead=current)
                if LeadStatus(current.status).is_terminal:
                    raise IllegalTransition(
                        f"Lead {lead.id} is {current.status.value} and cannot be claimed", lead=current,
                    )
                raise

            await self.activity.log_claim(updated.id, claimant_id)

        logger.info(f"Lead {updated.id} claimed by {claimant_id}")
        return updated

    # ------------------------------------------------------------------
    # assign
    # ------------------------------------------------------------------

    async def assign(self, lead_id, assigner_id: str, assignee_id: str) -> Lead:
        """
        Manager-directed assignment or reassignment.

        No "already assigned" precondition: the latest explicit assignment
        wins. A ``new`` lead advances to ``assigned``.
        """
        assigner_id = _require_user(assigner_id, "Assigner")
        assignee_id = _require_user(assignee_id, "Assignee")

        async with self._transaction():
            lead = await self.store.get(lead_id, for_update=True)
            if LeadStatus(lead.status).is_terminal:
                raise IllegalTransition(
                    f"Lead {lead.id} is {lead.status.value} and cannot be assigned", lead=lead,
                )

            previous_assignee = lead.assigned_to
            now = utcnow()
            patch: Dict[str, Any] = {
                "assigned_to": assignee_id,
                "assigned_by": assigner_id,
                "assigned_at": now,
            }
            expect = None
            if lead.status == LeadStatus.NEW:
                patch["status"] = LeadStatus.ASSIGNED
                if lead.response_time_seconds is None:
                    patch["response_time_seconds"] = response_time_seconds(lead.created_at, now)
                expect = {"status": LeadStatus.NEW}

            try:
                updated = await self.store.update(
                    lead.id, patch, expect=expect, status_in=NON_TERMINAL_STATUSES,
                )
            except LeadConflict as e:
                if LeadStatus(e.lead.status).is_terminal:
                    raise IllegalTransition(
                        f"Lead {lead.id} is {e.lead.status.value} and cannot be assigned", lead=e.lead,
                    )
                raise

            await self.activity.log_assignment(
                updated.id, assigner_id, assignee_id, previous_assignee=previous_assignee,
            )

        if previous_assignee and previous_assignee != assignee_id:
            logger.info(f"Lead {updated.id} reassigned {previous_assignee} -> {assignee_id} by {assigner_id}")
        else:
            logger.info(f"Lead {updated.id} assigned to {assignee_id} by {assigner_id}")
        return updated

    # ------------------------------------------------------------------
    # change_status
    # ------------------------------------------------------------------

    @staticmethod
    def check_transition(lead: Lead, new_status: LeadStatus) -> None:
        """Raise IllegalTransition if ``lead`` may not move to ``new_status``."""
        current = LeadStatus(lead.status)
        if current.is_terminal:
            raise IllegalTransition(
                f"Lead {lead.id} is {current.value}; no transitions out of terminal states",
                lead=lead,
            )
        if new_status == LeadStatus.ASSIGNED and lead.assigned_to is None:
            raise IllegalTransition(
                f"Lead {lead.id} has no assignee; assign or claim it first", lead=lead,
            )
        if new_status == LeadStatus.NEW and lead.assigned_to is not None:
            raise IllegalTransition(
                f"Lead {lead.id} is assigned to {lead.assigned_to}; it cannot return to new",
                lead=lead,
            )

    @staticmethod
    def _ancillary_patch(
        new_status: LeadStatus, additional_data: Optional[Mapping[str, Any]]
    ) -> Dict[str, Any]:
        if not additional_data:
            return {}
        unknown = set(additional_data) - ANCILLARY_FIELDS
        if unknown:
            raise InvalidLeadData(
                f"Fields cannot be set with a status change: {', '.join(sorted(unknown))}"
            )
        patch: Dict[str, Any] = {}
        if additional_data.get("first_service_revenue") is not None:
            if new_status != LeadStatus.CONVERTED:
                raise InvalidLeadData("first_service_revenue can only be set on conversion")
            patch["first_service_revenue"] = _parse_revenue(additional_data["first_service_revenue"])
        return patch

    async def change_status(
        self,
        lead_id,
        new_status,
        performer_id: Optional[str],
        additional_data: Optional[Mapping[str, Any]] = None,
    ) -> Lead:
        """Move a lead to ``new_status``, optionally setting ancillary fields atomically."""
        try:
            new_status = LeadStatus(new_status)
        except ValueError:
            raise InvalidLeadData(f"Invalid lead status: {new_status!r}")
        extra = self._ancillary_patch(new_status, additional_data)

        async with self._transaction():
            lead = await self.store.get(lead_id)
            current = LeadStatus(lead.status)
            try:
                self.check_transition(lead, new_status)
            except IllegalTransition:
                logger.warning(f"Illegal transition on lead {lead.id}: {current.value} -> {new_status.value}")
                raise

            now = utcnow()
            patch: Dict[str, Any] = {"status": new_status, **extra}
            if (
                current == LeadStatus.NEW
                and new_status != LeadStatus.NEW
                and lead.response_time_seconds is None
            ):
                patch["response_time_seconds"] = response_time_seconds(lead.created_at, now)
            if new_status == LeadStatus.CONSULTATION_BOOKED and lead.consultation_booked_at is None:
                patch["consultation_booked_at"] = now
            if new_status == LeadStatus.CONVERTED and lead.converted_at is None:
                patch["converted_at"] = now

            expect: Dict[str, Any] = {"status": current, "assigned_to": lead.assigned_to}
            if "first_service_revenue" in extra:
                if lead.first_service_revenue is not None:
                    raise RevenueAlreadyRecorded(
                        f"Lead {lead.id} already has first service revenue recorded", lead=lead,
                    )
                expect["first_service_revenue"] = None

            try:
                updated = await self.store.update(lead.id, patch, expect=expect)
            except LeadConflict as e:
                if LeadStatus(e.lead.status).is_terminal:
                    raise IllegalTransition(
                        f"Lead {lead.id} became {e.lead.status.value} concurrently", lead=e.lead,
                    )
                raise

            await self.activity.log_status_change(updated.id, current, new_status, performer_id)

        logger.info(f"Lead {updated.id} status {current.value} -> {new_status.value} by {performer_id or 'system'}")
        return updated

    # ------------------------------------------------------------------
    # add_note
    # ------------------------------------------------------------------

    async def add_note(self, lead_id, note: Optional[str], performer_id: Optional[str]) -> LeadActivity:
        """Audit-only: append a note without touching the lead."""
        if note is None or not note.strip():
            raise EmptyNote()

        async with self._transaction(invalidates_counts=False):
            lead = await self.store.get(lead_id)
            entry = await self.activity.log_note(lead.id, note.strip(), performer_id)

        logger.info(f"Note added to lead {lead.id} by {performer_id or 'system'}")
        return entry

    # ------------------------------------------------------------------
    # first service revenue (booking/billing collaborator)
    # ------------------------------------------------------------------

    async def record_first_service_revenue(self, lead_id, amount, performer_id: Optional[str] = None) -> Lead:
        """Write-once revenue on a converted lead."""
        value = _parse_revenue(amount)

        async with self._transaction():
            lead = await self.store.get(lead_id)
            if lead.status != LeadStatus.CONVERTED:
                raise IllegalTransition(
                    f"Lead {lead.id} is {lead.status.value}; revenue is recorded after conversion",
                    lead=lead,
                )
            if lead.first_service_revenue is not None:
                raise RevenueAlreadyRecorded(
                    f"Lead {lead.id} already has first service revenue recorded", lead=lead,
                )

            try:
                updated = await self.store.update(
                    lead.id,
                    {"first_service_revenue": value},
                    expect={"first_service_revenue": None, "status": LeadStatus.CONVERTED},
                )
            except LeadConflict as e:
                if e.lead.first_service_revenue is not None:
                    raise RevenueAlreadyRecorded(
                        f"Lead {lead.id} already has first service revenue recorded", lead=e.lead,
                    )
                raise

            await self.activity.log_revenue(updated.id, value, performer_id)

        logger.info(f"Revenue {value} recorded on lead {updated.id}")
        return updated
