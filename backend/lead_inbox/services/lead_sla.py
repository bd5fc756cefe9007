# backend/lead_inbox/services/lead_sla.py
"""Lead response-time SLA check: find new leads nobody has picked up in time."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from lead_inbox.config import settings
from lead_inbox.models import Lead, utcnow
from lead_inbox.services.lead_queries import LeadQueries

logger = logging.getLogger(__name__)

ALERT_KEY_PREFIX = "lead_sla_alerted"


@dataclass
class OverdueLead:
    lead_id: str
    name: str
    source: str
    preferred_location: Optional[str]
    hours_waiting: int


@dataclass
class SlaCheckResult:
    sla_hours: int
    overdue_total: int = 0
    already_alerted: int = 0
    newly_overdue: List[OverdueLead] = field(default_factory=list)


def _hours_waiting(lead: Lead, now: datetime) -> int:
    created_at = lead.created_at
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=now.tzinfo)
    return round((now - created_at).total_seconds() / 3600)


async def check_lead_sla(
    db: AsyncSession,
    cache,
    sla_hours: Optional[int] = None,
    now: Optional[datetime] = None,
) -> SlaCheckResult:
    """
    Report overdue leads that were not already reported within the cooldown.

    Each reported lead gets a cooldown marker in ``cache`` so repeated runs
    do not flood managers. Delivering the alert is someone else's job.
    """
    sla_hours = settings.LEAD_SLA_HOURS if sla_hours is None else sla_hours
    now = now or utcnow()

    overdue = await LeadQueries(db).find_overdue_leads(sla_hours=sla_hours, now=now)
    result = SlaCheckResult(sla_hours=sla_hours, overdue_total=len(overdue))
    if not overdue:
        logger.info("No overdue leads")
        return result

    cooldown_seconds = settings.SLA_ALERT_COOLDOWN_HOURS * 3600
    for lead in overdue:
        key = f"{ALERT_KEY_PREFIX}:{lead.id}"
        if await cache.exists(key):
            result.already_alerted += 1
            continue
        await cache.setex(key, cooldown_seconds, now.isoformat())
        result.newly_overdue.append(OverdueLead(
            lead_id=str(lead.id),
            name=lead.name,
            source=lead.source.value,
            preferred_location=lead.preferred_location,
            hours_waiting=_hours_waiting(lead, now),
        ))

    logger.warning(
        f"Lead SLA breach: {len(result.newly_overdue)} new overdue leads "
        f"({result.already_alerted} already alerted, SLA {sla_hours}h)"
    )
    return result
