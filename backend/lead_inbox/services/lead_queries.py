# backend/lead_inbox/services/lead_queries.py
"""
Query/Aggregation Layer - filtered lead lists, bucket counts, funnel rollups.

Reads only. Counts are cached for a bounded window and invalidated by the
assignment engine after every committed mutation.
"""

import json
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import and_, case, func, select, true
from sqlalchemy.ext.asyncio import AsyncSession

from lead_inbox.config import settings
from lead_inbox.enums import LeadBucket, LeadSource, LeadStatus
from lead_inbox.models import Lead, utcnow
from lead_inbox.services.lead_filters import LeadFilter, bucket_filter
from lead_inbox.services.lead_store import LeadStore

logger = logging.getLogger(__name__)

COUNTS_KEY_PREFIX = "lead_counts"
COUNTS_GENERATION_KEY = f"{COUNTS_KEY_PREFIX}:generation"


class LeadCountsCache:
    """
    Short-lived cache for badge counts.

    Invalidation bumps a generation number, which retires every cached
    per-user entry at once.
    """

    def __init__(self, client, ttl_seconds: Optional[int] = None):
        self.client = client
        self.ttl_seconds = settings.COUNTS_CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds

    async def key_for(self, user_id: Optional[str]) -> str:
        """Cache key for ``user_id`` under the current generation."""
        generation = await self.client.get(COUNTS_GENERATION_KEY) or "0"
        return f"{COUNTS_KEY_PREFIX}:{generation}:{user_id or '-'}"

    async def get(self, key: str) -> Optional[Dict[str, int]]:
        if self.ttl_seconds <= 0:
            return None
        cached = await self.client.get(key)
        return json.loads(cached) if cached else None

    async def set(self, key: str, counts: Dict[str, int]) -> None:
        if self.ttl_seconds <= 0:
            return
        await self.client.setex(key, self.ttl_seconds, json.dumps(counts))

    async def invalidate(self) -> None:
        await self.client.incr(COUNTS_GENERATION_KEY)


def _count_where(lead_filter: LeadFilter):
    """SUM(CASE WHEN <filter> THEN 1 ELSE 0 END)"""
    return func.coalesce(func.sum(case((and_(true(), *lead_filter.conditions()), 1), else_=0)), 0)


def _resolve_filter(lead_filter, bucket, user_id) -> LeadFilter:
    lead_filter = lead_filter or LeadFilter()
    if bucket is not None:
        lead_filter = bucket_filter(bucket, lead_filter, user_id=user_id)
    return lead_filter


class LeadQueries:
    """Lists and rollups consumed by inbox lists and tab badges."""

    def __init__(self, db: AsyncSession, counts_cache: Optional[LeadCountsCache] = None):
        self.db = db
        self.store = LeadStore(db)
        self.counts_cache = counts_cache

    async def list_leads(
        self,
        lead_filter: Optional[LeadFilter] = None,
        bucket: Union[LeadBucket, str, None] = None,
        user_id: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Lead]:
        """Leads for a list view; ``bucket`` narrows ``lead_filter`` to an inbox tab."""
        lead_filter = _resolve_filter(lead_filter, bucket, user_id)
        leads = await self.store.list(lead_filter, limit=limit, offset=offset)
        logger.debug(f"Fetched {len(leads)} leads (bucket={bucket}, filter={lead_filter})")
        return leads

    async def count_leads(
        self,
        lead_filter: Optional[LeadFilter] = None,
        bucket: Union[LeadBucket, str, None] = None,
        user_id: Optional[str] = None,
    ) -> int:
        """Size of the whole list behind ``list_leads``, regardless of paging."""
        return await self.store.count(_resolve_filter(lead_filter, bucket, user_id))

    async def counts(self, user_id: Optional[str] = None, use_cache: bool = True) -> Dict[str, int]:
        """
        Badge counts, computed from the same predicates as the list buckets.

        Keys: total, new, unassigned, contacted, assigned, consultation_booked,
        converted, lost, plus my_leads when ``user_id`` is given.
        """
        # Key taken before computing: an invalidation landing mid-query retires the result
        cache_key = None
        if self.counts_cache is not None:
            cache_key = await self.counts_cache.key_for(user_id)
        if use_cache and cache_key is not None:
            cached = await self.counts_cache.get(cache_key)
            if cached is not None:
                return cached

        columns = {
            "total": func.count(Lead.id),
            LeadBucket.UNASSIGNED.value: _count_where(bucket_filter(LeadBucket.UNASSIGNED)),
        }
        for status in LeadStatus:
            columns[status.value] = _count_where(LeadFilter(status=status))
        if user_id:
            columns[LeadBucket.MY_LEADS.value] = _count_where(
                bucket_filter(LeadBucket.MY_LEADS, user_id=user_id)
            )

        labels = list(columns)
        result = await self.db.execute(select(*[columns[label].label(label) for label in labels]))
        row = result.one()
        counts = {label: int(getattr(row, label) or 0) for label in labels}

        if self.counts_cache is not None:
            await self.counts_cache.set(cache_key, counts)
        return counts

    async def find_overdue_leads(
        self,
        sla_hours: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> List[Lead]:
        """Leads still ``new`` that came in more than ``sla_hours`` ago, oldest first."""
        sla_hours = settings.LEAD_SLA_HOURS if sla_hours is None else sla_hours
        threshold = (now or utcnow()) - timedelta(hours=sla_hours)
        result = await self.db.execute(
            select(Lead)
            .where(Lead.status == LeadStatus.NEW, Lead.created_at < threshold)
            .order_by(Lead.created_at)
        )
        return list(result.scalars().all())

    async def funnel_summary(self, location: Optional[str] = None) -> Dict[str, Any]:
        """Totals behind the funnel card: per-source volume, conversion, speed, revenue."""
        base = LeadFilter(location=location)
        conditions = base.conditions()

        totals = (await self.db.execute(
            select(
                func.count(Lead.id).label("total"),
                _count_where(LeadFilter(location=location, status=LeadStatus.CONVERTED)).label("converted"),
                func.avg(Lead.response_time_seconds).label("avg_response"),
                func.sum(Lead.first_service_revenue).label("revenue"),
            ).where(*conditions)
        )).one()

        by_source_rows = (await self.db.execute(
            select(Lead.source, func.count(Lead.id)).where(*conditions).group_by(Lead.source)
        )).all()
        by_source = {source.value: 0 for source in LeadSource}
        for source, count in by_source_rows:
            by_source[LeadSource(source).value] = int(count)

        total = int(totals.total or 0)
        converted = int(totals.converted or 0)
        return {
            "total_leads": total,
            "converted": converted,
            "conversion_rate": round(converted / total * 100, 1) if total else 0.0,
            "avg_response_time_seconds": (
                round(float(totals.avg_response), 1) if totals.avg_response is not None else None
            ),
            "total_first_service_revenue": Decimal(str(totals.revenue or 0)).quantize(Decimal("0.01")),
            "by_source": by_source,
        }
