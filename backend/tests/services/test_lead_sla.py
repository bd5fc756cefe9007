# tests/services/test_lead_sla.py
"""
Tests for the lead SLA check and its scheduler job

Run with: pytest tests/services/test_lead_sla.py -v
"""

import pytest
from datetime import timedelta
from unittest.mock import AsyncMock, patch

from lead_inbox.enums import LeadSource
from lead_inbox.models import utcnow
from lead_inbox.scheduler import run_lead_sla_check
from lead_inbox.services.lead_sla import SlaCheckResult, check_lead_sla


class TestCheckLeadSla:

    @pytest.mark.asyncio
    async def test_no_overdue_leads(self, db_session, cache_client, make_lead):
        await make_lead(age=timedelta(minutes=30))

        result = await check_lead_sla(db_session, cache_client, sla_hours=4)

        assert result.overdue_total == 0
        assert result.newly_overdue == []

    @pytest.mark.asyncio
    async def test_reports_overdue_lead(self, db_session, cache_client, make_lead):
        lead = await make_lead(
            name="Sam Ortiz", source=LeadSource.PHONE_CALL,
            preferred_location="uptown", age=timedelta(hours=6),
        )

        result = await check_lead_sla(db_session, cache_client, sla_hours=4)

        assert result.overdue_total == 1
        assert len(result.newly_overdue) == 1
        overdue = result.newly_overdue[0]
        assert overdue.lead_id == str(lead.id)
        assert overdue.source == "phone_call"
        assert overdue.preferred_location == "uptown"
        assert overdue.hours_waiting == 6

    @pytest.mark.asyncio
    async def test_cooldown_suppresses_repeat_alerts(self, db_session, cache_client, make_lead):
        await make_lead(age=timedelta(hours=6))

        first = await check_lead_sla(db_session, cache_client, sla_hours=4)
        second = await check_lead_sla(db_session, cache_client, sla_hours=4)

        assert len(first.newly_overdue) == 1
        assert second.overdue_total == 1
        assert second.already_alerted == 1
        assert second.newly_overdue == []

    @pytest.mark.asyncio
    async def test_claimed_lead_drops_out(self, db_session, cache_client, engine, make_lead):
        lead = await make_lead(age=timedelta(hours=6))
        await engine.claim(lead.id, "stylist-a")

        result = await check_lead_sla(db_session, cache_client, sla_hours=4)

        assert result.overdue_total == 0

    @pytest.mark.asyncio
    async def test_now_controls_threshold(self, db_session, cache_client, make_lead):
        await make_lead(age=timedelta(hours=1))

        later = utcnow() + timedelta(hours=5)
        result = await check_lead_sla(db_session, cache_client, sla_hours=4, now=later)

        assert result.overdue_total == 1


class TestScheduledJob:

    @pytest.mark.asyncio
    async def test_job_runs_check(self):
        check = AsyncMock(return_value=SlaCheckResult(sla_hours=4))
        with patch("lead_inbox.services.lead_sla.check_lead_sla", check):
            await run_lead_sla_check()
        check.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_job_logs_and_survives_errors(self):
        check = AsyncMock(side_effect=RuntimeError("database unavailable"))
        with patch("lead_inbox.services.lead_sla.check_lead_sla", check):
            await run_lead_sla_check()
        check.assert_awaited_once()
