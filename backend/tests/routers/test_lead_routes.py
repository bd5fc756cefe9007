# tests/routers/test_lead_routes.py
"""
HTTP tests for the lead routes

Coverage:
- Intake, detail, list buckets and badge counts
- Engine commands and their error kinds / status codes
- Activity timeline

Run with: pytest tests/routers/test_lead_routes.py -v
"""

import pytest
import pytest_asyncio
from uuid import uuid4

from httpx import ASGITransport, AsyncClient

from lead_inbox.database import get_db
from lead_inbox.main import app
from lead_inbox.routers.lead_routes import get_counts_cache

BASE = "/api/v1/leads"


@pytest_asyncio.fixture
async def client(session_factory, counts_cache):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_counts_cache] = lambda: counts_cache
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def create_lead(client, **overrides):
    payload = {"name": "Riley Park", "source": "website_form", "email": "riley@example.com"}
    payload.update(overrides)
    response = await client.post(f"{BASE}/", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


# ============================================================================
# TEST: Intake & reads
# ============================================================================

class TestIntakeAndReads:

    @pytest.mark.asyncio
    async def test_create_lead(self, client):
        lead = await create_lead(client, preferred_location="downtown")

        assert lead["status"] == "new"
        assert lead["assigned_to"] is None
        assert lead["preferred_location"] == "downtown"

    @pytest.mark.asyncio
    async def test_create_rejects_unknown_source(self, client):
        response = await client.post(f"{BASE}/", json={"name": "Riley", "source": "billboard"})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_get_lead(self, client):
        lead = await create_lead(client)
        response = await client.get(f"{BASE}/{lead['id']}")
        assert response.status_code == 200
        assert response.json()["name"] == "Riley Park"

    @pytest.mark.asyncio
    async def test_get_missing_lead(self, client):
        response = await client.get(f"{BASE}/{uuid4()}")
        assert response.status_code == 404
        body = response.json()
        assert body["error"] == "not_found"
        assert body["lead"] is None

    @pytest.mark.asyncio
    async def test_list_bucket_and_counts(self, client):
        first = await create_lead(client, name="First")
        await create_lead(client, name="Second")
        await client.post(f"{BASE}/{first['id']}/claim", json={"claimant_id": "stylist-a"})

        unassigned = (await client.get(f"{BASE}/", params={"bucket": "unassigned"})).json()
        mine = (await client.get(f"{BASE}/", params={"bucket": "my_leads", "user_id": "stylist-a"})).json()
        counts = (await client.get(f"{BASE}/counts", params={"user_id": "stylist-a"})).json()

        assert unassigned["total"] == 1
        assert [lead["name"] for lead in unassigned["leads"]] == ["Second"]
        assert [lead["id"] for lead in mine["leads"]] == [first["id"]]
        assert counts["unassigned"] == unassigned["total"]
        assert counts["my_leads"] == mine["total"]
        assert counts["total"] == 2

    @pytest.mark.asyncio
    async def test_counts_without_user_omit_my_leads(self, client):
        await create_lead(client)
        counts = (await client.get(f"{BASE}/counts")).json()
        assert "my_leads" not in counts
        assert counts["new"] == 1

    @pytest.mark.asyncio
    async def test_list_search_and_status_filter(self, client):
        await create_lead(client, name="Taylor Brooks", phone="555-2020")
        await create_lead(client, name="Dana Fox")

        found = (await client.get(f"{BASE}/", params={"search": "2020"})).json()
        by_status = (await client.get(f"{BASE}/", params={"status": "contacted"})).json()

        assert [lead["name"] for lead in found["leads"]] == ["Taylor Brooks"]
        assert by_status["total"] == 0

    @pytest.mark.asyncio
    async def test_list_total_counts_all_pages(self, client):
        for name in ("One", "Two", "Three"):
            await create_lead(client, name=name)

        page = (await client.get(f"{BASE}/", params={"limit": 2, "offset": 2})).json()

        assert len(page["leads"]) == 1
        assert page["total"] == 3

    @pytest.mark.asyncio
    async def test_error_body_documented(self, client):
        schema = (await client.get("/openapi.json")).json()
        claim = schema["paths"]["/api/v1/leads/{lead_id}/claim"]["post"]

        ref = claim["responses"]["409"]["content"]["application/json"]["schema"]["$ref"]
        error_schema = schema["components"]["schemas"][ref.rsplit("/", 1)[-1]]

        assert "ErrorResponse" in ref
        assert set(error_schema["properties"]) == {"error", "message", "lead"}

    @pytest.mark.asyncio
    async def test_list_invalid_filter_value(self, client):
        response = await client.get(f"{BASE}/", params={"source": "billboard"})
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_data"


# ============================================================================
# TEST: Engine commands
# ============================================================================

class TestCommands:

    @pytest.mark.asyncio
    async def test_claim_then_second_claim_conflicts(self, client):
        lead = await create_lead(client)

        first = await client.post(f"{BASE}/{lead['id']}/claim", json={"claimant_id": "stylist-a"})
        second = await client.post(f"{BASE}/{lead['id']}/claim", json={"claimant_id": "stylist-b"})

        assert first.status_code == 200
        assert first.json()["assigned_to"] == "stylist-a"
        assert first.json()["status"] == "assigned"
        assert second.status_code == 409
        body = second.json()
        assert body["error"] == "already_claimed"
        assert body["lead"]["assigned_to"] == "stylist-a"

    @pytest.mark.asyncio
    async def test_manager_assign(self, client):
        lead = await create_lead(client)
        await client.post(f"{BASE}/{lead['id']}/claim", json={"claimant_id": "stylist-a"})

        response = await client.post(
            f"{BASE}/{lead['id']}/assign",
            json={"assigner_id": "manager-1", "assignee_id": "stylist-b"},
        )

        assert response.status_code == 200
        assert response.json()["assigned_to"] == "stylist-b"
        assert response.json()["assigned_by"] == "manager-1"

    @pytest.mark.asyncio
    async def test_illegal_transition(self, client):
        lead = await create_lead(client)
        lost = await client.post(f"{BASE}/{lead['id']}/status", json={"status": "lost", "performer_id": "m"})
        assert lost.status_code == 200

        response = await client.post(
            f"{BASE}/{lead['id']}/status", json={"status": "contacted", "performer_id": "m"},
        )

        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "illegal_transition"
        assert body["lead"]["status"] == "lost"

    @pytest.mark.asyncio
    async def test_convert_with_revenue_then_revenue_again(self, client):
        lead = await create_lead(client)
        await client.post(f"{BASE}/{lead['id']}/claim", json={"claimant_id": "stylist-a"})
        converted = await client.post(
            f"{BASE}/{lead['id']}/status",
            json={
                "status": "converted",
                "performer_id": "stylist-a",
                "additional_data": {"first_service_revenue": 210},
            },
        )
        assert converted.status_code == 200
        assert converted.json()["converted_at"] is not None

        again = await client.post(f"{BASE}/{lead['id']}/revenue", json={"amount": "99.00"})

        assert again.status_code == 409
        assert again.json()["error"] == "conflict"

    @pytest.mark.asyncio
    async def test_notes_and_timeline(self, client):
        lead = await create_lead(client)
        await client.post(f"{BASE}/{lead['id']}/claim", json={"claimant_id": "stylist-a"})

        note = await client.post(
            f"{BASE}/{lead['id']}/notes", json={"note": "Booked patch test", "performer_id": "stylist-a"},
        )
        blank = await client.post(f"{BASE}/{lead['id']}/notes", json={"note": "   "})
        timeline = (await client.get(f"{BASE}/{lead['id']}/activities")).json()

        assert note.status_code == 201
        assert note.json()["action"] == "note_added"
        assert blank.status_code == 400
        assert blank.json()["error"] == "empty_note"
        assert timeline["total"] == 2
        assert [entry["action"] for entry in timeline["activities"]] == ["note_added", "claimed"]

    @pytest.mark.asyncio
    async def test_command_on_missing_lead(self, client):
        response = await client.post(f"{BASE}/{uuid4()}/claim", json={"claimant_id": "stylist-a"})
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"


# ============================================================================
# TEST: Aggregates
# ============================================================================

class TestAggregates:

    @pytest.mark.asyncio
    async def test_funnel(self, client):
        lead = await create_lead(client, source="referral")
        await create_lead(client)
        await client.post(f"{BASE}/{lead['id']}/claim", json={"claimant_id": "stylist-a"})
        await client.post(
            f"{BASE}/{lead['id']}/status", json={"status": "converted", "performer_id": "stylist-a"},
        )

        funnel = (await client.get(f"{BASE}/funnel")).json()

        assert funnel["total_leads"] == 2
        assert funnel["converted"] == 1
        assert funnel["conversion_rate"] == 50.0
        assert funnel["by_source"]["referral"] == 1

    @pytest.mark.asyncio
    async def test_overdue_empty(self, client):
        await create_lead(client)
        overdue = (await client.get(f"{BASE}/overdue")).json()
        assert overdue["total"] == 0

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
