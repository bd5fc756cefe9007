# tests/conftest.py
"""Shared fixtures: a throwaway SQLite database per test, stores and engines on top."""

import os

# Point settings at SQLite before anything imports lead_inbox.database
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ.pop("REDIS_URL", None)

import pytest
import pytest_asyncio

from lead_inbox.database import Base, build_engine, build_session_factory
from lead_inbox.enums import LeadSource
from lead_inbox.models import Lead, utcnow
from lead_inbox.redis_client import InMemoryCacheClient
from lead_inbox.services.assignment_engine import AssignmentEngine
from lead_inbox.services.lead_queries import LeadCountsCache, LeadQueries
from lead_inbox.services.lead_store import LeadStore


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """File-backed SQLite so separate sessions really are separate connections."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'leads.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return build_session_factory(db_engine)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def cache_client():
    return InMemoryCacheClient()


@pytest.fixture
def counts_cache(cache_client):
    return LeadCountsCache(cache_client, ttl_seconds=30)


@pytest.fixture
def store(db_session):
    return LeadStore(db_session)


@pytest.fixture
def engine(db_session, counts_cache):
    return AssignmentEngine(db_session, counts_cache=counts_cache)


@pytest.fixture
def queries(db_session, counts_cache):
    return LeadQueries(db_session, counts_cache=counts_cache)


@pytest.fixture
def make_lead(db_session):
    """Intake helper; ``age`` backdates created_at."""
    async def _make(name="Jamie Rivera", source=LeadSource.WEBSITE_FORM, age=None, **fields) -> Lead:
        lead = await LeadStore(db_session).create(name=name, source=source, **fields)
        if age is not None:
            lead.created_at = utcnow() - age
        await db_session.commit()
        return lead
    return _make


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: unit tests")
    config.addinivalue_line("markers", "integration: integration tests")
    config.addinivalue_line("markers", "slow: slow running tests")
