"""Shared fixtures for custody service unit tests

Repository and service tests run against SQLite (aiosqlite) on a temporary
file; NullPool would drop an in-memory database between connections.
"""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from custody_service.core.custody_ledger import append_event
from custody_service.core.evidence_service import EvidenceService
from custody_service.core.ports import AuditSink, StaticCaseDirectory
from custody_service.core.retention import RetentionPolicy
from custody_service.infrastructure.audit import SqlAuditSink
from custody_service.infrastructure.database import DatabaseClient, SqlEvidenceRepository
from custody_service.models import (
    CreateEvidenceInput,
    CustodyAction,
    EvidenceItem,
    EvidenceType,
    Officer,
)

NOW = datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)


class FakeClock:
    """Controllable UTC clock"""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FailingAuditSink(AuditSink):
    async def record(self, record):
        raise RuntimeError("audit store unavailable")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def officer():
    return Officer(id="officer-7", name="Dana Reyes", badge="B-1007")


@pytest.fixture
def other_officer():
    return Officer(id="officer-9", name="Sam Okafor", badge="B-1009")


@pytest_asyncio.fixture
async def db_client(tmp_path):
    client = DatabaseClient(f"sqlite+aiosqlite:///{tmp_path / 'custody.db'}")
    await client.initialize()
    yield client
    await client.close()


@pytest.fixture
def repository(db_client):
    return SqlEvidenceRepository(db_client.session_maker)


@pytest.fixture
def audit_sink(db_client):
    return SqlAuditSink(db_client.session_maker)


@pytest.fixture
def case_directory():
    return StaticCaseDirectory({"case-closed"})


@pytest.fixture
def policy():
    return RetentionPolicy(stale_window_days=30, retention_window_days=365)


@pytest.fixture
def service(repository, audit_sink, case_directory, policy, clock):
    return EvidenceService(
        repository=repository,
        audit_sink=audit_sink,
        case_directory=case_directory,
        policy=policy,
        clock=clock,
    )


@pytest.fixture
def make_input():
    """Factory for valid intake records; keyword overrides replace fields"""

    def _make(**overrides) -> CreateEvidenceInput:
        values = {
            "case_id": "case-456",
            "station_id": "ST01",
            "type": EvidenceType.DOCUMENT,
            "description": "Signed lease agreement found in desk drawer",
            "collected_location": "Apartment 4B",
            "tags": ["paper"],
        }
        values.update(overrides)
        return CreateEvidenceInput(**values)

    return _make


@pytest.fixture
def make_item(officer):
    """Factory for in-memory evidence items collected by the officer fixture"""

    def _make(collected_date: datetime = NOW, **overrides) -> EvidenceItem:
        chain, _ = append_event((), CustodyAction.COLLECTED, "Apartment 4B", officer, now=collected_date)
        values = {
            "id": "ev-1",
            "qr_code": "ST01-EV-2026-000001",
            "case_id": "case-456",
            "station_id": "ST01",
            "type": EvidenceType.DOCUMENT,
            "description": "Signed lease agreement found in desk drawer",
            "collected_date": collected_date,
            "collected_location": "Apartment 4B",
            "collected_by": officer.id,
            "custody_chain": chain,
            "created_at": collected_date,
            "updated_at": collected_date,
        }
        values.update(overrides)
        return EvidenceItem(**values)

    return _make


@pytest.fixture
def unaudited_service(repository, clock):
    """Service whose audit sink always fails"""
    return EvidenceService(repository=repository, audit_sink=FailingAuditSink(), clock=clock)
