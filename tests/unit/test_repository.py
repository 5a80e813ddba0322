"""Unit tests for the SQL evidence repository and audit sink"""

from datetime import timedelta

import pytest

from custody_service.core.errors import NotFoundError, QRCodeCollision, VersionConflictError
from custody_service.models import (
    AuditRecord,
    EvidenceFilters,
    EvidenceStatus,
    EvidenceType,
    FileMeta,
)


def _file(content_hash="a" * 64, size=10):
    return FileMeta(url="ST01/case-456/ev_a.pdf", name="a.pdf", size_bytes=size,
                    mime_type="application/pdf", content_hash=content_hash)


@pytest.mark.unit
class TestPersistence:
    """Test aggregate persistence"""

    async def test_insert_and_load(self, repository, make_item):
        item = make_item(tags=frozenset({"paper", "signed"}), file_meta=_file())
        await repository.insert(item)

        loaded = await repository.load(item.id)
        assert loaded.model_dump() == item.model_dump()
        assert loaded.collected_date.tzinfo is not None

    async def test_load_missing(self, repository):
        with pytest.raises(NotFoundError):
            await repository.load("missing")

    async def test_duplicate_qr_code(self, repository, make_item):
        await repository.insert(make_item())
        with pytest.raises(QRCodeCollision):
            await repository.insert(make_item(id="ev-2"))

    async def test_save_bumps_version(self, repository, make_item, clock):
        item = await repository.insert(make_item())
        saved = await repository.save(
            item.model_copy(update={"status": EvidenceStatus.STORED, "updated_at": clock.advance(hours=1)}),
            expected_version=1,
        )

        assert saved.version == 2
        loaded = await repository.load(item.id)
        assert loaded.status == EvidenceStatus.STORED
        assert loaded.version == 2

    async def test_stale_save_conflicts(self, repository, make_item):
        item = await repository.insert(make_item())
        await repository.save(item.model_copy(update={"notes": "first"}), expected_version=1)

        with pytest.raises(VersionConflictError) as exc_info:
            await repository.save(item.model_copy(update={"notes": "second"}), expected_version=1)
        assert exc_info.value.expected_version == 1
        assert (await repository.load(item.id)).notes == "first"

    async def test_save_never_rewrites_collection_facts(self, repository, make_item):
        item = await repository.insert(make_item())
        await repository.save(item.model_copy(update={"collected_by": "someone-else"}), expected_version=1)
        assert (await repository.load(item.id)).collected_by == item.collected_by

    async def test_save_missing_item(self, repository, make_item):
        with pytest.raises(NotFoundError):
            await repository.save(make_item(), expected_version=1)

    async def test_delete(self, repository, make_item):
        item = await repository.insert(make_item())
        with pytest.raises(VersionConflictError):
            await repository.delete(item.id, expected_version=7)
        await repository.delete(item.id, expected_version=1)
        assert await repository.find_by_qr_code(item.qr_code) is None


@pytest.mark.unit
class TestLookups:
    async def test_qr_code_lookups(self, repository, make_item):
        item = await repository.insert(make_item())
        assert await repository.qr_code_exists(item.qr_code)
        assert not await repository.qr_code_exists("ST01-EV-2026-000099")
        assert (await repository.find_by_qr_code(item.qr_code)).id == item.id

    async def test_find_by_content_hash(self, repository, make_item):
        await repository.insert(make_item(file_meta=_file()))
        await repository.insert(make_item(id="ev-2", qr_code="ST01-EV-2026-000002", file_meta=_file()))
        await repository.insert(make_item(id="ev-3", qr_code="ST01-EV-2026-000003", file_meta=_file("b" * 64)))

        matches = await repository.find_by_content_hash("a" * 64)
        assert sorted(m.id for m in matches) == ["ev-1", "ev-2"]

    async def test_qr_sequences_per_station_and_year(self, repository):
        assert await repository.next_qr_sequence("ST01", 2026) == 1
        assert await repository.next_qr_sequence("ST01", 2026) == 2
        assert await repository.next_qr_sequence("ST02", 2026) == 1
        assert await repository.next_qr_sequence("ST01", 2027) == 1


@pytest.mark.unit
class TestSearch:
    """Test filtered search, counts and statistics"""

    @pytest.fixture
    async def seeded(self, repository, make_item, clock):
        items = [
            make_item(),
            make_item(
                id="ev-2", qr_code="ST01-EV-2026-000002", type=EvidenceType.WEAPON,
                tags=frozenset({"knife", "critical"}), status=EvidenceStatus.STORED,
                is_sealed=True, sealed_at=clock.now, sealed_by="officer-7",
                collected_date=clock.now - timedelta(days=10),
            ),
            make_item(
                id="ev-3", qr_code="ST02-EV-2026-000001", station_id="ST02", case_id="case-9",
                type=EvidenceType.DIGITAL, description="Laptop hard drive image from office",
                file_meta=_file(size=2048), collected_date=clock.now - timedelta(days=20),
            ),
        ]
        for item in items:
            await repository.insert(item)
        return items

    async def test_filters(self, repository, seeded, clock):
        async def ids(**filters):
            return [i.id for i in await repository.search(EvidenceFilters(**filters))]

        assert await ids() == ["ev-1", "ev-2", "ev-3"]
        assert await ids(station_id="ST02") == ["ev-3"]
        assert await ids(case_id="case-456") == ["ev-1", "ev-2"]
        assert await ids(type=EvidenceType.WEAPON) == ["ev-2"]
        assert await ids(status=EvidenceStatus.STORED) == ["ev-2"]
        assert await ids(is_sealed=True) == ["ev-2"]
        assert await ids(is_digital=True) == ["ev-3"]
        assert await ids(is_digital=False) == ["ev-1", "ev-2"]
        assert await ids(tags=["knife"]) == ["ev-2"]
        assert await ids(tags=["knife", "missing"]) == []
        assert await ids(search="laptop") == ["ev-3"]
        assert await ids(search="ST01-EV") == ["ev-1", "ev-2"]
        assert await ids(collected_after=clock.now - timedelta(days=15)) == ["ev-1", "ev-2"]
        assert await ids(collected_before=clock.now - timedelta(days=15)) == ["ev-3"]

    async def test_wildcards_in_filters_are_literal(self, repository, make_item):
        await repository.insert(make_item(tags=frozenset({"axb"})))
        await repository.insert(make_item(id="ev-2", qr_code="ST01-EV-2026-000002", tags=frozenset({"a_b"})))

        async def ids(**filters):
            return [i.id for i in await repository.search(EvidenceFilters(**filters))]

        assert await ids(tags=["a_b"]) == ["ev-2"]
        assert await ids(tags=["a%"]) == []
        assert await ids(tags=["%"]) == []
        assert await ids(search="EV-2026-00000_") == []

    async def test_pagination_and_count(self, repository, seeded):
        page = await repository.search(EvidenceFilters(), limit=2, offset=1)
        assert [i.id for i in page] == ["ev-2", "ev-3"]
        assert await repository.count(EvidenceFilters()) == 3
        assert await repository.count(EvidenceFilters(station_id="ST01")) == 2

    async def test_statistics(self, repository, seeded):
        stats = await repository.statistics()
        assert stats.total == 3
        assert stats.by_type["weapon"] == 1
        assert stats.by_type["financial"] == 0
        assert stats.by_status["collected"] == 2
        assert stats.sealed == 1
        assert stats.digital == 1
        assert stats.total_file_size == 2048

        station = await repository.statistics("ST02")
        assert station.total == 1
        assert station.digital == 1

    async def test_iter_items_pages(self, repository, seeded):
        items = [item.id async for item in repository.iter_items(batch_size=2)]
        assert sorted(items) == ["ev-1", "ev-2", "ev-3"]
        assert [i.id async for i in repository.iter_items("ST02", batch_size=2)] == ["ev-3"]


@pytest.mark.unit
class TestAuditSink:
    async def test_records_round_trip(self, audit_sink, clock):
        await audit_sink.record(AuditRecord(
            entity_id="ev-1", action="create", actor_id="officer-7",
            details={"qr_code": "ST01-EV-2026-000001"}, station_id="ST01", timestamp=clock(),
        ))
        await audit_sink.record(AuditRecord(
            entity_id="ev-1", action="seal", actor_id="officer-7", success=False,
            details={"error": "already_sealed"}, timestamp=clock.advance(minutes=5),
        ))
        await audit_sink.record(AuditRecord(entity_id="ev-2", action="read", actor_id="x", timestamp=clock()))

        records = await audit_sink.records_for("ev-1")
        assert [r.action for r in records] == ["create", "seal"]
        assert records[0].details == {"qr_code": "ST01-EV-2026-000001"}
        assert not records[1].success
        assert records[1].timestamp == clock.now
