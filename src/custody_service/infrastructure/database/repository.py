"""
Evidence Repository

SQLAlchemy implementation of the evidence repository. Every mutation is a
single-row write guarded by the optimistic version column, so the aggregate
(status, seal, custody chain, file metadata) is always persisted atomically.
"""

import logging
from typing import AsyncIterator, List, Optional

from sqlalchemy import String, and_, cast, delete, func, insert, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from custody_service.core.errors import NotFoundError, QRCodeCollision, VersionConflictError
from custody_service.core.ports import EvidenceRepository
from custody_service.infrastructure.database.models import EvidenceDB, QRSequenceDB
from custody_service.models.evidence import (
    CustodyEvent,
    EvidenceItem,
    EvidenceStatus,
    EvidenceType,
    FileMeta,
)
from custody_service.models.inputs import EvidenceFilters, EvidenceStatistics

logger = logging.getLogger(__name__)

# Never rewritten after insert
IMMUTABLE_COLUMNS = frozenset({
    "id", "qr_code", "case_id", "station_id",
    "collected_date", "collected_location", "collected_by", "created_at",
})


def _to_row(item: EvidenceItem) -> dict:
    file_meta = item.file_meta
    return {
        "id": item.id,
        "qr_code": item.qr_code,
        "case_id": item.case_id,
        "station_id": item.station_id,
        "evidence_type": item.type.value,
        "description": item.description,
        "tags": sorted(item.tags),
        "notes": item.notes,
        "status": item.status.value,
        "collected_date": item.collected_date,
        "collected_location": item.collected_location,
        "collected_by": item.collected_by,
        "is_sealed": item.is_sealed,
        "sealed_at": item.sealed_at,
        "sealed_by": item.sealed_by,
        "file_url": file_meta.url if file_meta else None,
        "file_name": file_meta.name if file_meta else None,
        "file_size": file_meta.size_bytes if file_meta else None,
        "file_mime_type": file_meta.mime_type if file_meta else None,
        "file_hash": file_meta.content_hash if file_meta else None,
        "storage_location": item.storage_location,
        "chain_of_custody": [event.model_dump(mode="json") for event in item.custody_chain],
        "created_at": item.created_at,
        "updated_at": item.updated_at,
        "version": item.version,
    }


def _to_domain(row: EvidenceDB) -> EvidenceItem:
    file_meta = None
    if row.file_url:
        file_meta = FileMeta(
            url=row.file_url,
            name=row.file_name,
            size_bytes=row.file_size or 0,
            mime_type=row.file_mime_type or "application/octet-stream",
            content_hash=row.file_hash,
        )
    return EvidenceItem(
        id=row.id,
        qr_code=row.qr_code,
        case_id=row.case_id,
        station_id=row.station_id,
        type=EvidenceType(row.evidence_type),
        description=row.description,
        tags=frozenset(row.tags or []),
        notes=row.notes,
        status=EvidenceStatus(row.status),
        collected_date=row.collected_date,
        collected_location=row.collected_location,
        collected_by=row.collected_by,
        is_sealed=row.is_sealed,
        sealed_at=row.sealed_at,
        sealed_by=row.sealed_by,
        file_meta=file_meta,
        storage_location=row.storage_location,
        custody_chain=tuple(CustodyEvent.model_validate(e) for e in row.chain_of_custody or []),
        created_at=row.created_at,
        updated_at=row.updated_at,
        version=row.version,
    )


def _escape_like(value: str) -> str:
    """Make LIKE treat % and _ in user input literally (escape character is a backslash)"""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _conditions(filters: EvidenceFilters) -> list:
    conditions = []
    if filters.case_id:
        conditions.append(EvidenceDB.case_id == filters.case_id)
    if filters.station_id:
        conditions.append(EvidenceDB.station_id == filters.station_id)
    if filters.type:
        conditions.append(EvidenceDB.evidence_type == filters.type.value)
    if filters.status:
        conditions.append(EvidenceDB.status == filters.status.value)
    if filters.collected_by:
        conditions.append(EvidenceDB.collected_by == filters.collected_by)
    if filters.is_sealed is not None:
        conditions.append(EvidenceDB.is_sealed == filters.is_sealed)
    if filters.is_digital is True:
        conditions.append(EvidenceDB.file_hash.is_not(None))
    elif filters.is_digital is False:
        conditions.append(EvidenceDB.file_hash.is_(None))
    for tag in filters.tags:
        # tags are stored as a sorted JSON array of strings
        conditions.append(cast(EvidenceDB.tags, String).like(f'%"{_escape_like(tag)}"%', escape="\\"))
    if filters.collected_after:
        conditions.append(EvidenceDB.collected_date >= filters.collected_after)
    if filters.collected_before:
        conditions.append(EvidenceDB.collected_date <= filters.collected_before)
    if filters.search:
        pattern = f"%{_escape_like(filters.search)}%"
        conditions.append(or_(
            EvidenceDB.description.ilike(pattern, escape="\\"),
            EvidenceDB.qr_code.ilike(pattern, escape="\\"),
        ))
    return conditions


class SqlEvidenceRepository(EvidenceRepository):
    """Evidence repository over an async SQLAlchemy session factory"""

    def __init__(self, session_maker: async_sessionmaker):
        self.session_maker = session_maker

    async def _get_row(self, session: AsyncSession, evidence_id: str) -> Optional[EvidenceDB]:
        result = await session.execute(select(EvidenceDB).where(EvidenceDB.id == evidence_id))
        return result.scalar_one_or_none()

    async def _raise_write_miss(self, session: AsyncSession, evidence_id: str, expected_version: int):
        exists = await session.scalar(select(EvidenceDB.id).where(EvidenceDB.id == evidence_id))
        if exists is None:
            raise NotFoundError(f"Evidence not found: {evidence_id}")
        logger.warning(f"Version conflict on evidence {evidence_id} (expected {expected_version})")
        raise VersionConflictError(evidence_id, expected_version)

    async def load(self, evidence_id: str) -> EvidenceItem:
        async with self.session_maker() as session:
            row = await self._get_row(session, evidence_id)
        if row is None:
            raise NotFoundError(f"Evidence not found: {evidence_id}")
        return _to_domain(row)

    async def insert(self, item: EvidenceItem) -> EvidenceItem:
        try:
            async with self.session_maker() as session:
                async with session.begin():
                    session.add(EvidenceDB(**_to_row(item)))
        except IntegrityError as e:
            raise QRCodeCollision(f"QR code {item.qr_code} already exists") from e
        return item

    async def save(self, item: EvidenceItem, expected_version: int) -> EvidenceItem:
        values = {k: v for k, v in _to_row(item).items() if k not in IMMUTABLE_COLUMNS}
        values["version"] = expected_version + 1
        stmt = (
            update(EvidenceDB)
            .where(and_(EvidenceDB.id == item.id, EvidenceDB.version == expected_version))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        async with self.session_maker() as session:
            async with session.begin():
                result = await session.execute(stmt)
                if result.rowcount == 0:
                    await self._raise_write_miss(session, item.id, expected_version)
        return item.model_copy(update={"version": expected_version + 1})

    async def delete(self, evidence_id: str, expected_version: int) -> None:
        stmt = (
            delete(EvidenceDB)
            .where(and_(EvidenceDB.id == evidence_id, EvidenceDB.version == expected_version))
            .execution_options(synchronize_session=False)
        )
        async with self.session_maker() as session:
            async with session.begin():
                result = await session.execute(stmt)
                if result.rowcount == 0:
                    await self._raise_write_miss(session, evidence_id, expected_version)

    async def find_by_qr_code(self, qr_code: str) -> Optional[EvidenceItem]:
        async with self.session_maker() as session:
            result = await session.execute(select(EvidenceDB).where(EvidenceDB.qr_code == qr_code))
            row = result.scalar_one_or_none()
        return _to_domain(row) if row else None

    async def find_by_content_hash(self, content_hash: str) -> List[EvidenceItem]:
        async with self.session_maker() as session:
            result = await session.execute(
                select(EvidenceDB)
                .where(EvidenceDB.file_hash == content_hash)
                .order_by(EvidenceDB.created_at)
            )
            rows = result.scalars().all()
        return [_to_domain(row) for row in rows]

    async def qr_code_exists(self, qr_code: str) -> bool:
        async with self.session_maker() as session:
            found = await session.scalar(select(EvidenceDB.id).where(EvidenceDB.qr_code == qr_code))
        return found is not None

    async def next_qr_sequence(self, station_code: str, year: int) -> int:
        sequences = QRSequenceDB.__table__
        key = and_(sequences.c.station_code == station_code, sequences.c.year == year)
        try:
            async with self.session_maker() as session:
                async with session.begin():
                    # the UPDATE takes the row lock before the value is read back
                    result = await session.execute(
                        update(sequences).where(key).values(last_value=sequences.c.last_value + 1)
                    )
                    if result.rowcount == 0:
                        await session.execute(
                            insert(sequences).values(station_code=station_code, year=year, last_value=1)
                        )
                        return 1
                    return await session.scalar(select(sequences.c.last_value).where(key))
        except IntegrityError as e:
            raise QRCodeCollision(f"QR sequence for {station_code}/{year} created concurrently") from e

    async def search(
        self, filters: EvidenceFilters, limit: int = 100, offset: int = 0
    ) -> List[EvidenceItem]:
        stmt = (
            select(EvidenceDB)
            .where(*_conditions(filters))
            .order_by(EvidenceDB.collected_date.desc(), EvidenceDB.id)
            .offset(offset)
            .limit(limit)
        )
        async with self.session_maker() as session:
            result = await session.execute(stmt)
            rows = result.scalars().all()
        return [_to_domain(row) for row in rows]

    async def count(self, filters: EvidenceFilters) -> int:
        stmt = select(func.count()).select_from(EvidenceDB).where(*_conditions(filters))
        async with self.session_maker() as session:
            return await session.scalar(stmt) or 0

    async def statistics(self, station_id: Optional[str] = None) -> EvidenceStatistics:
        scope = [EvidenceDB.station_id == station_id] if station_id else []

        async with self.session_maker() as session:
            by_type = await session.execute(
                select(EvidenceDB.evidence_type, func.count())
                .where(*scope)
                .group_by(EvidenceDB.evidence_type)
            )
            by_status = await session.execute(
                select(EvidenceDB.status, func.count()).where(*scope).group_by(EvidenceDB.status)
            )
            totals = await session.execute(
                select(
                    func.count(),
                    func.count(EvidenceDB.file_hash),
                    func.coalesce(func.sum(EvidenceDB.file_size), 0),
                ).where(*scope)
            )
            sealed = await session.scalar(
                select(func.count()).select_from(EvidenceDB).where(*scope, EvidenceDB.is_sealed.is_(True))
            )
            total, digital, total_size = totals.one()

            return EvidenceStatistics(
                total=total,
                by_type={t.value: 0 for t in EvidenceType} | dict(by_type.all()),
                by_status={s.value: 0 for s in EvidenceStatus} | dict(by_status.all()),
                sealed=sealed or 0,
                digital=digital,
                total_file_size=int(total_size),
            )

    async def iter_items(
        self, station_id: Optional[str] = None, batch_size: int = 200
    ) -> AsyncIterator[EvidenceItem]:
        offset = 0
        while True:
            stmt = select(EvidenceDB).order_by(EvidenceDB.created_at, EvidenceDB.id)
            if station_id:
                stmt = stmt.where(EvidenceDB.station_id == station_id)
            stmt = stmt.offset(offset).limit(batch_size)
            async with self.session_maker() as session:
                result = await session.execute(stmt)
                rows = result.scalars().all()
            for row in rows:
                yield _to_domain(row)
            if len(rows) < batch_size:
                return
            offset += batch_size
