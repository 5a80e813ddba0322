"""
Audit Sink

Writes audit records to the audit_logs table.
"""

import logging
from typing import List
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from custody_service.core.ports import AuditSink
from custody_service.infrastructure.database.models import AuditLogDB
from custody_service.models.inputs import AuditRecord

logger = logging.getLogger(__name__)


class SqlAuditSink(AuditSink):
    """Audit sink backed by the audit_logs table"""

    def __init__(self, session_maker: async_sessionmaker):
        self.session_maker = session_maker

    async def record(self, record: AuditRecord) -> None:
        async with self.session_maker() as session:
            async with session.begin():
                session.add(AuditLogDB(
                    id=str(uuid4()),
                    entity_type=record.entity_type,
                    entity_id=record.entity_id,
                    officer_id=record.actor_id,
                    action=record.action,
                    success=record.success,
                    details=record.model_dump(mode="json")["details"],
                    station_id=record.station_id,
                    created_at=record.timestamp,
                ))
        logger.debug(f"Audit {record.action} on {record.entity_type} {record.entity_id} by {record.actor_id}")

    async def records_for(self, entity_id: str) -> List[AuditRecord]:
        """Audit trail of one entity, oldest first"""
        async with self.session_maker() as session:
            result = await session.execute(
                select(AuditLogDB)
                .where(AuditLogDB.entity_id == entity_id)
                .order_by(AuditLogDB.created_at)
            )
            rows = result.scalars().all()
        return [
            AuditRecord(
                entity_type=row.entity_type,
                entity_id=row.entity_id,
                action=row.action,
                actor_id=row.officer_id,
                success=row.success,
                details=row.details or {},
                station_id=row.station_id,
                timestamp=row.created_at,
            )
            for row in rows
        ]
