"""
Database Models

SQLAlchemy ORM models for evidence aggregates, audit records and QR code
sequences.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Integer,
    String,
    Text,
    TypeDecorator,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime stored as UTC on every backend"""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EvidenceDB(Base):
    """Evidence aggregate: one row holds status, seal and the whole custody chain"""

    __tablename__ = "evidence"

    id = Column(String(36), primary_key=True)
    qr_code = Column(String(64), nullable=False, unique=True, index=True)
    case_id = Column(String(100), nullable=False, index=True)
    station_id = Column(String(100), nullable=False, index=True)
    evidence_type = Column(String(50), nullable=False, index=True)
    description = Column(Text, nullable=False)
    tags = Column(JSON, nullable=False, default=list)
    notes = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, index=True)
    collected_date = Column(UTCDateTime, nullable=False, index=True)
    collected_location = Column(Text, nullable=False)
    collected_by = Column(String(100), nullable=False, index=True)
    is_sealed = Column(Boolean, nullable=False, default=False)
    sealed_at = Column(UTCDateTime, nullable=True)
    sealed_by = Column(String(100), nullable=True)
    # Text for long S3 URLs
    file_url = Column(Text, nullable=True)
    file_name = Column(String(255), nullable=True)
    file_size = Column(BigInteger, nullable=True)
    file_mime_type = Column(String(100), nullable=True)
    file_hash = Column(String(64), nullable=True, index=True)
    storage_location = Column(Text, nullable=True)
    chain_of_custody = Column(JSON, nullable=False)
    created_at = Column(UTCDateTime, nullable=False, default=_utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=_utcnow)
    version = Column(Integer, nullable=False, default=1)

    def __repr__(self):
        return f"<EvidenceDB(id='{self.id}', qr_code='{self.qr_code}', status='{self.status}')>"


class AuditLogDB(Base):
    """Audit trail of evidence operations"""

    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True)
    entity_type = Column(String(50), nullable=False, index=True)
    entity_id = Column(String(36), nullable=True, index=True)
    officer_id = Column(String(100), nullable=False, index=True)
    action = Column(String(50), nullable=False)
    success = Column(Boolean, nullable=False, default=True)
    details = Column(JSON, nullable=False, default=dict)
    station_id = Column(String(100), nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=_utcnow, index=True)

    def __repr__(self):
        return f"<AuditLogDB(action='{self.action}', entity_id='{self.entity_id}')>"


class QRSequenceDB(Base):
    """Last QR sequence number handed out per station and year"""

    __tablename__ = "qr_sequences"

    station_code = Column(String(100), primary_key=True)
    year = Column(Integer, primary_key=True, autoincrement=False)
    last_value = Column(Integer, nullable=False, default=0)
