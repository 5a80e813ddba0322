"""Database layer"""

from .client import DatabaseClient
from .models import AuditLogDB, EvidenceDB, QRSequenceDB
from .repository import SqlEvidenceRepository

__all__ = ["DatabaseClient", "AuditLogDB", "EvidenceDB", "QRSequenceDB", "SqlEvidenceRepository"]
