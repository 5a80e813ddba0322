"""Data models for the Custody Service"""

from .evidence import (
    CustodyAction,
    CustodyEvent,
    EvidenceItem,
    EvidenceStatus,
    EvidenceType,
    FileMeta,
    Officer,
)
from .inputs import (
    AttachResult,
    AuditRecord,
    CreateEvidenceInput,
    EvidenceFilters,
    EvidenceStatistics,
    FileUpload,
    RetentionAssessment,
    UpdateEvidenceInput,
)
from .requests import (
    CustodyEventRequest,
    CustodyEventResponse,
    CustodySummaryResponse,
    EvidenceListItem,
    EvidenceListResponse,
    EvidenceResponse,
    FileAttachResponse,
    HealthResponse,
    StatusChangeRequest,
    TagRequest,
)

__all__ = [
    "CustodyAction",
    "CustodyEvent",
    "EvidenceItem",
    "EvidenceStatus",
    "EvidenceType",
    "FileMeta",
    "Officer",
    "AttachResult",
    "AuditRecord",
    "CreateEvidenceInput",
    "EvidenceFilters",
    "EvidenceStatistics",
    "FileUpload",
    "RetentionAssessment",
    "UpdateEvidenceInput",
    "CustodyEventRequest",
    "CustodyEventResponse",
    "CustodySummaryResponse",
    "EvidenceListItem",
    "EvidenceListResponse",
    "EvidenceResponse",
    "FileAttachResponse",
    "HealthResponse",
    "StatusChangeRequest",
    "TagRequest",
]
