"""
Evidence Data Models

Immutable domain records for evidence items and their chain of custody.
Behaviour lives in the core modules; these are plain data.
"""

from datetime import datetime
from enum import Enum
from typing import FrozenSet, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class EvidenceType(str, Enum):
    """Evidence type classification"""
    DOCUMENT = "document"
    WEAPON = "weapon"
    BIOLOGICAL = "biological"
    DIGITAL = "digital"
    FINANCIAL = "financial"
    OTHER = "other"


class EvidenceStatus(str, Enum):
    """Lifecycle status of an evidence item"""
    COLLECTED = "collected"
    STORED = "stored"
    ANALYZED = "analyzed"
    COURT = "court"
    RETURNED = "returned"
    DESTROYED = "destroyed"


class CustodyAction(str, Enum):
    """Kinds of handling recorded in the chain of custody"""
    COLLECTED = "collected"
    TRANSFERRED = "transferred"
    ACCESSED = "accessed"
    RETURNED = "returned"
    DESTROYED = "destroyed"


class Officer(BaseModel):
    """Acting officer identity, supplied by the caller"""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Officer identifier")
    name: str = Field(..., description="Officer display name")
    badge: str = Field(..., description="Badge number")


class CustodyEvent(BaseModel):
    """One entry of the chain of custody"""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(..., description="Server time of the event")
    action: CustodyAction
    location: str
    officer_id: str
    officer_name: str
    officer_badge: str
    notes: Optional[str] = None

    @property
    def officer(self) -> Officer:
        return Officer(id=self.officer_id, name=self.officer_name, badge=self.officer_badge)


class FileMeta(BaseModel):
    """Metadata of the file attached to digital evidence"""

    model_config = ConfigDict(frozen=True)

    url: str = Field(..., description="Storage URL or key")
    name: str = Field(..., description="Original filename")
    size_bytes: int = Field(..., ge=0, description="File size in bytes")
    mime_type: str = Field(..., description="MIME type")
    content_hash: Optional[str] = Field(None, description="SHA-256 hex digest of the file bytes")


class EvidenceItem(BaseModel):
    """Evidence aggregate: metadata, seal state and chain of custody"""

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "id": "550e8400-e29b-41d4-a716-446655440000",
                "qr_code": "ST01-EV-2026-000042",
                "case_id": "case-456",
                "station_id": "ST01",
                "type": "weapon",
                "description": "Kitchen knife recovered under the sofa",
                "tags": ["weapon"],
                "status": "stored",
                "collected_location": "Scene A",
                "collected_by": "officer-7",
                "is_sealed": True,
                "version": 3,
            }
        },
    )

    id: str = Field(..., description="Evidence identifier")
    qr_code: str = Field(..., description="System-wide unique scannable code")
    case_id: str = Field(..., description="Owning case")
    station_id: str = Field(..., description="Station scoping key")
    type: EvidenceType
    description: str
    tags: FrozenSet[str] = Field(default_factory=frozenset)
    notes: Optional[str] = None
    status: EvidenceStatus = EvidenceStatus.COLLECTED
    collected_date: datetime
    collected_location: str
    collected_by: str
    is_sealed: bool = False
    sealed_at: Optional[datetime] = None
    sealed_by: Optional[str] = None
    file_meta: Optional[FileMeta] = None
    storage_location: Optional[str] = None
    custody_chain: Tuple[CustodyEvent, ...] = Field(default_factory=tuple)
    created_at: datetime
    updated_at: datetime
    version: int = Field(default=1, ge=1, description="Optimistic concurrency counter")
