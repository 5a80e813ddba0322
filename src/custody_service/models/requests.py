"""
API Request and Response Models

Pydantic models for API input/output validation.
"""

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field

from .evidence import CustodyEvent, EvidenceItem, EvidenceStatus, FileMeta, Officer


class StatusChangeRequest(BaseModel):
    """Request to move evidence to a new status"""

    status: str = Field(..., description="Target status")
    reason: Optional[str] = Field(None, description="Justification (required for 'destroyed')")


class CustodyEventRequest(BaseModel):
    """Request to log a custody event"""

    action: str = Field(..., description="collected, transferred, accessed, returned or destroyed")
    location: str = Field(..., description="Where the handling happened")
    notes: Optional[str] = Field(None, description="Optional notes")


class TagRequest(BaseModel):
    tag: str = Field(..., description="Tag to add")


class EvidenceResponse(BaseModel):
    """Full evidence record"""

    id: str
    qr_code: str
    qr_payload: str
    case_id: str
    station_id: str
    type: str
    description: str
    tags: List[str]
    notes: Optional[str]
    status: EvidenceStatus
    collected_date: datetime
    collected_location: str
    collected_by: str
    is_sealed: bool
    sealed_at: Optional[datetime]
    sealed_by: Optional[str]
    file_meta: Optional[FileMeta]
    storage_location: Optional[str]
    custody_chain: List[CustodyEvent]
    created_at: datetime
    updated_at: datetime
    version: int

    @classmethod
    def from_evidence(cls, evidence: EvidenceItem, qr_payload: str) -> "EvidenceResponse":
        """Create response from an EvidenceItem"""
        return cls(
            **evidence.model_dump(exclude={"tags", "custody_chain", "type"}),
            type=evidence.type.value,
            tags=sorted(evidence.tags),
            custody_chain=list(evidence.custody_chain),
            qr_payload=qr_payload,
        )


class EvidenceListItem(BaseModel):
    """Simplified evidence item for list responses"""

    id: str
    qr_code: str
    case_id: str
    type: str
    status: EvidenceStatus
    is_sealed: bool
    collected_date: datetime
    description: str

    @classmethod
    def from_evidence(cls, evidence: EvidenceItem) -> "EvidenceListItem":
        return cls(
            id=evidence.id,
            qr_code=evidence.qr_code,
            case_id=evidence.case_id,
            type=evidence.type.value,
            status=evidence.status,
            is_sealed=evidence.is_sealed,
            collected_date=evidence.collected_date,
            description=evidence.description,
        )


class EvidenceListResponse(BaseModel):
    """Paginated list of evidence"""

    evidence: List[EvidenceListItem] = Field(default_factory=list)
    total: int = Field(..., ge=0)
    page: int = Field(..., ge=1)
    page_size: int = Field(..., ge=1)
    total_pages: int = Field(..., ge=0)


class CustodyEventResponse(BaseModel):
    """Result of logging a custody event"""

    evidence: EvidenceResponse
    ordinal: int = Field(..., ge=1, description="1-based position of the event in the chain")


class CustodySummaryResponse(BaseModel):
    """Chain-of-custody summary for reports"""

    evidence_id: str
    qr_code: str
    current_custodian: Optional[Officer]
    transfer_count: int
    handling_officers: List[Officer]
    chain_length: int
    chain_text: str
    chain_problems: List[str] = Field(default_factory=list)


class FileAttachResponse(BaseModel):
    """Response after attaching a file"""

    evidence: EvidenceResponse
    content_hash: str
    duplicates: List[str] = Field(default_factory=list, description="Other evidence with identical bytes")
    message: str = Field(default="File attached successfully")


class HealthResponse(BaseModel):
    """Health check response"""

    status: str = Field(default="healthy")
    service: str = Field(default="evidence-custody-service")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    storage_available: bool = Field(default=True)
    database_available: bool = Field(default=True)
