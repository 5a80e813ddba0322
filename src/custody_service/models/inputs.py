"""
Operation Inputs

Typed option records accepted by the evidence service, one per operation.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .evidence import EvidenceItem, EvidenceStatus, EvidenceType


class CreateEvidenceInput(BaseModel):
    """Intake of a newly collected item"""

    case_id: Optional[str] = None
    station_id: Optional[str] = None
    type: Optional[EvidenceType] = None
    description: str = ""
    collected_date: Optional[datetime] = Field(None, description="Defaults to server time")
    collected_location: Optional[str] = None
    storage_location: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    notes: Optional[str] = None


class UpdateEvidenceInput(BaseModel):
    """Metadata edit; fields left as None are unchanged"""

    type: Optional[EvidenceType] = None
    description: Optional[str] = None
    storage_location: Optional[str] = None
    tags: Optional[List[str]] = None
    notes: Optional[str] = None

    def changed_fields(self) -> List[str]:
        return [name for name, value in self.model_dump().items() if value is not None]


class FileUpload(BaseModel):
    """Where the file bytes were stored and how they are described"""

    url: str
    name: str
    mime_type: str = "application/octet-stream"


class EvidenceFilters(BaseModel):
    """Search filters for listing evidence"""

    case_id: Optional[str] = None
    station_id: Optional[str] = None
    type: Optional[EvidenceType] = None
    status: Optional[EvidenceStatus] = None
    collected_by: Optional[str] = None
    is_sealed: Optional[bool] = None
    is_digital: Optional[bool] = None
    tags: List[str] = Field(default_factory=list)
    collected_after: Optional[datetime] = None
    collected_before: Optional[datetime] = None
    search: Optional[str] = Field(None, description="Substring of the description or QR code")


class AttachResult(BaseModel):
    """Outcome of attaching a file: the updated item and duplicate candidates"""

    model_config = ConfigDict(frozen=True)

    item: EvidenceItem
    duplicates: Tuple[str, ...] = ()


class EvidenceStatistics(BaseModel):
    total: int = 0
    by_type: Dict[str, int] = Field(default_factory=dict)
    by_status: Dict[str, int] = Field(default_factory=dict)
    sealed: int = 0
    digital: int = 0
    total_file_size: int = 0


class RetentionAssessment(BaseModel):
    """Read-only classification of an item under the retention policy"""

    evidence_id: str
    age_in_days: int
    is_critical: bool
    is_digital: bool
    is_stale: bool
    can_be_destroyed: bool
    is_ready_for_court: bool
    court_issues: List[str] = Field(default_factory=list)
    retention_window_days: int
    case_closed: bool


class AuditRecord(BaseModel):
    """Audit entry handed to the audit sink"""

    entity_type: str = "evidence"
    entity_id: Optional[str] = None
    action: str
    actor_id: str
    success: bool = True
    details: Dict[str, Any] = Field(default_factory=dict)
    station_id: Optional[str] = None
    timestamp: datetime
