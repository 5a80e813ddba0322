"""
Collaborator Interfaces

Abstract contracts for the persistence repository, audit sink and case
directory consumed by the evidence service.
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator, List, Optional

from custody_service.models.evidence import EvidenceItem
from custody_service.models.inputs import AuditRecord, EvidenceFilters, EvidenceStatistics


class EvidenceRepository(ABC):
    """Whole-aggregate persistence for evidence items"""

    @abstractmethod
    async def load(self, evidence_id: str) -> EvidenceItem:
        """Load an item.

        Raises:
            NotFoundError: If no item has this id
        """

    @abstractmethod
    async def insert(self, item: EvidenceItem) -> EvidenceItem:
        """Insert a new item.

        Raises:
            QRCodeCollision: If the QR code is already taken
        """

    @abstractmethod
    async def save(self, item: EvidenceItem, expected_version: int) -> EvidenceItem:
        """Atomically replace the stored aggregate if its version still matches.

        Returns:
            The item as persisted, with its version incremented

        Raises:
            VersionConflictError: If the stored version moved on
            NotFoundError: If the item no longer exists
        """

    @abstractmethod
    async def delete(self, evidence_id: str, expected_version: int) -> None:
        """Remove an item.

        Raises:
            VersionConflictError: If the stored version moved on
        """

    @abstractmethod
    async def find_by_qr_code(self, qr_code: str) -> Optional[EvidenceItem]:
        pass

    @abstractmethod
    async def find_by_content_hash(self, content_hash: str) -> List[EvidenceItem]:
        pass

    @abstractmethod
    async def qr_code_exists(self, qr_code: str) -> bool:
        pass

    @abstractmethod
    async def next_qr_sequence(self, station_code: str, year: int) -> int:
        """Atomically increment and return the station's QR sequence for a year.

        Raises:
            QRCodeCollision: If a concurrent first use of the sequence won the race
        """

    @abstractmethod
    async def search(
        self, filters: EvidenceFilters, limit: int = 100, offset: int = 0
    ) -> List[EvidenceItem]:
        pass

    @abstractmethod
    async def count(self, filters: EvidenceFilters) -> int:
        pass

    @abstractmethod
    async def statistics(self, station_id: Optional[str] = None) -> EvidenceStatistics:
        pass

    @abstractmethod
    def iter_items(
        self, station_id: Optional[str] = None, batch_size: int = 200
    ) -> AsyncIterator[EvidenceItem]:
        """Stream every item (optionally per station) for batch sweeps"""


class AuditSink(ABC):
    """Destination for audit records"""

    @abstractmethod
    async def record(self, record: AuditRecord) -> None:
        pass


class CaseDirectory(ABC):
    """Answers questions about cases owned by the case-management system"""

    @abstractmethod
    async def is_case_closed(self, case_id: str) -> bool:
        pass


class OpenCaseDirectory(CaseDirectory):
    """Reports every case as open, so nothing is eligible for destruction"""

    async def is_case_closed(self, case_id: str) -> bool:
        return False


class StaticCaseDirectory(CaseDirectory):
    """Case directory backed by a fixed set of closed case ids"""

    def __init__(self, closed_case_ids=()):
        self.closed_case_ids = frozenset(closed_case_ids)

    async def is_case_closed(self, case_id: str) -> bool:
        return case_id in self.closed_case_ids
