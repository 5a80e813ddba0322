"""
Identity and Integrity

QR code allocation, content hashing for deduplication and tamper detection,
and the one-way seal.
"""

import hashlib
import logging
import secrets
from datetime import datetime
from typing import Optional

from custody_service.core.custody_ledger import validate_officer
from custody_service.core.errors import (
    AllocationError,
    AlreadySealedError,
    IntegrityViolation,
    QRCodeCollision,
    ValidationError,
)
from custody_service.core.ports import EvidenceRepository
from custody_service.models.evidence import EvidenceItem, Officer

logger = logging.getLogger(__name__)

QR_PAYLOAD_PREFIX = "CRMS-EVIDENCE"


def compute_content_hash(data: bytes) -> str:
    """SHA-256 hex digest of the file bytes"""
    return hashlib.sha256(data).hexdigest()


def verify_content_hash(expected: Optional[str], data: bytes, evidence_id: Optional[str] = None) -> str:
    """
    Recompute the hash of retrieved bytes and compare it with the stored one

    Returns:
        The recomputed hash

    Raises:
        IntegrityViolation: If there is no stored hash or it does not match
    """
    actual = compute_content_hash(data)
    if expected != actual:
        logger.error(f"Integrity violation on evidence {evidence_id}: expected {expected}, got {actual}")
        raise IntegrityViolation(expected, actual, evidence_id)
    return actual


def seal(item: EvidenceItem, officer: Officer, now: datetime) -> EvidenceItem:
    """Mark the item tamper-evident; sealing is one-way"""
    validate_officer(officer)
    if item.is_sealed:
        raise AlreadySealedError(f"Evidence {item.qr_code} is already sealed")
    return item.model_copy(update={
        "is_sealed": True,
        "sealed_at": now,
        "sealed_by": officer.id,
        "updated_at": now,
    })


def qr_payload(item: EvidenceItem) -> str:
    """Data string encoded into printed QR labels"""
    return f"{QR_PAYLOAD_PREFIX}:{item.qr_code}:{item.case_id}:{item.id}"


def format_qr_code(station_code: str, year: int, sequence: int, suffix: Optional[str] = None) -> str:
    code = f"{station_code}-EV-{year}-{sequence:06d}"
    if suffix:
        code = f"{code}-{suffix}"
    return code


class QRCodeAllocator:
    """Allocates system-wide unique QR codes from per-station sequences"""

    def __init__(self, repository: EvidenceRepository, max_attempts: int = 5):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.repository = repository
        self.max_attempts = max_attempts

    async def allocate(self, station_code: str, now: datetime) -> str:
        """
        Allocate a QR code for a station

        The first attempt uses the plain sequence code; later attempts add a
        random suffix so a stale or shared sequence cannot collide forever.

        Raises:
            ValidationError: If the station code is blank
            AllocationError: If every attempt collided
        """
        station_code = (station_code or "").strip().upper()
        if not station_code:
            raise ValidationError("Station code is required", field="station_id")

        for attempt in range(1, self.max_attempts + 1):
            try:
                sequence = await self.repository.next_qr_sequence(station_code, now.year)
            except QRCodeCollision:
                logger.warning(f"QR sequence race for station {station_code} (attempt {attempt})")
                continue

            suffix = secrets.token_hex(2).upper() if attempt > 1 else None
            code = format_qr_code(station_code, now.year, sequence, suffix)
            if not await self.repository.qr_code_exists(code):
                return code
            logger.warning(f"QR code {code} already taken (attempt {attempt})")

        logger.error(f"QR code allocation failed for station {station_code} after {self.max_attempts} attempts")
        raise AllocationError(
            f"Could not allocate a unique QR code for station {station_code} "
            f"after {self.max_attempts} attempts"
        )
