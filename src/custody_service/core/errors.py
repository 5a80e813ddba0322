"""
Evidence Errors

Exception taxonomy raised by the custody engine. The API layer maps each
kind onto an HTTP status; the core never raises HTTP errors itself.
"""

from typing import Optional


class EvidenceError(Exception):
    """Base class for custody engine errors"""

    code = "evidence_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.code, "detail": self.message}


class ValidationError(EvidenceError):
    """Malformed or missing input"""

    code = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict:
        return {**super().to_dict(), "field": self.field}


class NotFoundError(EvidenceError):
    code = "not_found"


class InvalidTransitionError(EvidenceError):
    """Status move that is not in the transition table"""

    code = "invalid_transition"

    def __init__(self, from_status: str, to_status: str, reason: str):
        super().__init__(reason)
        self.from_status = from_status
        self.to_status = to_status

    def to_dict(self) -> dict:
        return {**super().to_dict(), "from": self.from_status, "to": self.to_status}


class AlreadySealedError(EvidenceError):
    code = "already_sealed"


class ForbiddenByDomainRuleError(EvidenceError):
    """Operation refused by a legal-integrity rule, regardless of permissions"""

    code = "forbidden_by_domain_rule"


class AllocationError(EvidenceError):
    """QR code allocation exhausted its attempts"""

    code = "allocation_failed"


class VersionConflictError(EvidenceError):
    """Concurrent write on the same item; safe to retry with a fresh load"""

    code = "version_conflict"

    def __init__(self, evidence_id: str, expected_version: int):
        super().__init__(
            f"Evidence {evidence_id} was modified concurrently (expected version {expected_version})"
        )
        self.evidence_id = evidence_id
        self.expected_version = expected_version


class IntegrityViolation(EvidenceError):
    """Stored content hash does not match the recomputed one"""

    code = "integrity_violation"

    def __init__(self, expected: Optional[str], actual: str, evidence_id: Optional[str] = None):
        super().__init__(
            f"Content hash mismatch{f' for evidence {evidence_id}' if evidence_id else ''}: "
            f"expected {expected}, got {actual}"
        )
        self.expected = expected
        self.actual = actual
        self.evidence_id = evidence_id

    def to_dict(self) -> dict:
        return {**super().to_dict(), "expected": self.expected, "actual": self.actual}


class StorageError(EvidenceError):
    """Blob storage backend failure"""

    code = "storage_error"


class QRCodeCollision(EvidenceError):
    """Unique constraint hit on a QR code or sequence row; retried by the allocator"""

    code = "qr_code_collision"
