"""
Evidence Service

Orchestration façade for the custody engine. Each mutation is one logical
unit: load, validate, mutate, persist with the expected version, audit.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple
from uuid import uuid4

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random,
)

from custody_service.core import custody_ledger, integrity, retention, state_machine
from custody_service.core.errors import (
    AllocationError,
    AlreadySealedError,
    EvidenceError,
    ForbiddenByDomainRuleError,
    IntegrityViolation,
    InvalidTransitionError,
    NotFoundError,
    QRCodeCollision,
    ValidationError,
    VersionConflictError,
)
from custody_service.core.ports import AuditSink, CaseDirectory, EvidenceRepository, OpenCaseDirectory
from custody_service.core.retention import RetentionPolicy
from custody_service.models.evidence import (
    CustodyAction,
    EvidenceItem,
    EvidenceStatus,
    FileMeta,
    Officer,
)
from custody_service.models.inputs import (
    AttachResult,
    AuditRecord,
    CreateEvidenceInput,
    EvidenceFilters,
    EvidenceStatistics,
    FileUpload,
    RetentionAssessment,
    UpdateEvidenceInput,
)

logger = logging.getLogger(__name__)

DELETABLE_STATUSES = frozenset({EvidenceStatus.COLLECTED, EvidenceStatus.STORED})
SEAL_LOCKED_FIELDS = frozenset({"type", "description", "tags", "notes"})
# Upper bound in seconds of the random pause before a conflicting write is retried
CONFLICT_RETRY_JITTER = 0.05

# Failures worth an unsuccessful audit record: the item exists and a rule said no
AUDITED_FAILURES = (
    ValidationError,
    InvalidTransitionError,
    AlreadySealedError,
    ForbiddenByDomainRuleError,
    VersionConflictError,
    IntegrityViolation,
)

DESCRIPTION_MIN, DESCRIPTION_MAX = 10, 1000
TAG_MIN, TAG_MAX = 2, 30


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _require(value: Optional[str], field: str, label: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{label} is required", field=field)
    return str(value).strip()


def _validate_description(description: str) -> str:
    description = (description or "").strip()
    if not DESCRIPTION_MIN <= len(description) <= DESCRIPTION_MAX:
        raise ValidationError(
            f"Description must be between {DESCRIPTION_MIN} and {DESCRIPTION_MAX} characters",
            field="description",
        )
    return description


def _validate_tags(tags: Iterable[str]) -> frozenset:
    cleaned = set()
    for tag in tags:
        tag = (tag or "").strip()
        if not TAG_MIN <= len(tag) <= TAG_MAX:
            raise ValidationError(
                f"Each tag must be between {TAG_MIN} and {TAG_MAX} characters", field="tags"
            )
        cleaned.add(tag)
    return frozenset(cleaned)


class EvidenceService:
    """Evidence lifecycle and chain-of-custody operations"""

    def __init__(
        self,
        repository: EvidenceRepository,
        audit_sink: AuditSink,
        case_directory: Optional[CaseDirectory] = None,
        policy: Optional[RetentionPolicy] = None,
        clock: Callable[[], datetime] = utcnow,
        allow_edit_after_seal: bool = False,
        qr_allocation_attempts: int = 5,
        conflict_retry_attempts: int = 2,
    ):
        self.repository = repository
        self.audit_sink = audit_sink
        self.case_directory = case_directory or OpenCaseDirectory()
        self.policy = policy or RetentionPolicy()
        self.clock = clock
        self.allow_edit_after_seal = allow_edit_after_seal
        self.qr_allocation_attempts = qr_allocation_attempts
        self.conflict_retry_attempts = conflict_retry_attempts
        self.allocator = integrity.QRCodeAllocator(repository, max_attempts=qr_allocation_attempts)

    def _now(self) -> datetime:
        return _as_utc(self.clock())

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    async def _audit(
        self,
        action: str,
        officer: Officer,
        entity_id: Optional[str],
        details: Dict,
        success: bool = True,
        station_id: Optional[str] = None,
    ) -> None:
        """Best-effort audit; a failing sink never undoes the mutation"""
        record = AuditRecord(
            entity_id=entity_id,
            action=action,
            actor_id=officer.id,
            success=success,
            details=details,
            station_id=station_id,
            timestamp=self._now(),
        )
        try:
            await self.audit_sink.record(record)
        except Exception:
            logger.exception(f"Failed to record audit '{action}' for evidence {entity_id}")

    async def _audit_failure(self, action: str, officer: Officer, evidence_id: str, exc: EvidenceError) -> None:
        logger.warning(f"Rejected '{action}' on evidence {evidence_id}: {exc.message}")
        await self._audit(action, officer, evidence_id, exc.to_dict(), success=False)

    # ------------------------------------------------------------------
    # Read-modify-write
    # ------------------------------------------------------------------

    async def _apply(
        self,
        evidence_id: str,
        mutate: Callable[[EvidenceItem], EvidenceItem],
    ) -> Tuple[EvidenceItem, EvidenceItem]:
        """
        Load, mutate and save one item, retrying on a version conflict

        Returns:
            Tuple of (item before, item as persisted)
        """
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(VersionConflictError),
            stop=stop_after_attempt(self.conflict_retry_attempts),
            wait=wait_random(0, CONFLICT_RETRY_JITTER),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                before = await self.repository.load(evidence_id)
                after = mutate(before)
                saved = await self.repository.save(after, expected_version=before.version)
        return before, saved

    async def _run_audited(self, action: str, officer: Officer, evidence_id: str, operation):
        try:
            return await operation()
        except AUDITED_FAILURES as exc:
            await self._audit_failure(action, officer, evidence_id, exc)
            raise

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_evidence(self, evidence_id: str, officer: Optional[Officer] = None) -> EvidenceItem:
        """
        Get an evidence item

        Raises:
            NotFoundError: If the id is unknown
        """
        item = await self.repository.load(evidence_id)
        if officer is not None:
            await self._audit(
                "read", officer, item.id,
                {"qr_code": item.qr_code, "type": item.type.value},
                station_id=item.station_id,
            )
        return item

    async def get_by_qr_code(self, qr_code: str, officer: Officer) -> EvidenceItem:
        """
        Resolve a scanned QR code

        Raises:
            NotFoundError: If no item carries the code
        """
        item = await self.repository.find_by_qr_code(qr_code.strip())
        if item is None:
            raise NotFoundError(f"No evidence with QR code {qr_code}")
        await self._audit(
            "read", officer, item.id,
            {"scan_type": "qr", "qr_code": item.qr_code},
            station_id=item.station_id,
        )
        return item

    async def search_evidence(
        self, filters: EvidenceFilters, limit: int = 100, offset: int = 0
    ) -> Tuple[List[EvidenceItem], int]:
        items, total = await asyncio.gather(
            self.repository.search(filters, limit=limit, offset=offset),
            self.repository.count(filters),
        )
        return items, total

    async def get_statistics(self, station_id: Optional[str] = None) -> EvidenceStatistics:
        return await self.repository.statistics(station_id)

    async def find_duplicates(self, content_hash: str, exclude_id: Optional[str] = None) -> List[str]:
        """Ids of items whose attached file has this content hash"""
        matches = await self.repository.find_by_content_hash(content_hash)
        return [item.id for item in matches if item.id != exclude_id]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create_evidence(self, data: CreateEvidenceInput, officer: Officer) -> EvidenceItem:
        """
        Register newly collected evidence

        Allocates a QR code, records the initial 'collected' custody event
        and persists the item in status 'collected'.

        Raises:
            ValidationError: Missing case, station, type or location, or bad metadata
            AllocationError: If no unique QR code could be allocated
        """
        custody_ledger.validate_officer(officer)
        case_id = _require(data.case_id, "case_id", "Case reference")
        station_id = _require(data.station_id, "station_id", "Station")
        if data.type is None:
            raise ValidationError("Evidence type is required", field="type")
        location = _require(data.collected_location, "collected_location", "Collection location")
        description = _validate_description(data.description)
        tags = _validate_tags(data.tags)

        now = self._now()
        collected_date = _as_utc(data.collected_date) if data.collected_date else now
        if collected_date > now:
            raise ValidationError("Collection date cannot be in the future", field="collected_date")

        chain, _ = custody_ledger.append_event(
            (), CustodyAction.COLLECTED, location, officer,
            now=collected_date,
            notes=f"Initial collection of {data.type.value} evidence",
        )

        for attempt in range(1, self.qr_allocation_attempts + 1):
            qr_code = await self.allocator.allocate(station_id, now)
            item = EvidenceItem(
                id=str(uuid4()),
                qr_code=qr_code,
                case_id=case_id,
                station_id=station_id,
                type=data.type,
                description=description,
                tags=tags,
                notes=data.notes or None,
                status=EvidenceStatus.COLLECTED,
                collected_date=collected_date,
                collected_location=location,
                collected_by=officer.id,
                storage_location=data.storage_location or None,
                custody_chain=chain,
                created_at=now,
                updated_at=now,
            )
            try:
                saved = await self.repository.insert(item)
                break
            except QRCodeCollision:
                logger.warning(f"QR code {qr_code} taken at insert (attempt {attempt})")
        else:
            logger.error(f"Giving up creating evidence for station {station_id}: QR codes exhausted")
            raise AllocationError(
                f"Could not allocate a unique QR code for station {station_id} "
                f"after {self.qr_allocation_attempts} attempts"
            )

        logger.info(f"Created evidence {saved.id} ({saved.qr_code}) for case {case_id}")
        await self._audit(
            "create", officer, saved.id,
            {
                "qr_code": saved.qr_code,
                "type": saved.type.value,
                "case_id": saved.case_id,
                "has_file": saved.file_meta is not None,
            },
            station_id=saved.station_id,
        )
        return saved

    async def update_status(
        self,
        evidence_id: str,
        new_status,
        officer: Officer,
        reason: Optional[str] = None,
    ) -> EvidenceItem:
        """
        Move an item through the lifecycle

        Raises:
            NotFoundError: If the id is unknown
            InvalidTransitionError: If the move is not in the transition table
            ValidationError: Unknown status or destruction without a reason
        """
        custody_ledger.validate_officer(officer)

        async def operation():
            return await self._apply(
                evidence_id,
                lambda item: state_machine.transition(item, new_status, self._now(), reason),
            )

        before, saved = await self._run_audited("update", officer, evidence_id, operation)
        logger.info(f"Evidence {evidence_id} status {before.status.value} -> {saved.status.value}")
        await self._audit(
            "update", officer, evidence_id,
            {
                "qr_code": saved.qr_code,
                "previous_status": before.status.value,
                "new_status": saved.status.value,
                "reason": reason,
            },
            station_id=saved.station_id,
        )
        return saved

    async def add_custody_event(
        self,
        evidence_id: str,
        action,
        location: str,
        officer: Officer,
        notes: Optional[str] = None,
    ) -> Tuple[EvidenceItem, int]:
        """
        Append a custody event to the item's chain

        Returns:
            Tuple of (updated item, 1-based ordinal of the new event)

        Raises:
            NotFoundError: If the id is unknown
            ValidationError: Unknown action, blank location or incomplete officer
        """
        custody_ledger.validate_officer(officer)

        def mutate(item: EvidenceItem) -> EvidenceItem:
            now = self._now()
            chain, _ = custody_ledger.append_event(
                item.custody_chain, action, location, officer, now=now, notes=notes
            )
            return item.model_copy(update={"custody_chain": chain, "updated_at": now})

        async def operation():
            return await self._apply(evidence_id, mutate)

        _, saved = await self._run_audited("custody_add", officer, evidence_id, operation)
        ordinal = len(saved.custody_chain)
        event = saved.custody_chain[-1]
        logger.info(f"Custody event #{ordinal} ({event.action.value}) on evidence {evidence_id}")
        await self._audit(
            "custody_add", officer, evidence_id,
            {
                "qr_code": saved.qr_code,
                "custody_action": event.action.value,
                "location": event.location,
                "ordinal": ordinal,
            },
            station_id=saved.station_id,
        )
        return saved, ordinal

    async def seal_evidence(self, evidence_id: str, officer: Officer) -> EvidenceItem:
        """
        Seal an item

        Raises:
            NotFoundError: If the id is unknown
            AlreadySealedError: If the item is already sealed
        """
        custody_ledger.validate_officer(officer)

        async def operation():
            return await self._apply(
                evidence_id, lambda item: integrity.seal(item, officer, self._now())
            )

        _, saved = await self._run_audited("seal", officer, evidence_id, operation)
        logger.info(f"Sealed evidence {evidence_id} by officer {officer.id}")
        await self._audit(
            "seal", officer, evidence_id,
            {"qr_code": saved.qr_code, "sealed": True, "sealed_at": saved.sealed_at.isoformat()},
            station_id=saved.station_id,
        )
        return saved

    async def delete_evidence(self, evidence_id: str, officer: Officer) -> EvidenceItem:
        """
        Hard-delete an item that has not entered an evidentiary stage

        Returns:
            The deleted item, so callers can clean up any stored file

        Raises:
            NotFoundError: If the id is unknown
            ForbiddenByDomainRuleError: If the status is past 'stored'
        """
        custody_ledger.validate_officer(officer)

        async def operation():
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(VersionConflictError),
                stop=stop_after_attempt(self.conflict_retry_attempts),
                wait=wait_random(0, CONFLICT_RETRY_JITTER),
                reraise=True,
            ):
                with attempt:
                    item = await self.repository.load(evidence_id)
                    if item.status not in DELETABLE_STATUSES:
                        raise ForbiddenByDomainRuleError(
                            "cannot delete evidence with active chain of custody"
                        )
                    await self.repository.delete(evidence_id, expected_version=item.version)
            return item

        item = await self._run_audited("delete", officer, evidence_id, operation)
        logger.info(f"Deleted evidence {evidence_id} ({item.qr_code})")
        await self._audit(
            "delete", officer, evidence_id,
            {"qr_code": item.qr_code, "type": item.type.value, "status": item.status.value},
            station_id=item.station_id,
        )
        return item

    def _check_editable(self, item: EvidenceItem, fields: Iterable[str]) -> None:
        if item.status == EvidenceStatus.DESTROYED:
            raise ForbiddenByDomainRuleError("Cannot update destroyed evidence")
        locked = SEAL_LOCKED_FIELDS.intersection(fields)
        if item.is_sealed and locked and not self.allow_edit_after_seal:
            raise ForbiddenByDomainRuleError(
                f"Evidence is sealed; cannot change {', '.join(sorted(locked))}"
            )

    async def update_evidence(
        self, evidence_id: str, data: UpdateEvidenceInput, officer: Officer
    ) -> EvidenceItem:
        """
        Edit descriptive metadata

        Collection facts, QR code and status cannot be changed here.

        Raises:
            NotFoundError: If the id is unknown
            ValidationError: Nothing to update or bad metadata
            ForbiddenByDomainRuleError: Destroyed item, or sealed item with edits locked
        """
        custody_ledger.validate_officer(officer)
        fields = data.changed_fields()
        if not fields:
            raise ValidationError("No fields to update")

        changes = {}
        if data.type is not None:
            changes["type"] = data.type
        if data.description is not None:
            changes["description"] = _validate_description(data.description)
        if data.tags is not None:
            changes["tags"] = _validate_tags(data.tags)
        if data.notes is not None:
            changes["notes"] = data.notes or None
        if data.storage_location is not None:
            changes["storage_location"] = data.storage_location.strip() or None

        def mutate(item: EvidenceItem) -> EvidenceItem:
            self._check_editable(item, fields)
            return item.model_copy(update={**changes, "updated_at": self._now()})

        async def operation():
            return await self._apply(evidence_id, mutate)

        _, saved = await self._run_audited("update", officer, evidence_id, operation)
        logger.info(f"Updated evidence {evidence_id}: {', '.join(fields)}")
        await self._audit(
            "update", officer, evidence_id,
            {"qr_code": saved.qr_code, "updated_fields": fields},
            station_id=saved.station_id,
        )
        return saved

    async def add_tag(self, evidence_id: str, tag: str, officer: Officer) -> EvidenceItem:
        return await self._retag(evidence_id, tag, officer, add=True)

    async def remove_tag(self, evidence_id: str, tag: str, officer: Officer) -> EvidenceItem:
        return await self._retag(evidence_id, tag, officer, add=False)

    async def _retag(self, evidence_id: str, tag: str, officer: Officer, add: bool) -> EvidenceItem:
        custody_ledger.validate_officer(officer)
        (tag,) = _validate_tags([tag])

        def mutate(item: EvidenceItem) -> EvidenceItem:
            self._check_editable(item, ["tags"])
            tags = item.tags | {tag} if add else item.tags - {tag}
            return item.model_copy(update={"tags": frozenset(tags), "updated_at": self._now()})

        async def operation():
            return await self._apply(evidence_id, mutate)

        _, saved = await self._run_audited("update", officer, evidence_id, operation)
        await self._audit(
            "update", officer, evidence_id,
            {"qr_code": saved.qr_code, "tag_added" if add else "tag_removed": tag},
            station_id=saved.station_id,
        )
        return saved

    async def attach_file(
        self,
        evidence_id: str,
        data: bytes,
        meta: FileUpload,
        officer: Officer,
    ) -> AttachResult:
        """
        Attach file metadata to an item

        Items elsewhere with a byte-identical file are returned as duplicate
        candidates; records are never merged.

        Raises:
            NotFoundError: If the id is unknown
            ValidationError: Empty file or missing name/url
            ForbiddenByDomainRuleError: Sealed or destroyed item, or a file is already attached
        """
        custody_ledger.validate_officer(officer)
        if not data:
            raise ValidationError("File is empty", field="file")
        name = _require(meta.name, "name", "File name")
        url = _require(meta.url, "url", "File URL")

        content_hash = integrity.compute_content_hash(data)
        duplicates = tuple(await self.find_duplicates(content_hash, exclude_id=evidence_id))
        file_meta = FileMeta(
            url=url,
            name=name,
            size_bytes=len(data),
            mime_type=meta.mime_type or "application/octet-stream",
            content_hash=content_hash,
        )

        def mutate(item: EvidenceItem) -> EvidenceItem:
            if item.status == EvidenceStatus.DESTROYED:
                raise ForbiddenByDomainRuleError("Cannot attach files to destroyed evidence")
            if item.is_sealed:
                raise ForbiddenByDomainRuleError("Cannot attach files to sealed evidence")
            if item.file_meta is not None:
                # the recorded hash is part of the evidentiary record
                raise ForbiddenByDomainRuleError("Evidence already has an attached file")
            return item.model_copy(update={"file_meta": file_meta, "updated_at": self._now()})

        async def operation():
            return await self._apply(evidence_id, mutate)

        _, saved = await self._run_audited("attach_file", officer, evidence_id, operation)
        if duplicates:
            logger.warning(f"Evidence {evidence_id} file duplicates existing evidence: {', '.join(duplicates)}")
        await self._audit(
            "attach_file", officer, evidence_id,
            {
                "qr_code": saved.qr_code,
                "file_name": name,
                "size_bytes": len(data),
                "content_hash": content_hash,
                "duplicates": list(duplicates),
            },
            station_id=saved.station_id,
        )
        return AttachResult(item=saved, duplicates=duplicates)

    async def verify_file(self, evidence_id: str, data: bytes, officer: Officer) -> EvidenceItem:
        """
        Check retrieved file bytes against the stored content hash

        Raises:
            NotFoundError: If the id is unknown or no file is attached
            IntegrityViolation: If the bytes do not match
        """
        item = await self.repository.load(evidence_id)
        if item.file_meta is None:
            raise NotFoundError(f"Evidence {evidence_id} has no attached file")

        async def operation():
            return integrity.verify_content_hash(item.file_meta.content_hash, data, evidence_id)

        content_hash = await self._run_audited("verify", officer, evidence_id, operation)
        await self._audit(
            "verify", officer, evidence_id,
            {"qr_code": item.qr_code, "content_hash": content_hash},
            station_id=item.station_id,
        )
        return item

    # ------------------------------------------------------------------
    # Retention
    # ------------------------------------------------------------------

    async def assess_retention(
        self, evidence_id: str, retention_window: Optional[int] = None
    ) -> RetentionAssessment:
        item = await self.repository.load(evidence_id)
        case_closed = await self.case_directory.is_case_closed(item.case_id)
        return retention.assess(item, self.policy, case_closed, self._now(), retention_window)

    async def find_stale(self, station_id: Optional[str] = None) -> List[EvidenceItem]:
        now = self._now()
        return [
            item async for item in self.repository.iter_items(station_id)
            if retention.is_stale(item, self.policy, now)
        ]

    async def find_critical(self, station_id: Optional[str] = None) -> List[EvidenceItem]:
        return [
            item async for item in self.repository.iter_items(station_id)
            if retention.is_critical(item, self.policy)
        ]

    async def find_destroyable(
        self, station_id: Optional[str] = None, retention_window: Optional[int] = None
    ) -> List[EvidenceItem]:
        """Items eligible for destruction; case lookups run concurrently"""
        now = self._now()
        candidates = [
            item async for item in self.repository.iter_items(station_id)
            if item.status in retention.DESTROYABLE_STATUSES
            and not retention.is_critical(item, self.policy)
        ]
        case_ids = sorted({item.case_id for item in candidates})
        closed = await asyncio.gather(*(self.case_directory.is_case_closed(c) for c in case_ids))
        closed_by_case = dict(zip(case_ids, closed))
        return [
            item for item in candidates
            if retention.can_be_destroyed(item, self.policy, closed_by_case[item.case_id], now, retention_window)
        ]
