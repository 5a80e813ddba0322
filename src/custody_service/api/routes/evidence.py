"""
Evidence API Routes

RESTful endpoints for the evidence lifecycle and chain of custody.
"""

import logging
import math
import mimetypes
from io import BytesIO
from pathlib import Path
from typing import List, Optional
from urllib.parse import quote
from uuid import uuid4

from fastapi import APIRouter, Depends, File, Query, UploadFile
from fastapi.responses import StreamingResponse

from custody_service.api.deps import (
    get_acting_officer,
    get_db_client,
    get_evidence_service,
    get_settings,
    get_storage,
)
from custody_service.config.settings import Settings
from custody_service.core import custody_ledger
from custody_service.core.errors import EvidenceError, NotFoundError, ValidationError
from custody_service.core.evidence_service import EvidenceService
from custody_service.core.integrity import qr_payload
from custody_service.infrastructure.database.client import DatabaseClient
from custody_service.infrastructure.storage import StorageProvider, build_storage_key
from custody_service.models import (
    CreateEvidenceInput,
    CustodyEventRequest,
    CustodyEventResponse,
    CustodySummaryResponse,
    EvidenceFilters,
    EvidenceListItem,
    EvidenceListResponse,
    EvidenceResponse,
    EvidenceStatistics,
    EvidenceStatus,
    EvidenceType,
    FileAttachResponse,
    FileUpload,
    HealthResponse,
    Officer,
    RetentionAssessment,
    StatusChangeRequest,
    TagRequest,
    UpdateEvidenceInput,
)

router = APIRouter(prefix="/api/v1/evidence", tags=["evidence"])
logger = logging.getLogger(__name__)


def _response(item) -> EvidenceResponse:
    return EvidenceResponse.from_evidence(item, qr_payload(item))


def _list_items(items) -> List[EvidenceListItem]:
    return [EvidenceListItem.from_evidence(item) for item in items]


def _validate_upload(filename: str, size: int, settings: Settings) -> None:
    """
    Validate file before storing it

    Raises:
        ValidationError: If the file is too large or of a disallowed type
    """
    if size > settings.max_file_size_bytes:
        raise ValidationError(
            f"File too large: {size} bytes (max: {settings.max_file_size_mb}MB)", field="file"
        )
    extension = Path(filename).suffix.lower()
    if extension not in settings.allowed_extensions:
        raise ValidationError(
            f"File type not allowed: {extension} (allowed: {settings.allowed_file_types})", field="file"
        )


def _content_disposition(filename: str) -> str:
    """Attachment header with a quoted ASCII fallback and an RFC 5987 UTF-8 name"""
    fallback = "".join(c if 32 <= ord(c) < 127 and c not in '"\\' else "_" for c in filename)
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Detailed Health Check",
    description="Reports database and storage availability.",
)
async def evidence_health(
    db_client: DatabaseClient = Depends(get_db_client),
    storage: StorageProvider = Depends(get_storage),
    settings: Settings = Depends(get_settings),
) -> HealthResponse:
    database_ok = await db_client.health_check()
    storage_ok = await storage.health_check()
    return HealthResponse(
        status="healthy" if database_ok and storage_ok else "degraded",
        service=settings.service_name,
        database_available=database_ok,
        storage_available=storage_ok,
    )


@router.post(
    "",
    response_model=EvidenceResponse,
    status_code=201,
    summary="Register Evidence",
    description="""
Register a newly collected item of evidence.

**Workflow**:
1. Validates case, station, type, collection location and metadata
2. Allocates a system-wide unique QR code (`{STATION}-EV-{YEAR}-{SEQ}`)
3. Records the initial `collected` custody event for the acting officer
4. Persists the item in status `collected` and writes a `create` audit record

**Authorization**: Officer identity in `X-Officer-Id`, `X-Officer-Name`, `X-Officer-Badge`
(authorized at the gateway)
    """,
    responses={
        201: {"description": "Evidence registered"},
        400: {"description": "Missing case, station, type or location, or invalid metadata"},
        503: {"description": "QR code allocation exhausted its attempts"},
    },
)
async def create_evidence(
    body: CreateEvidenceInput,
    officer: Officer = Depends(get_acting_officer),
    service: EvidenceService = Depends(get_evidence_service),
) -> EvidenceResponse:
    item = await service.create_evidence(body, officer)
    return _response(item)


@router.get(
    "",
    response_model=EvidenceListResponse,
    summary="Search Evidence",
    description="Paginated evidence search with optional filters.",
)
async def list_evidence(
    case_id: Optional[str] = Query(None),
    station_id: Optional[str] = Query(None),
    evidence_type: Optional[EvidenceType] = Query(None, alias="type"),
    status: Optional[EvidenceStatus] = Query(None),
    collected_by: Optional[str] = Query(None),
    is_sealed: Optional[bool] = Query(None),
    is_digital: Optional[bool] = Query(None),
    tag: List[str] = Query([]),
    search: Optional[str] = Query(None, description="Substring of description or QR code"),
    page: int = Query(1, ge=1, description="Page number (1-indexed)"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    service: EvidenceService = Depends(get_evidence_service),
    settings: Settings = Depends(get_settings),
) -> EvidenceListResponse:
    page_size = min(page_size, settings.max_page_size)
    filters = EvidenceFilters(
        case_id=case_id,
        station_id=station_id,
        type=evidence_type,
        status=status,
        collected_by=collected_by,
        is_sealed=is_sealed,
        is_digital=is_digital,
        tags=tag,
        search=search,
    )
    items, total = await service.search_evidence(filters, limit=page_size, offset=(page - 1) * page_size)

    return EvidenceListResponse(
        evidence=_list_items(items),
        total=total,
        page=page,
        page_size=page_size,
        total_pages=math.ceil(total / page_size) if total > 0 else 0,
    )


@router.get("/statistics", response_model=EvidenceStatistics, summary="Evidence Statistics")
async def evidence_statistics(
    station_id: Optional[str] = Query(None),
    service: EvidenceService = Depends(get_evidence_service),
) -> EvidenceStatistics:
    return await service.get_statistics(station_id)


@router.get(
    "/sweeps/stale",
    response_model=List[EvidenceListItem],
    summary="Stale Evidence",
    description="Items without status or custody progress beyond the stale window.",
)
async def stale_evidence(
    station_id: Optional[str] = Query(None),
    service: EvidenceService = Depends(get_evidence_service),
) -> List[EvidenceListItem]:
    return _list_items(await service.find_stale(station_id))


@router.get("/sweeps/critical", response_model=List[EvidenceListItem], summary="Critical Evidence")
async def critical_evidence(
    station_id: Optional[str] = Query(None),
    service: EvidenceService = Depends(get_evidence_service),
) -> List[EvidenceListItem]:
    return _list_items(await service.find_critical(station_id))


@router.get(
    "/sweeps/destroyable",
    response_model=List[EvidenceListItem],
    summary="Evidence Eligible for Destruction",
    description="""
Items in `stored` or `analyzed` status, not critical, older than the retention
window and belonging to a closed case. Eligibility is advisory: destruction
still goes through the status endpoint with a reason.
    """,
)
async def destroyable_evidence(
    station_id: Optional[str] = Query(None),
    retention_window_days: Optional[int] = Query(None, ge=1),
    service: EvidenceService = Depends(get_evidence_service),
) -> List[EvidenceListItem]:
    return _list_items(await service.find_destroyable(station_id, retention_window_days))


@router.get(
    "/qr/{qr_code}",
    response_model=EvidenceResponse,
    summary="Resolve QR Code",
    description="Looks up evidence by its scanned QR code and audits the scan.",
    responses={404: {"description": "Unknown QR code"}},
)
async def get_by_qr_code(
    qr_code: str,
    officer: Officer = Depends(get_acting_officer),
    service: EvidenceService = Depends(get_evidence_service),
) -> EvidenceResponse:
    return _response(await service.get_by_qr_code(qr_code, officer))


@router.get("/duplicates/{content_hash}", response_model=List[str], summary="Evidence With Identical File")
async def find_duplicates(
    content_hash: str,
    service: EvidenceService = Depends(get_evidence_service),
) -> List[str]:
    return await service.find_duplicates(content_hash.lower())


@router.get(
    "/{evidence_id}",
    response_model=EvidenceResponse,
    summary="Get Evidence",
    responses={404: {"description": "Evidence not found"}},
)
async def get_evidence(
    evidence_id: str,
    officer: Officer = Depends(get_acting_officer),
    service: EvidenceService = Depends(get_evidence_service),
) -> EvidenceResponse:
    return _response(await service.get_evidence(evidence_id, officer))


@router.patch(
    "/{evidence_id}",
    response_model=EvidenceResponse,
    summary="Update Evidence Metadata",
    description="""
Edit type, description, tags, notes or storage location.

Collection facts, the QR code and the status are not editable here. Destroyed
evidence cannot be edited; sealed evidence only accepts storage-location
changes unless `ALLOW_EDIT_AFTER_SEAL` is enabled.
    """,
    responses={403: {"description": "Edit refused by a domain rule"}},
)
async def update_evidence(
    evidence_id: str,
    body: UpdateEvidenceInput,
    officer: Officer = Depends(get_acting_officer),
    service: EvidenceService = Depends(get_evidence_service),
) -> EvidenceResponse:
    return _response(await service.update_evidence(evidence_id, body, officer))


@router.post("/{evidence_id}/tags", response_model=EvidenceResponse, summary="Add Tag")
async def add_tag(
    evidence_id: str,
    body: TagRequest,
    officer: Officer = Depends(get_acting_officer),
    service: EvidenceService = Depends(get_evidence_service),
) -> EvidenceResponse:
    return _response(await service.add_tag(evidence_id, body.tag, officer))


@router.delete("/{evidence_id}/tags/{tag}", response_model=EvidenceResponse, summary="Remove Tag")
async def remove_tag(
    evidence_id: str,
    tag: str,
    officer: Officer = Depends(get_acting_officer),
    service: EvidenceService = Depends(get_evidence_service),
) -> EvidenceResponse:
    return _response(await service.remove_tag(evidence_id, tag, officer))


@router.patch(
    "/{evidence_id}/status",
    response_model=EvidenceResponse,
    summary="Change Evidence Status",
    description="""
Move evidence through its lifecycle.

**Allowed transitions**:
- collected → stored
- stored → analyzed, returned, destroyed
- analyzed → court, stored
- court → returned, destroyed

`returned` and `destroyed` are terminal. Destruction requires a `reason`.
A status change does not log custody; record a custody event separately when
possession changes hands.
    """,
    responses={
        400: {"description": "Unknown status or missing destruction reason"},
        404: {"description": "Evidence not found"},
        409: {"description": "Transition not allowed"},
    },
)
async def change_status(
    evidence_id: str,
    body: StatusChangeRequest,
    officer: Officer = Depends(get_acting_officer),
    service: EvidenceService = Depends(get_evidence_service),
) -> EvidenceResponse:
    item = await service.update_status(evidence_id, body.status, officer, body.reason)
    return _response(item)


@router.post(
    "/{evidence_id}/custody",
    response_model=CustodyEventResponse,
    status_code=201,
    summary="Log Custody Event",
    description="""
Append a custody event (collected, transferred, accessed, returned, destroyed).

Events are ordered by arrival and stamped with server time; existing events
are never modified. Concurrent appends on the same item are serialized.
    """,
)
async def add_custody_event(
    evidence_id: str,
    body: CustodyEventRequest,
    officer: Officer = Depends(get_acting_officer),
    service: EvidenceService = Depends(get_evidence_service),
) -> CustodyEventResponse:
    item, ordinal = await service.add_custody_event(
        evidence_id, body.action, body.location, officer, body.notes
    )
    return CustodyEventResponse(evidence=_response(item), ordinal=ordinal)


@router.get("/{evidence_id}/custody", response_model=CustodySummaryResponse, summary="Custody Summary")
async def custody_summary(
    evidence_id: str,
    service: EvidenceService = Depends(get_evidence_service),
) -> CustodySummaryResponse:
    item = await service.get_evidence(evidence_id)
    chain = item.custody_chain
    return CustodySummaryResponse(
        evidence_id=item.id,
        qr_code=item.qr_code,
        current_custodian=custody_ledger.current_custodian(chain),
        transfer_count=custody_ledger.transfer_count(chain),
        handling_officers=custody_ledger.handling_officers(chain),
        chain_length=len(chain),
        chain_text=custody_ledger.chain_as_text(chain),
        chain_problems=custody_ledger.verify_chain(item),
    )


@router.post(
    "/{evidence_id}/seal",
    response_model=EvidenceResponse,
    summary="Seal Evidence",
    responses={409: {"description": "Evidence already sealed"}},
)
async def seal_evidence(
    evidence_id: str,
    officer: Officer = Depends(get_acting_officer),
    service: EvidenceService = Depends(get_evidence_service),
) -> EvidenceResponse:
    return _response(await service.seal_evidence(evidence_id, officer))


@router.post(
    "/{evidence_id}/file",
    response_model=FileAttachResponse,
    status_code=201,
    summary="Attach Evidence File",
    description="""
Upload the file of a digital item.

**Workflow**:
1. Validates file size and extension
2. Stores the bytes in the configured backend (local filesystem or S3)
3. Computes the SHA-256 content hash and attaches the file metadata
4. Returns ids of other evidence with byte-identical files (never merged)

If attaching fails the stored file is removed again.
    """,
    responses={
        400: {"description": "File validation failed"},
        403: {"description": "Evidence is sealed, destroyed or already has a file"},
        502: {"description": "Storage backend failure"},
    },
)
async def attach_file(
    evidence_id: str,
    file: UploadFile = File(..., description="Evidence file"),
    officer: Officer = Depends(get_acting_officer),
    service: EvidenceService = Depends(get_evidence_service),
    storage: StorageProvider = Depends(get_storage),
    settings: Settings = Depends(get_settings),
) -> FileAttachResponse:
    content = await file.read()
    filename = Path(file.filename or "upload.bin").name
    _validate_upload(filename, len(content), settings)

    item = await service.get_evidence(evidence_id)
    mime_type = file.content_type or mimetypes.guess_type(filename)[0] or "application/octet-stream"
    # one key per upload so a rejected attach never overwrites a stored file
    key = build_storage_key(item.station_id, item.case_id, item.id, f"{uuid4().hex[:8]}_{filename}")
    stored_key = await storage.upload(BytesIO(content), key, mime_type)

    try:
        result = await service.attach_file(
            evidence_id,
            content,
            FileUpload(url=stored_key, name=filename, mime_type=mime_type),
            officer,
        )
    except EvidenceError:
        await storage.delete(stored_key)
        raise

    return FileAttachResponse(
        evidence=_response(result.item),
        content_hash=result.item.file_meta.content_hash,
        duplicates=list(result.duplicates),
    )


@router.get(
    "/{evidence_id}/file",
    summary="Download Evidence File",
    description="""
Stream the attached file after verifying it against the stored content hash.
A mismatch is reported as an integrity violation (422) and audited; the file
is not served.
    """,
    responses={
        200: {"description": "Verified file content"},
        404: {"description": "Evidence or file not found"},
        422: {"description": "Integrity violation: content hash mismatch"},
    },
)
async def download_file(
    evidence_id: str,
    officer: Officer = Depends(get_acting_officer),
    service: EvidenceService = Depends(get_evidence_service),
    storage: StorageProvider = Depends(get_storage),
):
    item = await service.get_evidence(evidence_id)
    if item.file_meta is None:
        raise NotFoundError(f"Evidence {evidence_id} has no attached file")

    if not await storage.file_exists(item.file_meta.url):
        logger.error(f"Stored file {item.file_meta.url} for evidence {evidence_id} is missing")
        raise NotFoundError(f"File for evidence {evidence_id} is missing from storage")

    content = await storage.download(item.file_meta.url)
    await service.verify_file(evidence_id, content, officer)

    return StreamingResponse(
        BytesIO(content),
        media_type=item.file_meta.mime_type,
        headers={
            "Content-Disposition": _content_disposition(item.file_meta.name),
            "X-Content-SHA256": item.file_meta.content_hash,
        },
    )


@router.get(
    "/{evidence_id}/retention",
    response_model=RetentionAssessment,
    summary="Retention Assessment",
    description="Criticality, staleness, destruction eligibility and court readiness of one item.",
)
async def retention_assessment(
    evidence_id: str,
    retention_window_days: Optional[int] = Query(None, ge=1),
    service: EvidenceService = Depends(get_evidence_service),
) -> RetentionAssessment:
    return await service.assess_retention(evidence_id, retention_window_days)


@router.delete(
    "/{evidence_id}",
    status_code=204,
    summary="Delete Evidence",
    description="""
Permanently delete evidence that is still `collected` or `stored`.

Once an item has been analyzed, presented in court, returned or destroyed its
chain of custody must be preserved, and deletion is refused with 403 even for
otherwise authorized callers. Any stored file is removed as well.
    """,
    responses={
        204: {"description": "Evidence deleted"},
        403: {"description": "Evidence has an active chain of custody"},
        404: {"description": "Evidence not found"},
    },
)
async def delete_evidence(
    evidence_id: str,
    officer: Officer = Depends(get_acting_officer),
    service: EvidenceService = Depends(get_evidence_service),
    storage: StorageProvider = Depends(get_storage),
):
    item = await service.delete_evidence(evidence_id, officer)
    if item.file_meta is not None:
        if not await storage.delete(item.file_meta.url):
            logger.warning(f"Stored file {item.file_meta.url} of deleted evidence {evidence_id} was not removed")
    return None
