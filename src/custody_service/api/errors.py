"""
API Error Handlers

Maps custody engine errors onto HTTP responses.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from custody_service.core.errors import (
    AllocationError,
    AlreadySealedError,
    EvidenceError,
    ForbiddenByDomainRuleError,
    IntegrityViolation,
    InvalidTransitionError,
    NotFoundError,
    StorageError,
    ValidationError,
    VersionConflictError,
)

logger = logging.getLogger(__name__)

STATUS_CODES = {
    ValidationError: 400,
    NotFoundError: 404,
    InvalidTransitionError: 409,
    AlreadySealedError: 409,
    VersionConflictError: 409,
    ForbiddenByDomainRuleError: 403,
    IntegrityViolation: 422,
    StorageError: 502,
    AllocationError: 503,
}

# Require operator attention
HARD_FAILURES = (IntegrityViolation, AllocationError, StorageError)


def status_code_for(exc: EvidenceError) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_CODES:
            return STATUS_CODES[cls]
    return 500


async def evidence_error_handler(request: Request, exc: EvidenceError) -> JSONResponse:
    status_code = status_code_for(exc)
    if isinstance(exc, HARD_FAILURES) or status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc.message}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(EvidenceError, evidence_error_handler)
