"""
API Dependencies

FastAPI dependencies resolving per-application collaborators from app.state
and the acting officer from gateway headers.
"""

from fastapi import Header, Request

from custody_service.config.settings import Settings
from custody_service.core.evidence_service import EvidenceService
from custody_service.infrastructure.database.client import DatabaseClient
from custody_service.infrastructure.storage.provider import StorageProvider
from custody_service.models.evidence import Officer


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_evidence_service(request: Request) -> EvidenceService:
    return request.app.state.evidence_service


def get_storage(request: Request) -> StorageProvider:
    return request.app.state.storage


def get_db_client(request: Request) -> DatabaseClient:
    return request.app.state.db_client


async def get_acting_officer(
    x_officer_id: str = Header(..., alias="X-Officer-Id"),
    x_officer_name: str = Header(..., alias="X-Officer-Name"),
    x_officer_badge: str = Header(..., alias="X-Officer-Badge"),
) -> Officer:
    """Officer identity forwarded by the API gateway after authorization"""
    return Officer(id=x_officer_id, name=x_officer_name, badge=x_officer_badge)
