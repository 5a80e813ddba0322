"""
Evidence Custody Service - Main Application

FastAPI application for the evidence lifecycle and chain of custody.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from custody_service.api.errors import register_error_handlers
from custody_service.api.routes.evidence import router as evidence_router
from custody_service.config.settings import Settings, settings
from custody_service.core.evidence_service import EvidenceService
from custody_service.core.ports import OpenCaseDirectory, StaticCaseDirectory
from custody_service.infrastructure.audit import SqlAuditSink
from custody_service.infrastructure.database import DatabaseClient, SqlEvidenceRepository
from custody_service.infrastructure.storage import create_storage_provider

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

VERSION = "0.1.0"


def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    """Build the application; collaborators are created per app in the lifespan"""
    app_settings = app_settings or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager"""
        # Startup
        logger.info(f"Starting {app_settings.service_name} ({app_settings.environment})")
        logger.info(f"Database: {app_settings.database_url}")

        db_client = DatabaseClient(app_settings.database_url)
        await db_client.initialize(create_tables=app_settings.create_tables)

        if app_settings.closed_case_ids:
            case_directory = StaticCaseDirectory(app_settings.closed_case_ids)
        else:
            case_directory = OpenCaseDirectory()

        app.state.settings = app_settings
        app.state.db_client = db_client
        app.state.storage = create_storage_provider(app_settings)
        app.state.evidence_service = EvidenceService(
            repository=SqlEvidenceRepository(db_client.session_maker),
            audit_sink=SqlAuditSink(db_client.session_maker),
            case_directory=case_directory,
            policy=app_settings.retention_policy(),
            allow_edit_after_seal=app_settings.allow_edit_after_seal,
            qr_allocation_attempts=app_settings.qr_allocation_attempts,
            conflict_retry_attempts=app_settings.conflict_retry_attempts,
        )

        yield

        # Shutdown
        logger.info("Shutting down Evidence Custody Service")
        await db_client.close()

    app = FastAPI(
        title="Evidence Custody Service",
        description="Evidence lifecycle, chain of custody, integrity and retention",
        version=VERSION,
        lifespan=lifespan
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)
    app.include_router(evidence_router)

    @app.get(
        "/",
        summary="Service Information",
        description="""
Returns basic information about the Evidence Custody Service.

**Response Example**:
```json
{
  "service": "evidence-custody-service",
  "version": "0.1.0",
  "status": "running",
  "environment": "production"
}
```

**Authorization**: None required (public endpoint)
        """,
        responses={
            200: {"description": "Service information returned successfully"}
        }
    )
    async def root():
        return {
            "service": app_settings.service_name,
            "version": VERSION,
            "status": "running",
            "environment": app_settings.environment
        }

    # Health endpoint (simple version at root level)
    @app.get(
        "/health",
        summary="Health Check",
        description="""
Lightweight liveness check without database or storage access.

For database and storage status use `/api/v1/evidence/health`.
        """,
        responses={
            200: {"description": "Service is healthy and operational"}
        }
    )
    async def health():
        """Simple health check"""
        return {"status": "healthy", "service": app_settings.service_name}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "custody_service.main:app",
        host=settings.host,
        port=settings.port,
        reload=True if settings.environment == "development" else False
    )
