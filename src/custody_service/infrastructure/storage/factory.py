"""Storage Provider Factory

Chooses between local filesystem and S3 from settings (STORAGE_PROVIDER).
The provider is created once per application and kept on app.state.
"""

import logging
import os

from custody_service.config.settings import Settings
from custody_service.infrastructure.storage.local_storage import LocalStorage
from custody_service.infrastructure.storage.provider import StorageProvider
from custody_service.infrastructure.storage.s3_storage import S3Storage

logger = logging.getLogger(__name__)


def create_storage_provider(settings: Settings) -> StorageProvider:
    """Create the storage provider selected by settings.

    Environment Variables:
        STORAGE_PROVIDER: "local" or "s3" (default: "local")
        STORAGE_LOCAL_PATH: Base directory for local storage
        S3_BUCKET_NAME, S3_REGION, S3_ENDPOINT_URL: S3/MinIO target
        AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY: optional, boto3 defaults otherwise

    Raises:
        ValueError: Unknown provider or missing S3 bucket
    """
    provider_type = settings.storage_provider.lower()
    logger.info(f"Initializing storage provider: {provider_type}")

    if provider_type == "s3":
        return S3Storage(
            bucket_name=settings.s3_bucket_name,
            region=settings.s3_region,
            endpoint_url=settings.s3_endpoint_url,
            access_key=os.getenv("AWS_ACCESS_KEY_ID"),
            secret_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
        )
    if provider_type == "local":
        return LocalStorage(base_path=settings.storage_local_path)

    raise ValueError(f"Unknown STORAGE_PROVIDER: {settings.storage_provider} (expected 'local' or 's3')")
