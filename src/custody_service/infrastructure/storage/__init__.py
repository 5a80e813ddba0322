"""Storage infrastructure module.

Blob transport for evidence files via the StorageProvider interface.
"""

from custody_service.infrastructure.storage.factory import create_storage_provider
from custody_service.infrastructure.storage.provider import StorageProvider, build_storage_key
from custody_service.infrastructure.storage.local_storage import LocalStorage
from custody_service.infrastructure.storage.s3_storage import S3Storage

__all__ = [
    "create_storage_provider",
    "build_storage_key",
    "StorageProvider",
    "LocalStorage",
    "S3Storage",
]
