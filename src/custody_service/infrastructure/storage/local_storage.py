"""Local Filesystem Storage Implementation

Async local file storage for development and single-station deployments.
Uses aiofiles for non-blocking I/O.
"""

import logging
import os
from pathlib import Path
from typing import AsyncGenerator, BinaryIO

import aiofiles

from custody_service.core.errors import NotFoundError, StorageError, ValidationError
from custody_service.infrastructure.storage.provider import StorageProvider

logger = logging.getLogger(__name__)

CHUNK_SIZE = 65536


class LocalStorage(StorageProvider):
    """Local filesystem storage provider."""

    def __init__(self, base_path: str = "./data/uploads"):
        self.base_path = Path(base_path).resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)
        logger.info(f"Local storage initialized at: {self.base_path}")

    def _get_path(self, key: str) -> Path:
        """Resolve a storage key inside the base directory.

        Raises:
            ValidationError: If the key escapes the base directory
        """
        safe_path = (self.base_path / key).resolve()
        if not safe_path.is_relative_to(self.base_path):
            logger.error(f"Path traversal attempt detected: {key}")
            raise ValidationError("Invalid file path", field="key")
        return safe_path

    async def upload(self, file_stream: BinaryIO, key: str, content_type: str) -> str:
        file_path = self._get_path(key)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            file_stream.seek(0)
            async with aiofiles.open(file_path, "wb") as out_file:
                while content := file_stream.read(CHUNK_SIZE):
                    await out_file.write(content)
        except OSError as e:
            logger.error(f"Local upload failed for {key}: {e}")
            raise StorageError(f"Local upload failed: {e}") from e

        logger.info(f"Stored {content_type} file at {file_path}")
        return key

    async def download_stream(self, key: str) -> AsyncGenerator[bytes, None]:
        file_path = self._get_path(key)
        if not file_path.exists():
            logger.warning(f"File not found in local storage: {key}")
            raise NotFoundError(f"File not found: {key}")

        try:
            async with aiofiles.open(file_path, "rb") as in_file:
                while chunk := await in_file.read(CHUNK_SIZE):
                    yield chunk
        except OSError as e:
            logger.error(f"Local download failed for {key}: {e}")
            raise StorageError(f"Local download failed: {e}") from e

    async def delete(self, key: str) -> bool:
        file_path = self._get_path(key)
        if not file_path.exists():
            logger.warning(f"File not found for deletion: {key}")
            return False

        try:
            os.remove(file_path)
        except OSError as e:
            logger.error(f"Failed to delete file {key}: {e}")
            return False

        logger.info(f"Deleted file from local storage: {file_path}")
        return True

    async def file_exists(self, key: str) -> bool:
        try:
            return self._get_path(key).exists()
        except ValidationError:
            return False

    async def health_check(self) -> bool:
        try:
            test_file = self.base_path / ".health_check"
            test_file.touch()
            test_file.unlink()
            return True
        except OSError as e:
            logger.error(f"Local storage health check failed: {e}")
            return False
