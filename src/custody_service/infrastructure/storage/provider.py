"""Storage Provider Interface

Abstract base class for the blob transport that holds evidence file bytes.
The custody engine only keeps the returned key, size, MIME type and hash.
"""

from abc import ABC, abstractmethod
from typing import AsyncGenerator, BinaryIO


def build_storage_key(station_id: str, case_id: str, evidence_id: str, filename: str) -> str:
    """Storage key layout: {station_id}/{case_id}/{evidence_id}_{filename}"""
    return f"{station_id}/{case_id}/{evidence_id}_{filename}"


class StorageProvider(ABC):
    """Abstract storage provider for deployment-neutral file storage."""

    @abstractmethod
    async def upload(self, file_stream: BinaryIO, key: str, content_type: str) -> str:
        """Store a file and return the key it can be retrieved with.

        Raises:
            StorageError: If the upload fails
        """

    @abstractmethod
    async def download_stream(self, key: str) -> AsyncGenerator[bytes, None]:
        """Stream file content as chunks of bytes.

        Raises:
            NotFoundError: If the file doesn't exist
            StorageError: If the read fails
        """

    async def download(self, key: str) -> bytes:
        chunks = []
        async for chunk in self.download_stream(key):
            chunks.append(chunk)
        return b"".join(chunks)

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a file; False if it was not there"""

    @abstractmethod
    async def file_exists(self, key: str) -> bool:
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        pass
