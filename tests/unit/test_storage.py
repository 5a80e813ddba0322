"""Unit tests for blob storage providers"""

from io import BytesIO

import pytest

from custody_service.config.settings import Settings
from custody_service.core.errors import NotFoundError, ValidationError
from custody_service.infrastructure.storage import (
    LocalStorage,
    S3Storage,
    build_storage_key,
    create_storage_provider,
)


@pytest.mark.unit
class TestStorageFactory:
    def test_local(self, tmp_path):
        provider = create_storage_provider(Settings(storage_provider="local", storage_local_path=str(tmp_path)))
        assert isinstance(provider, LocalStorage)

    def test_s3(self):
        provider = create_storage_provider(
            Settings(storage_provider="S3", s3_bucket_name="evidence", s3_endpoint_url="http://minio:9000")
        )
        assert isinstance(provider, S3Storage)
        assert provider.bucket_name == "evidence"

    def test_s3_requires_bucket(self):
        with pytest.raises(ValueError):
            create_storage_provider(Settings(storage_provider="s3", s3_bucket_name=None))

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            create_storage_provider(Settings(storage_provider="tape"))


@pytest.mark.unit
class TestLocalStorage:
    """Test local filesystem storage"""

    async def test_upload_download_delete(self, tmp_path):
        storage = LocalStorage(str(tmp_path))
        key = build_storage_key("ST01", "case-456", "ev-1", "photo.jpg")

        assert await storage.upload(BytesIO(b"jpeg bytes"), key, "image/jpeg") == key
        assert await storage.file_exists(key)
        assert await storage.download(key) == b"jpeg bytes"
        assert await storage.delete(key)
        assert not await storage.delete(key)

    async def test_missing_file(self, tmp_path):
        with pytest.raises(NotFoundError):
            await LocalStorage(str(tmp_path)).download("ST01/none.bin")

    async def test_path_traversal_rejected(self, tmp_path):
        storage = LocalStorage(str(tmp_path / "uploads"))
        with pytest.raises(ValidationError):
            await storage.upload(BytesIO(b"x"), "../../etc/passwd", "text/plain")
        assert not await storage.file_exists("../outside.txt")

    async def test_health_check(self, tmp_path):
        assert await LocalStorage(str(tmp_path)).health_check()
