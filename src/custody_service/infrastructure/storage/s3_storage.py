"""S3/MinIO Storage Implementation

S3-compatible storage using aioboto3 for non-blocking I/O. Works with AWS S3
and self-hosted MinIO through endpoint_url.
"""

import logging
from typing import AsyncGenerator, BinaryIO, Optional

import aioboto3
from botocore.exceptions import ClientError

from custody_service.core.errors import NotFoundError, StorageError
from custody_service.infrastructure.storage.provider import StorageProvider

logger = logging.getLogger(__name__)

CHUNK_SIZE = 65536


def _error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "Unknown")


class S3Storage(StorageProvider):
    """S3/MinIO storage provider."""

    def __init__(
        self,
        bucket_name: Optional[str],
        region: Optional[str] = "us-east-1",
        endpoint_url: Optional[str] = None,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
    ):
        """Initialize S3 storage provider.

        Credentials fall back to the boto3 default chain when not given.

        Raises:
            ValueError: If bucket_name is not provided
        """
        if not bucket_name:
            raise ValueError("S3_BUCKET_NAME is required when STORAGE_PROVIDER=s3")

        self.bucket_name = bucket_name
        self.region = region
        self.endpoint_url = endpoint_url
        self.session = aioboto3.Session(
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name=region,
        )

        logger.info(
            f"S3 storage initialized - bucket: {self.bucket_name}, "
            f"region: {self.region}, endpoint: {self.endpoint_url or 'AWS'}"
        )

    def _client(self):
        return self.session.client("s3", region_name=self.region, endpoint_url=self.endpoint_url)

    async def upload(self, file_stream: BinaryIO, key: str, content_type: str) -> str:
        try:
            async with self._client() as s3:
                file_stream.seek(0)
                await s3.upload_fileobj(
                    file_stream,
                    self.bucket_name,
                    key,
                    ExtraArgs={"ContentType": content_type},
                )
        except ClientError as e:
            logger.error(f"S3 upload failed (error: {_error_code(e)}): {e}")
            raise StorageError(f"S3 upload failed: {_error_code(e)}") from e

        logger.info(f"Uploaded file to S3: s3://{self.bucket_name}/{key}")
        return key

    async def download_stream(self, key: str) -> AsyncGenerator[bytes, None]:
        async with self._client() as s3:
            try:
                response = await s3.get_object(Bucket=self.bucket_name, Key=key)
                async for chunk in response["Body"].iter_chunks(chunk_size=CHUNK_SIZE):
                    yield chunk
            except ClientError as e:
                if _error_code(e) == "NoSuchKey":
                    logger.warning(f"File not found in S3: {key}")
                    raise NotFoundError(f"File not found: {key}") from e
                logger.error(f"S3 download failed (error: {_error_code(e)}): {e}")
                raise StorageError(f"S3 download failed: {_error_code(e)}") from e

    async def delete(self, key: str) -> bool:
        try:
            async with self._client() as s3:
                await s3.delete_object(Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            logger.error(f"S3 delete failed for {key} (error: {_error_code(e)})")
            return False
        logger.info(f"Deleted file from S3: s3://{self.bucket_name}/{key}")
        return True

    async def file_exists(self, key: str) -> bool:
        try:
            async with self._client() as s3:
                await s3.head_object(Bucket=self.bucket_name, Key=key)
            return True
        except ClientError as e:
            if _error_code(e) in ("404", "NoSuchKey", "NotFound"):
                return False
            raise StorageError(f"S3 head failed: {_error_code(e)}") from e

    async def health_check(self) -> bool:
        try:
            async with self._client() as s3:
                await s3.head_bucket(Bucket=self.bucket_name)
            return True
        except ClientError as e:
            logger.error(f"S3 health check failed (error: {_error_code(e)})")
            return False
