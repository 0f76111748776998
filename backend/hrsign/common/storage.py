import asyncio
import logging
from datetime import timedelta
from io import BytesIO
from typing import Protocol

from minio import Minio
from minio.error import MinioException
from urllib3.exceptions import HTTPError

from hrsign.common.exceptions import StorageError
from hrsign.config import settings

logger = logging.getLogger(__name__)


class ObjectStorage(Protocol):
    async def download(self, storage_key: str) -> bytes: ...

    async def upload(self, content: bytes, storage_key: str, content_type: str) -> None: ...

    def download_url(self, storage_key: str) -> str: ...


class MinioStorage:
    """Blocking MinIO calls pushed to a worker thread with a bounded timeout."""

    def __init__(self, client: Minio, bucket: str, timeout: float):
        self.client = client
        self.bucket = bucket
        self.timeout = timeout
        self._bucket_ready = False

    async def _run(self, func, *args, **kwargs):
        try:
            return await asyncio.wait_for(asyncio.to_thread(func, *args, **kwargs), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            raise StorageError(f"Object storage timed out after {self.timeout}s") from exc
        except (MinioException, HTTPError, OSError) as exc:
            raise StorageError(f"Object storage error: {exc}") from exc

    def _get_object(self, storage_key: str) -> bytes:
        response = self.client.get_object(self.bucket, storage_key)
        try:
            return response.read()
        finally:
            response.close()
            response.release_conn()

    async def download(self, storage_key: str) -> bytes:
        return await self._run(self._get_object, storage_key)

    def _ensure_bucket(self) -> None:
        if not self.client.bucket_exists(self.bucket):
            self.client.make_bucket(self.bucket)

    async def upload(self, content: bytes, storage_key: str, content_type: str) -> None:
        if not self._bucket_ready:
            await self._run(self._ensure_bucket)
            self._bucket_ready = True
        await self._run(
            self.client.put_object,
            self.bucket,
            storage_key,
            BytesIO(content),
            length=len(content),
            content_type=content_type,
        )
        logger.debug("Uploaded %d bytes to %s", len(content), storage_key)

    def download_url(self, storage_key: str) -> str:
        # Presigning may hit the server once to resolve the bucket region.
        try:
            return self.client.presigned_get_object(
                self.bucket, storage_key, expires=timedelta(hours=settings.presigned_url_expire_hours)
            )
        except (MinioException, HTTPError, OSError) as exc:
            raise StorageError(f"Object storage error: {exc}") from exc


_storage = None


def get_storage() -> ObjectStorage:
    global _storage
    if _storage is None:
        client = Minio(
            settings.minio_endpoint,
            access_key=settings.minio_root_user,
            secret_key=settings.minio_root_password,
            secure=settings.minio_use_ssl,
        )
        _storage = MinioStorage(client, settings.minio_bucket, settings.storage_timeout_seconds)
    return _storage
