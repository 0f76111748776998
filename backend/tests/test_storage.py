"""
Tests for the MinIO storage adapter: timeouts and driver errors surface as
StorageError.
"""

import time

import pytest
from minio import Minio
from minio.error import MinioException
from urllib3.exceptions import MaxRetryError

from hrsign.common.exceptions import StorageError
from hrsign.common.storage import MinioStorage


class _FakeResponse:
    def __init__(self, data: bytes):
        self.data = data
        self.closed = False
        self.released = False

    def read(self) -> bytes:
        return self.data

    def close(self):
        self.closed = True

    def release_conn(self):
        self.released = True


class FakeMinio:
    def __init__(self, objects=None, error=None, delay=0.0):
        self.objects = objects or {}
        self.error = error
        self.delay = delay
        self.responses = []
        self.buckets = set()
        self.bucket_checks = 0

    def bucket_exists(self, bucket):
        self.bucket_checks += 1
        return bucket in self.buckets

    def make_bucket(self, bucket):
        self.buckets.add(bucket)

    def get_object(self, bucket, key):
        if self.delay:
            time.sleep(self.delay)
        if self.error:
            raise self.error
        response = _FakeResponse(self.objects[key])
        self.responses.append(response)
        return response

    def put_object(self, bucket, key, data, length, content_type):
        if self.error:
            raise self.error
        self.objects[key] = data.read()

    def presigned_get_object(self, bucket, key, expires):
        return f"http://minio.test/{bucket}/{key}?expires={int(expires.total_seconds())}"


class TestMinioStorage:
    async def test_download_releases_connection(self):
        client = FakeMinio(objects={"a/b.pdf": b"%PDF"})
        storage = MinioStorage(client, "docs", timeout=5.0)

        assert await storage.download("a/b.pdf") == b"%PDF"
        assert client.responses[0].closed is True
        assert client.responses[0].released is True

    async def test_upload(self):
        client = FakeMinio()
        storage = MinioStorage(client, "docs", timeout=5.0)

        await storage.upload(b"signed", "esign/signed/x.pdf", "application/pdf")
        assert client.objects["esign/signed/x.pdf"] == b"signed"

    async def test_driver_error_becomes_storage_error(self):
        storage = MinioStorage(FakeMinio(error=MinioException("bucket missing")), "docs", timeout=5.0)

        with pytest.raises(StorageError):
            await storage.download("a/b.pdf")

    async def test_network_error_becomes_storage_error(self):
        storage = MinioStorage(FakeMinio(error=ConnectionRefusedError("refused")), "docs", timeout=5.0)

        with pytest.raises(StorageError):
            await storage.upload(b"x", "a/b.pdf", "application/pdf")

    async def test_timeout_becomes_storage_error(self):
        storage = MinioStorage(FakeMinio(objects={"a": b"x"}, delay=0.5), "docs", timeout=0.05)

        with pytest.raises(StorageError) as exc_info:
            await storage.download("a")
        assert exc_info.value.status_code == 503

    def test_download_url(self):
        storage = MinioStorage(FakeMinio(), "docs", timeout=5.0)
        assert storage.download_url("a/b.pdf").startswith("http://minio.test/docs/a/b.pdf")

    async def test_upload_creates_bucket_once(self):
        client = FakeMinio()
        storage = MinioStorage(client, "docs", timeout=5.0)

        await storage.upload(b"one", "a.pdf", "application/pdf")
        await storage.upload(b"two", "b.pdf", "application/pdf")
        assert client.buckets == {"docs"}
        assert client.bucket_checks == 1

    async def test_urllib3_error_becomes_storage_error(self):
        error = MaxRetryError(None, "/docs/a.pdf", reason="connection refused")
        storage = MinioStorage(FakeMinio(error=error), "docs", timeout=5.0)

        with pytest.raises(StorageError):
            await storage.download("a.pdf")


def _unreachable_client() -> Minio:
    # Nothing listens on port 1, so every request fails at connect time.
    return Minio("127.0.0.1:1", access_key="minio", secret_key="minio-secret", secure=False)


class TestUnreachableMinio:
    async def test_upload_raises_storage_error(self):
        storage = MinioStorage(_unreachable_client(), "docs", timeout=30.0)

        with pytest.raises(StorageError) as exc_info:
            await storage.upload(b"%PDF", "a/b.pdf", "application/pdf")
        assert exc_info.value.status_code == 503

    async def test_download_raises_storage_error(self):
        storage = MinioStorage(_unreachable_client(), "docs", timeout=30.0)

        with pytest.raises(StorageError):
            await storage.download("a/b.pdf")

    def test_download_url_raises_storage_error(self):
        storage = MinioStorage(_unreachable_client(), "docs", timeout=30.0)

        with pytest.raises(StorageError):
            storage.download_url("a/b.pdf")
