"""Tests for the object store gateway — local and S3 backends."""

from __future__ import annotations

import io
from datetime import datetime, timezone
from pathlib import Path

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from bundlefeed.config import FeedConfig
from bundlefeed.core.errors import ObjectNotFound, StorageError
from bundlefeed.core.hasher import sha256_hex
from bundlefeed.core.object_store import (
    LocalObjectStore,
    ObjectStoreGateway,
    S3ObjectStore,
    create_object_store,
)


# ---------------------------------------------------------------------------
# Test: local backend
# ---------------------------------------------------------------------------


class TestLocalObjectStore:
    def test_put_returns_digest_of_written_bytes(self, local_store: LocalObjectStore):
        data = b"archive bytes" * 100
        result = local_store.put("ipas", "a.ipa", data, len(data), "application/octet-stream")
        assert result.sha256 == sha256_hex(data)
        assert result.size == len(data)
        assert result.ref.storage_path == "/ipas/a.ipa"

    def test_get_returns_written_bytes(self, local_store: LocalObjectStore):
        local_store.put("icons", "a.png", b"png", 3, "image/png")
        with local_store.get("icons", "a.png") as handle:
            assert handle.read() == b"png"

    def test_put_from_stream(self, local_store: LocalObjectStore):
        data = b"streamed"
        result = local_store.put("ipas", "s.ipa", io.BytesIO(data), len(data), "x/y")
        assert result.sha256 == sha256_hex(data)

    def test_stat(self, local_store: LocalObjectStore):
        local_store.put("icons", "a.png", b"12345", 5, "image/png")
        stat = local_store.stat("icons", "a.png")
        assert stat.size == 5
        assert stat.content_type == "image/png"
        assert stat.etag == sha256_hex(b"12345")
        assert stat.last_modified is not None

    def test_stat_missing(self, local_store: LocalObjectStore):
        with pytest.raises(ObjectNotFound):
            local_store.stat("icons", "missing.png")

    def test_get_missing(self, local_store: LocalObjectStore):
        with pytest.raises(ObjectNotFound):
            local_store.get("icons", "missing.png")

    def test_remove(self, local_store: LocalObjectStore):
        local_store.put("icons", "a.png", b"png", 3, "image/png")
        local_store.remove("icons", "a.png")
        assert local_store.exists("icons", "a.png") is False

    def test_remove_missing_is_silent(self, local_store: LocalObjectStore):
        local_store.remove("icons", "never-existed.png")

    def test_key_escape_rejected(self, local_store: LocalObjectStore):
        with pytest.raises(StorageError):
            local_store.put("icons", "../../etc/passwd", b"x", 1, "text/plain")

    def test_remove_swallows_invalid_key(self, local_store: LocalObjectStore):
        local_store.remove("icons", "../outside")

    def test_declared_size_mismatch_logged(self, local_store: LocalObjectStore, caplog):
        with caplog.at_level("WARNING"):
            result = local_store.put("ipas", "a.ipa", b"abc", 10, "x/y")
        assert result.size == 3
        assert "differs" in caplog.text

    def test_no_temp_files_left(self, local_store: LocalObjectStore):
        local_store.put("ipas", "a.ipa", b"abc", 3, "x/y")
        leftovers = list((local_store.root / "ipas").glob(".upload-*"))
        assert leftovers == []

    def test_satisfies_protocol(self, local_store: LocalObjectStore):
        assert isinstance(local_store, ObjectStoreGateway)


# ---------------------------------------------------------------------------
# Test: S3 backend against a fake client
# ---------------------------------------------------------------------------


def _client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class FakeS3Client:
    """Minimal stand-in for a boto3 S3 client."""

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str], tuple[bytes, str]] = {}
        self.fail_upload = False
        self.fail_delete = False

    def upload_fileobj(self, fileobj, bucket, key, ExtraArgs=None):
        if self.fail_upload:
            raise EndpointConnectionError(endpoint_url="http://minio:9000")
        data = fileobj.read()
        self.objects[(bucket, key)] = (data, (ExtraArgs or {}).get("ContentType", ""))

    def head_object(self, Bucket, Key):
        if (Bucket, Key) not in self.objects:
            raise _client_error("404", "HeadObject")
        data, content_type = self.objects[(Bucket, Key)]
        return {
            "ContentLength": len(data),
            "ContentType": content_type,
            "ETag": '"abc123"',
            "LastModified": datetime(2025, 1, 1, tzinfo=timezone.utc),
        }

    def get_object(self, Bucket, Key):
        if (Bucket, Key) not in self.objects:
            raise _client_error("NoSuchKey", "GetObject")
        return {"Body": io.BytesIO(self.objects[(Bucket, Key)][0])}

    def delete_object(self, Bucket, Key):
        if self.fail_delete:
            raise _client_error("AccessDenied", "DeleteObject")
        self.objects.pop((Bucket, Key), None)


class TestS3ObjectStore:
    def test_put_streams_and_hashes(self):
        client = FakeS3Client()
        store = S3ObjectStore(client)
        result = store.put("ipas", "a.ipa", b"abc", 3, "application/octet-stream")
        assert client.objects[("ipas", "a.ipa")] == (b"abc", "application/octet-stream")
        assert result.sha256 == sha256_hex(b"abc")
        assert result.size == 3

    def test_put_failure_raises_storage_error(self):
        client = FakeS3Client()
        client.fail_upload = True
        with pytest.raises(StorageError):
            S3ObjectStore(client).put("ipas", "a.ipa", b"abc", 3, "x/y")

    def test_stat(self):
        client = FakeS3Client()
        store = S3ObjectStore(client)
        store.put("icons", "a.png", b"png!", 4, "image/png")
        stat = store.stat("icons", "a.png")
        assert stat.size == 4
        assert stat.content_type == "image/png"
        assert stat.etag == "abc123"

    def test_stat_missing(self):
        with pytest.raises(ObjectNotFound):
            S3ObjectStore(FakeS3Client()).stat("icons", "nope.png")

    def test_get_missing(self):
        with pytest.raises(ObjectNotFound):
            S3ObjectStore(FakeS3Client()).get("icons", "nope.png")

    def test_get(self):
        client = FakeS3Client()
        store = S3ObjectStore(client)
        store.put("icons", "a.png", b"png!", 4, "image/png")
        assert store.get("icons", "a.png").read() == b"png!"

    def test_remove_failure_is_logged_not_raised(self, caplog):
        client = FakeS3Client()
        client.fail_delete = True
        with caplog.at_level("WARNING"):
            S3ObjectStore(client).remove("ipas", "a.ipa")
        assert "Failed to remove" in caplog.text


# ---------------------------------------------------------------------------
# Test: factory
# ---------------------------------------------------------------------------


class TestCreateObjectStore:
    def test_local_backend(self, tmp_dir: Path):
        config = FeedConfig(storage_backend="local", local_storage_path=tmp_dir / "objs")
        assert isinstance(create_object_store(config), LocalObjectStore)

    def test_s3_backend(self):
        config = FeedConfig(storage_backend="s3", s3_endpoint_url="http://localhost:9000")
        assert isinstance(create_object_store(config), S3ObjectStore)

    def test_unknown_backend(self):
        with pytest.raises(ValueError, match="Unknown storage backend"):
            create_object_store(FeedConfig(storage_backend="ftp"))
