"""Object store gateway — put, get, stat, remove over named buckets.

Two backends implement ``ObjectStoreGateway``:

* ``S3ObjectStore`` talks to MinIO or S3 through a ``boto3`` client built
  once per process and injected.
* ``LocalObjectStore`` keeps buckets as directories under a root path:
  ``{root}/{bucket}/{key}`` with a JSON sidecar at
  ``{root}/.meta/{bucket}/{key}.json`` recording content type and digest.

``put`` streams the payload through ``HashingReader`` so the returned
digest covers exactly the bytes written.  ``remove`` is best-effort cleanup:
errors are logged and never raised.  No retries are built in at this layer.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, BinaryIO, Protocol, runtime_checkable

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from bundlefeed.config import FeedConfig
from bundlefeed.core.errors import ObjectNotFound, StorageError
from bundlefeed.core.hasher import HashingReader
from bundlefeed.models.storage import ObjectStat, PutResult, StoredObjectRef

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024
_MISSING_CODES = {"404", "NoSuchKey", "NotFound", "NoSuchBucket"}


@runtime_checkable
class ObjectStoreGateway(Protocol):
    """Interface every object store backend satisfies."""

    def put(
        self,
        bucket: str,
        key: str,
        data: bytes | BinaryIO,
        size: int,
        content_type: str,
    ) -> PutResult: ...

    def stat(self, bucket: str, key: str) -> ObjectStat: ...

    def get(self, bucket: str, key: str) -> BinaryIO: ...

    def remove(self, bucket: str, key: str) -> None: ...


# ---------------------------------------------------------------------------
# Local filesystem backend
# ---------------------------------------------------------------------------


class LocalObjectStore:
    """Directory-per-bucket object store on the local filesystem.

    Writes go to a temporary file in the bucket directory and are moved into
    place with ``os.replace``, so a reader never sees a partial object.

    Parameters
    ----------
    root:
        Root directory holding one subdirectory per bucket.
    """

    def __init__(self, root: Path) -> None:
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def _object_path(self, bucket: str, key: str) -> Path:
        """Compute the on-disk path for *bucket*/*key*, refusing escapes."""
        if not bucket or not key or "/" in bucket or bucket.startswith("."):
            raise StorageError(f"Invalid bucket/key: {bucket!r}/{key!r}")
        path = (self._root / bucket / key).resolve()
        bucket_dir = (self._root / bucket).resolve()
        if bucket_dir not in path.parents:
            raise StorageError(f"Object key escapes its bucket: {key!r}")
        return path

    def _meta_path(self, bucket: str, key: str) -> Path:
        return self._root / ".meta" / bucket / f"{key}.json"

    # ------------------------------------------------------------------
    # Put
    # ------------------------------------------------------------------

    def put(
        self,
        bucket: str,
        key: str,
        data: bytes | BinaryIO,
        size: int,
        content_type: str,
    ) -> PutResult:
        """Write an object and return the digest of the bytes written."""
        path = self._object_path(bucket, key)
        reader = HashingReader(data)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".upload-")
            try:
                with os.fdopen(fd, "wb") as out:
                    shutil.copyfileobj(reader, out, _CHUNK_SIZE)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise

            meta_path = self._meta_path(bucket, key)
            meta_path.parent.mkdir(parents=True, exist_ok=True)
            meta_path.write_text(
                json.dumps(
                    {
                        "content_type": content_type,
                        "sha256": reader.hexdigest(),
                        "size": reader.bytes_read,
                    }
                ),
                encoding="utf-8",
            )
        except OSError as exc:
            raise StorageError(f"Failed to write {bucket}/{key}: {exc}") from exc

        if size >= 0 and reader.bytes_read != size:
            logger.warning(
                "Declared size %d for %s/%s differs from %d bytes written",
                size,
                bucket,
                key,
                reader.bytes_read,
            )
        logger.debug("Stored %s/%s (%d bytes)", bucket, key, reader.bytes_read)
        return PutResult(
            ref=StoredObjectRef(bucket=bucket, key=key),
            size=reader.bytes_read,
            sha256=reader.hexdigest(),
        )

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def stat(self, bucket: str, key: str) -> ObjectStat:
        path = self._object_path(bucket, key)
        if not path.is_file():
            raise ObjectNotFound(f"Object not found: {bucket}/{key}")
        info = path.stat()
        meta = self._read_meta(bucket, key)
        return ObjectStat(
            bucket=bucket,
            key=key,
            size=info.st_size,
            content_type=meta.get("content_type", "application/octet-stream"),
            etag=meta.get("sha256", ""),
            last_modified=datetime.fromtimestamp(info.st_mtime, tz=timezone.utc),
        )

    def get(self, bucket: str, key: str) -> BinaryIO:
        path = self._object_path(bucket, key)
        try:
            return path.open("rb")
        except FileNotFoundError as exc:
            raise ObjectNotFound(f"Object not found: {bucket}/{key}") from exc
        except OSError as exc:
            raise StorageError(f"Failed to read {bucket}/{key}: {exc}") from exc

    def exists(self, bucket: str, key: str) -> bool:
        return self._object_path(bucket, key).is_file()

    def _read_meta(self, bucket: str, key: str) -> dict[str, Any]:
        meta_path = self._meta_path(bucket, key)
        if not meta_path.is_file():
            return {}
        try:
            return json.loads(meta_path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("Unreadable metadata sidecar for %s/%s", bucket, key)
            return {}

    # ------------------------------------------------------------------
    # Remove (best-effort)
    # ------------------------------------------------------------------

    def remove(self, bucket: str, key: str) -> None:
        try:
            self._object_path(bucket, key).unlink(missing_ok=True)
            self._meta_path(bucket, key).unlink(missing_ok=True)
            logger.debug("Removed %s/%s", bucket, key)
        except (OSError, StorageError) as exc:
            logger.warning("Failed to remove %s/%s: %s", bucket, key, exc)


# ---------------------------------------------------------------------------
# S3 / MinIO backend
# ---------------------------------------------------------------------------


class S3ObjectStore:
    """``boto3``-backed gateway for MinIO or S3.

    Parameters
    ----------
    client:
        A boto3 S3 client.  Build it once with ``build_s3_client`` and share
        it; boto3 clients are thread-safe.
    """

    def __init__(self, client: Any) -> None:
        self._client = client

    def put(
        self,
        bucket: str,
        key: str,
        data: bytes | BinaryIO,
        size: int,
        content_type: str,
    ) -> PutResult:
        reader = HashingReader(data)
        try:
            self._client.upload_fileobj(
                reader,
                bucket,
                key,
                ExtraArgs={"ContentType": content_type},
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to upload {bucket}/{key}: {exc}") from exc

        if size >= 0 and reader.bytes_read != size:
            logger.warning(
                "Declared size %d for %s/%s differs from %d bytes uploaded",
                size,
                bucket,
                key,
                reader.bytes_read,
            )
        logger.debug("Uploaded s3://%s/%s (%d bytes)", bucket, key, reader.bytes_read)
        return PutResult(
            ref=StoredObjectRef(bucket=bucket, key=key),
            size=reader.bytes_read,
            sha256=reader.hexdigest(),
        )

    def stat(self, bucket: str, key: str) -> ObjectStat:
        try:
            head = self._client.head_object(Bucket=bucket, Key=key)
        except ClientError as exc:
            if _is_missing(exc):
                raise ObjectNotFound(f"Object not found: {bucket}/{key}") from exc
            raise StorageError(f"Failed to stat {bucket}/{key}: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"Failed to stat {bucket}/{key}: {exc}") from exc
        return ObjectStat(
            bucket=bucket,
            key=key,
            size=int(head.get("ContentLength", 0)),
            content_type=head.get("ContentType", "application/octet-stream"),
            etag=str(head.get("ETag", "")).strip('"'),
            last_modified=head.get("LastModified"),
        )

    def get(self, bucket: str, key: str) -> BinaryIO:
        try:
            response = self._client.get_object(Bucket=bucket, Key=key)
        except ClientError as exc:
            if _is_missing(exc):
                raise ObjectNotFound(f"Object not found: {bucket}/{key}") from exc
            raise StorageError(f"Failed to read {bucket}/{key}: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"Failed to read {bucket}/{key}: {exc}") from exc
        return response["Body"]

    def remove(self, bucket: str, key: str) -> None:
        try:
            self._client.delete_object(Bucket=bucket, Key=key)
            logger.debug("Removed s3://%s/%s", bucket, key)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to remove s3://%s/%s: %s", bucket, key, exc)


def _is_missing(exc: ClientError) -> bool:
    code = str(exc.response.get("Error", {}).get("Code", ""))
    return code in _MISSING_CODES


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


def build_s3_client(config: FeedConfig) -> Any:
    """Build the process-wide boto3 S3 client from configuration."""
    return boto3.client(
        "s3",
        endpoint_url=config.s3_endpoint_url,
        aws_access_key_id=config.s3_access_key,
        aws_secret_access_key=config.s3_secret_key,
        region_name=config.s3_region,
        config=Config(signature_version="s3v4", s3={"addressing_style": "path"}),
    )


def create_object_store(config: FeedConfig) -> ObjectStoreGateway:
    """Return the gateway selected by ``config.storage_backend``."""
    backend = config.storage_backend.lower()
    if backend == "local":
        return LocalObjectStore(config.local_storage_path)
    if backend == "s3":
        logger.info("Using S3 object store at %s", config.s3_endpoint_url)
        return S3ObjectStore(build_s3_client(config))
    raise ValueError(f"Unknown storage backend: {config.storage_backend!r}")
