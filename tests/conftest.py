"""Shared test fixtures for Bundlefeed."""

from __future__ import annotations

import io
import itertools
import plistlib
import struct
import zipfile
from collections.abc import Callable
from pathlib import Path
from typing import Any, BinaryIO

import pytest

from bundlefeed.core.catalog import Catalog
from bundlefeed.core.errors import StorageError
from bundlefeed.core.ingestion import IngestionOrchestrator
from bundlefeed.core.object_store import LocalObjectStore
from bundlefeed.models.archive import UploadedArchive
from bundlefeed.models.catalog import AppRecord
from bundlefeed.models.requests import VersionUploadForm
from bundlefeed.models.storage import ObjectStat, PutResult, StoredObjectRef

DEFAULT_INFO: dict[str, Any] = {
    "CFBundleIdentifier": "com.example.demo",
    "CFBundleShortVersionString": "1.2.0",
    "CFBundleVersion": "42",
    "MinimumOSVersion": "15.0",
    "CFBundleDisplayName": "Demo",
    "CFBundleName": "DemoApp",
}

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32

# Well-formed XML whose <date> value plistlib cannot parse.
BAD_DATE_PLIST = (
    b'<?xml version="1.0" encoding="UTF-8"?>\n'
    b'<plist version="1.0"><dict>'
    b"<key>CFBundleIdentifier</key><string>com.example.demo</string>"
    b"<key>BuildDate</key><date>not-a-date</date>"
    b"</dict></plist>"
)


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class SpyObjectStore:
    """Local object store that records every gateway call.

    ``fail_put`` makes every put raise ``StorageError``; ``fail_remove``
    makes removals raise, which a real gateway would have swallowed.
    """

    def __init__(self, root: Path) -> None:
        self.inner = LocalObjectStore(root)
        self.calls: list[tuple[str, str, str]] = []
        self.fail_put = False
        self.fail_remove = False

    def put(
        self, bucket: str, key: str, data: bytes | BinaryIO, size: int, content_type: str
    ) -> PutResult:
        self.calls.append(("put", bucket, key))
        if self.fail_put:
            raise StorageError(f"refused {bucket}/{key}")
        return self.inner.put(bucket, key, data, size, content_type)

    def stat(self, bucket: str, key: str) -> ObjectStat:
        self.calls.append(("stat", bucket, key))
        return self.inner.stat(bucket, key)

    def get(self, bucket: str, key: str) -> BinaryIO:
        self.calls.append(("get", bucket, key))
        return self.inner.get(bucket, key)

    def remove(self, bucket: str, key: str) -> None:
        self.calls.append(("remove", bucket, key))
        if self.fail_remove:
            raise OSError(f"cannot remove {bucket}/{key}")
        self.inner.remove(bucket, key)

    def exists(self, bucket: str, key: str) -> bool:
        return self.inner.exists(bucket, key)

    def calls_of(self, op: str) -> list[tuple[str, str, str]]:
        return [call for call in self.calls if call[0] == op]


class RecordingCleanup:
    """Cleanup scheduler that only records what it was asked to remove."""

    def __init__(self) -> None:
        self.submitted: list[StoredObjectRef] = []
        self.shut_down = False

    def submit(self, ref: StoredObjectRef) -> None:
        self.submitted.append(ref)

    def shutdown(self, wait: bool = True) -> None:
        self.shut_down = True


# ---------------------------------------------------------------------------
# Core fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def tmp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test artifacts."""
    return tmp_path


@pytest.fixture
def catalog(tmp_dir: Path) -> Catalog:
    """Provide a fresh Catalog backed by a temp SQLite database."""
    return Catalog(tmp_dir / "catalog.db")


@pytest.fixture
def local_store(tmp_dir: Path) -> LocalObjectStore:
    """Provide a fresh LocalObjectStore in a temp directory."""
    return LocalObjectStore(tmp_dir / "objects")


@pytest.fixture
def spy_store(tmp_dir: Path) -> SpyObjectStore:
    """Provide a call-recording object store."""
    return SpyObjectStore(tmp_dir / "spy-objects")


@pytest.fixture
def cleanup() -> RecordingCleanup:
    return RecordingCleanup()


@pytest.fixture
def clock() -> Callable[[], int]:
    """Deterministic epoch-millis clock that advances 1 ms per call."""
    counter = itertools.count(1_700_000_000_000)
    return lambda: next(counter)


@pytest.fixture
def orchestrator(
    catalog: Catalog,
    spy_store: SpyObjectStore,
    cleanup: RecordingCleanup,
    clock: Callable[[], int],
) -> IngestionOrchestrator:
    """Provide an orchestrator wired to the spy store and recording cleanup."""
    return IngestionOrchestrator(
        catalog,
        spy_store,
        cleanup,
        max_upload_bytes=1024 * 1024,
        max_image_bytes=64 * 1024,
        clock=clock,
    )


@pytest.fixture
def sample_app(catalog: Catalog) -> AppRecord:
    """Provide an app registered in the catalog."""
    return catalog.create_app(
        AppRecord(
            app_id="app-demo",
            name="Demo",
            bundle_identifier="com.example.demo",
            developer_name="Example Dev",
        )
    )


# ---------------------------------------------------------------------------
# Archive and form factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_ipa() -> Callable[..., bytes]:
    """Factory fixture: build an in-memory ``.ipa`` zip.

    ``info`` is the Info.plist dictionary (``None`` omits the descriptor);
    ``fmt`` is ``"binary"`` or ``"xml"``; ``raw_plist`` overrides the encoded
    descriptor bytes; ``extra`` adds further ``{name: bytes}`` entries.
    """

    def _factory(
        info: dict[str, Any] | None = DEFAULT_INFO,
        fmt: str = "binary",
        bundle_dir: str = "Payload/Demo.app",
        raw_plist: bytes | None = None,
        extra: dict[str, bytes] | None = None,
    ) -> bytes:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
            if raw_plist is not None:
                archive.writestr(f"{bundle_dir}/Info.plist", raw_plist)
            elif info is not None:
                plist_fmt = plistlib.FMT_BINARY if fmt == "binary" else plistlib.FMT_XML
                archive.writestr(
                    f"{bundle_dir}/Info.plist", plistlib.dumps(info, fmt=plist_fmt)
                )
            archive.writestr(f"{bundle_dir}/Demo", b"\xcf\xfa\xed\xfe" + b"\x00" * 64)
            for name, payload in (extra or {}).items():
                archive.writestr(name, payload)
        return buffer.getvalue()

    return _factory


@pytest.fixture
def make_archive(make_ipa: Callable[..., bytes]) -> Callable[..., UploadedArchive]:
    """Factory fixture: wrap a built ``.ipa`` in an ``UploadedArchive``."""

    def _factory(**kwargs: Any) -> UploadedArchive:
        return UploadedArchive(data=make_ipa(**kwargs), filename="Demo.ipa")

    return _factory


@pytest.fixture
def make_form() -> Callable[..., VersionUploadForm]:
    """Factory fixture: a complete upload form with overridable fields."""

    def _factory(**overrides: Any) -> VersionUploadForm:
        fields: dict[str, Any] = {
            "app_id": "app-demo",
            "version": "1.2.0",
            "build_version": "42",
            "date": "2025-01-15",
            "localized_description": "Bug fixes.",
            "min_os_version": "15.0",
        }
        fields.update(overrides)
        return VersionUploadForm(**fields)

    return _factory


@pytest.fixture
def make_corrupt_ipa(make_ipa: Callable[..., bytes]) -> Callable[[], bytes]:
    """Factory fixture: an ``.ipa`` whose deflated Info.plist stream is damaged.

    The zip directory stays intact; only bytes inside the compressed member
    are flipped, so the failure happens while inflating the descriptor.
    """

    def _factory() -> bytes:
        info = {**DEFAULT_INFO, "Padding": "".join(str(i) for i in range(4000))}
        data = bytearray(make_ipa(info=info, fmt="xml"))
        with zipfile.ZipFile(io.BytesIO(bytes(data))) as archive:
            entry = archive.getinfo("Payload/Demo.app/Info.plist")
        name_len, extra_len = struct.unpack_from("<HH", data, entry.header_offset + 26)
        start = entry.header_offset + 30 + name_len + extra_len
        middle = start + entry.compress_size // 2
        for offset in range(middle, middle + 40):
            data[offset] ^= 0xFF
        return bytes(data)

    return _factory


@pytest.fixture
def bad_date_plist() -> bytes:
    """XML descriptor that parses as XML but carries an unreadable ``<date>``."""
    return BAD_DATE_PLIST
