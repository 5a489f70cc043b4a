"""Archive metadata extractor — reads Info.plist out of an ``.ipa`` buffer.

An ``.ipa`` is a zip container whose application bundle lives at
``Payload/<Name>.app/``.  The bundle descriptor ``Info.plist`` sits directly
inside that directory and may be encoded either as a binary property list
(``bplist00`` magic) or as an XML property list.

There is one extractor and two call sites with different error policies:

* ``extract_metadata`` propagates ``MetadataNotFound`` and
  ``MetadataParseError``; the inspection endpoint uses it.
* ``try_extract_metadata`` logs and returns ``None``; the persisting upload
  flow uses it because metadata is a convenience there, not a requirement.
"""

from __future__ import annotations

import io
import logging
import plistlib
import re
import zipfile
import zlib
from typing import Any
from xml.parsers.expat import ExpatError

from bundlefeed.core.errors import MetadataNotFound, MetadataParseError
from bundlefeed.models.archive import ArchiveMetadata

logger = logging.getLogger(__name__)

BINARY_PLIST_MAGIC = b"bplist"

# Payload/<single bundle dir>.app/Info.plist, nothing nested deeper.
_DESCRIPTOR_PATTERN = re.compile(r"^Payload/[^/]+\.app/Info\.plist$", re.IGNORECASE)

# Descriptor key -> ArchiveMetadata field.  Display name is handled
# separately because it falls back from one key to another.
_KEY_MAP: dict[str, str] = {
    "CFBundleShortVersionString": "short_version",
    "CFBundleVersion": "build_version",
    "MinimumOSVersion": "min_os_version",
    "CFBundleIdentifier": "bundle_identifier",
}
_DISPLAY_NAME_KEYS: tuple[str, ...] = ("CFBundleDisplayName", "CFBundleName")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def extract_metadata(data: bytes) -> ArchiveMetadata:
    """Extract bundle metadata from an in-memory ``.ipa`` buffer.

    Raises
    ------
    MetadataNotFound
        If the archive holds zero or more than one candidate descriptor.
    MetadataParseError
        If the buffer is not a zip container or the descriptor cannot be
        decoded into a key/value dictionary.
    """
    raw = read_descriptor(data)
    return map_descriptor(decode_plist(raw))


def try_extract_metadata(data: bytes) -> ArchiveMetadata | None:
    """Best-effort variant of ``extract_metadata``.

    Returns ``None`` (and logs a warning) instead of raising on a missing or
    undecodable descriptor.
    """
    try:
        return extract_metadata(data)
    except (MetadataNotFound, MetadataParseError) as exc:
        logger.warning("Archive metadata unavailable (%s): %s", exc.reason, exc)
        return None


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------


def find_descriptor_entry(archive: zipfile.ZipFile) -> zipfile.ZipInfo:
    """Return the single ``Payload/*.app/Info.plist`` entry in *archive*."""
    candidates = [
        info
        for info in archive.infolist()
        if not info.is_dir() and _DESCRIPTOR_PATTERN.match(info.filename)
    ]
    if not candidates:
        raise MetadataNotFound("Info.plist not found in archive")
    if len(candidates) > 1:
        names = ", ".join(info.filename for info in candidates)
        raise MetadataNotFound(
            f"Archive holds {len(candidates)} candidate Info.plist entries: {names}"
        )
    return candidates[0]


def read_descriptor(data: bytes) -> bytes:
    """Open *data* as a zip container and return the raw descriptor bytes."""
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            entry = find_descriptor_entry(archive)
            return archive.read(entry)
    except zipfile.BadZipFile as exc:
        raise MetadataParseError(f"Archive is not a valid zip container: {exc}") from exc
    except (MetadataNotFound, MetadataParseError):
        raise
    except (RuntimeError, NotImplementedError, OSError, EOFError, zlib.error) as exc:
        # Encrypted entries, unsupported compression, truncated or corrupt members.
        raise MetadataParseError(f"Could not read Info.plist: {exc}") from exc


def decode_plist(raw: bytes) -> dict[str, Any]:
    """Decode a binary or XML property list into a dictionary."""
    try:
        if raw[: len(BINARY_PLIST_MAGIC)] == BINARY_PLIST_MAGIC:
            parsed: Any = plistlib.loads(raw, fmt=plistlib.FMT_BINARY)
        else:
            raw.decode("utf-8")
            parsed = plistlib.loads(raw, fmt=plistlib.FMT_XML)
    except (plistlib.InvalidFileException, ExpatError, UnicodeDecodeError) as exc:
        raise MetadataParseError(f"Failed to parse Info.plist: {exc}") from exc
    except Exception as exc:
        # plistlib surfaces malformed values (bad <date>, oversized ints,
        # dangling binary offsets) as assorted builtin exceptions.
        raise MetadataParseError(
            f"Failed to parse Info.plist: {type(exc).__name__}: {exc}"
        ) from exc

    if isinstance(parsed, list):
        parsed = parsed[0] if parsed else None
    if not isinstance(parsed, dict):
        raise MetadataParseError("Info.plist did not decode to a dictionary")
    return parsed


def map_descriptor(descriptor: dict[str, Any]) -> ArchiveMetadata:
    """Map known descriptor keys onto ``ArchiveMetadata``; ignore the rest."""
    fields: dict[str, str] = {}
    for key, field in _KEY_MAP.items():
        value = _as_text(descriptor.get(key))
        if value is not None:
            fields[field] = value

    for key in _DISPLAY_NAME_KEYS:
        value = _as_text(descriptor.get(key))
        if value:
            fields["display_name"] = value
            break

    return ArchiveMetadata(**fields)


def _as_text(value: Any) -> str | None:
    if value is None or isinstance(value, (dict, list, bytes)):
        return None
    return str(value)
