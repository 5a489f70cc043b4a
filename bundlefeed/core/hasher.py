"""SHA-256 content hashing for uploaded artifacts.

The digest recorded in the catalog must describe exactly the bytes written
to the object store.  ``HashingReader`` wraps the upload buffer and updates
the digest as the store consumes it, so one pass over one buffer yields
both the stored object and its hash.  The stored object is never re-read to
compute the digest.
"""

from __future__ import annotations

import hashlib
import io
from typing import BinaryIO


def sha256_hex(data: bytes) -> str:
    """Return the SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


class HashingReader(io.RawIOBase):
    """Read-only stream that hashes every byte it hands out.

    Parameters
    ----------
    source:
        Bytes, or a binary stream positioned at the start of the payload.

    Examples
    --------
    >>> reader = HashingReader(b"abc")
    >>> reader.read()
    b'abc'
    >>> reader.hexdigest() == sha256_hex(b"abc")
    True
    """

    def __init__(self, source: bytes | BinaryIO) -> None:
        super().__init__()
        if isinstance(source, (bytes, bytearray, memoryview)):
            source = io.BytesIO(bytes(source))
        self._source = source
        self._digest = hashlib.sha256()
        self.bytes_read = 0

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:  # type: ignore[override]
        chunk = self._source.read(len(buffer))
        if not chunk:
            return 0
        n = len(chunk)
        buffer[:n] = chunk
        self._digest.update(chunk)
        self.bytes_read += n
        return n

    def hexdigest(self) -> str:
        """Digest of the bytes read so far."""
        return self._digest.hexdigest()

    def drain(self, chunk_size: int = 1024 * 1024) -> int:
        """Consume the remaining bytes (hashing them) and return the total read."""
        while self.read(chunk_size):
            pass
        return self.bytes_read
