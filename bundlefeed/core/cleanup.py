"""Best-effort object cleanup — fire-and-forget removal of superseded objects.

Replacing an artifact or deleting a version leaves an object that nothing in
the catalog refers to any more.  Removing it is housekeeping, not part of
the primary operation: each removal is attempted exactly once, a failure is
logged and dropped, and the caller never waits for the outcome.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Protocol

from bundlefeed.core.object_store import ObjectStoreGateway
from bundlefeed.models.storage import StoredObjectRef

logger = logging.getLogger(__name__)


class CleanupScheduler(Protocol):
    """Accepts removal requests without blocking the caller."""

    def submit(self, ref: StoredObjectRef) -> None: ...

    def shutdown(self, wait: bool = True) -> None: ...


def _remove_once(store: ObjectStoreGateway, ref: StoredObjectRef) -> None:
    """Attempt a single removal; log and swallow any failure."""
    try:
        store.remove(ref.bucket, ref.key)
        logger.info("Cleaned up superseded object %s", ref.storage_path)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Cleanup of %s failed: %s", ref.storage_path, exc)


class BackgroundCleanup:
    """Runs removals on a small thread pool.

    Parameters
    ----------
    store:
        Gateway whose ``remove`` is called for each submitted ref.
    max_workers:
        Size of the removal pool.
    """

    def __init__(self, store: ObjectStoreGateway, max_workers: int = 2) -> None:
        self._store = store
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, max_workers), thread_name_prefix="bundlefeed-cleanup"
        )
        self._pending: set[Future[None]] = set()

    def submit(self, ref: StoredObjectRef) -> None:
        """Queue one removal attempt for *ref* and return immediately."""
        try:
            future = self._executor.submit(_remove_once, self._store, ref)
        except RuntimeError as exc:
            # Executor already shut down; the object stays orphaned.
            logger.warning("Cleanup of %s not scheduled: %s", ref.storage_path, exc)
            return
        self._pending.add(future)
        future.add_done_callback(self._pending.discard)
        logger.debug("Scheduled cleanup of %s", ref.storage_path)

    @property
    def pending(self) -> int:
        return len(self._pending)

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work; optionally wait for queued removals."""
        self._executor.shutdown(wait=wait)


class InlineCleanup:
    """Runs each removal synchronously in the caller's thread.

    Used by the CLI, where there is no response to protect, and by tests
    that assert on cleanup outcomes deterministically.
    """

    def __init__(self, store: ObjectStoreGateway) -> None:
        self._store = store

    def submit(self, ref: StoredObjectRef) -> None:
        _remove_once(self._store, ref)

    def shutdown(self, wait: bool = True) -> None:
        return None
