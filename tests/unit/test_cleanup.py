"""Tests for best-effort cleanup — one attempt, never raises, never blocks."""

from __future__ import annotations

from bundlefeed.core.cleanup import BackgroundCleanup, InlineCleanup
from bundlefeed.models.storage import StoredObjectRef

_REF = StoredObjectRef(bucket="ipas", key="old.ipa")


class TestInlineCleanup:
    def test_removes_object(self, spy_store):
        spy_store.put("ipas", "old.ipa", b"x", 1, "x/y")
        InlineCleanup(spy_store).submit(_REF)
        assert spy_store.exists("ipas", "old.ipa") is False
        assert spy_store.calls_of("remove") == [("remove", "ipas", "old.ipa")]

    def test_failure_logged_not_raised(self, spy_store, caplog):
        spy_store.fail_remove = True
        with caplog.at_level("WARNING"):
            InlineCleanup(spy_store).submit(_REF)
        assert "Cleanup of /ipas/old.ipa failed" in caplog.text

    def test_single_attempt_on_failure(self, spy_store):
        spy_store.fail_remove = True
        InlineCleanup(spy_store).submit(_REF)
        assert len(spy_store.calls_of("remove")) == 1


class TestBackgroundCleanup:
    def test_removes_after_shutdown_drains(self, spy_store):
        spy_store.put("ipas", "old.ipa", b"x", 1, "x/y")
        scheduler = BackgroundCleanup(spy_store, max_workers=1)
        scheduler.submit(_REF)
        scheduler.shutdown(wait=True)
        assert spy_store.exists("ipas", "old.ipa") is False
        assert scheduler.pending == 0

    def test_failure_does_not_propagate(self, spy_store):
        spy_store.fail_remove = True
        scheduler = BackgroundCleanup(spy_store, max_workers=1)
        scheduler.submit(_REF)
        scheduler.shutdown(wait=True)
        assert len(spy_store.calls_of("remove")) == 1

    def test_submit_after_shutdown_is_dropped(self, spy_store, caplog):
        scheduler = BackgroundCleanup(spy_store)
        scheduler.shutdown(wait=True)
        with caplog.at_level("WARNING"):
            scheduler.submit(_REF)
        assert spy_store.calls_of("remove") == []
        assert "not scheduled" in caplog.text
