"""Snapshot capture and diff tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from modules.reconcile.snapshot import SnapshotSet, diff
from modules.services.storage_service import StorageObject

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def make_object(key: str, minutes: int = 0) -> StorageObject:
    return StorageObject(
        key=key,
        name=key.rsplit("/", 1)[-1],
        url=f"https://signed.example/{key}",
        last_modified=BASE_TIME + timedelta(minutes=minutes),
    )


def test_capture_collects_keys():
    snapshot = SnapshotSet.capture([make_object("a.png"), make_object("b.png")])

    assert len(snapshot) == 2
    assert "a.png" in snapshot
    assert "c.png" not in snapshot


def test_diff_returns_only_new_keys():
    before = SnapshotSet.capture([make_object("a.png"), make_object("b.png")])
    after = [make_object(key) for key in ("a.png", "b.png", "c.png", "d.png")]

    created = diff(before, after)

    assert [obj.key for obj in created] == ["c.png", "d.png"]


def test_diff_unchanged_bucket_is_empty():
    objects = [make_object("a.png"), make_object("b.png")]

    assert diff(SnapshotSet.capture(objects), objects) == []


def test_diff_tolerates_deleted_keys():
    before = SnapshotSet.capture([make_object("a.png"), make_object("gone.png")])
    after = [make_object("a.png"), make_object("new.png")]

    assert [obj.key for obj in diff(before, after)] == ["new.png"]


def test_diff_reports_duplicate_keys_once():
    after = [make_object("x.png", 1), make_object("x.png", 2), make_object("y.png")]

    created = diff(SnapshotSet(), after)

    assert [obj.key for obj in created] == ["x.png", "y.png"]


def test_diff_against_empty_snapshot_returns_everything():
    after = [make_object("a.png"), make_object("b.png")]

    assert diff(SnapshotSet(), after) == after
