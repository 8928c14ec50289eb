"""Bucket snapshots and the before/after key diff."""

from __future__ import annotations

from dataclasses import dataclass
from typing import FrozenSet, Iterable, List, Sequence

from modules.services.storage_service import StorageObject


@dataclass(frozen=True, slots=True)
class SnapshotSet:
    """Immutable set of object keys captured at one instant."""

    keys: FrozenSet[str] = frozenset()

    @classmethod
    def capture(cls, objects: Iterable[StorageObject]) -> "SnapshotSet":
        return cls(frozenset(obj.key for obj in objects))

    def __contains__(self, key: object) -> bool:
        return key in self.keys

    def __len__(self) -> int:
        return len(self.keys)


def diff(before: SnapshotSet, after: Sequence[StorageObject]) -> List[StorageObject]:
    """Return the objects in ``after`` whose key was not present in ``before``.

    Keys that disappeared between the two listings are ignored; a key listed
    twice in ``after`` is reported once. Order follows ``after``.
    """
    seen: set[str] = set()
    created: List[StorageObject] = []
    for obj in after:
        if obj.key in before or obj.key in seen:
            continue
        seen.add(obj.key)
        created.append(obj)
    return created
