"""Generation history tracking."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from modules.services.storage_service import StorageObject

logger = logging.getLogger(__name__)

MAX_LABEL_LENGTH = 200


class HistoryKind(str, Enum):
    SINGLE = "single"
    MULTI_IMAGE = "multi-image"
    BATCH = "batch"


@dataclass(slots=True)
class HistoryEntry:
    """A completed generation and the images attributed to it."""

    id: str
    kind: HistoryKind
    label: str
    images: List[StorageObject]
    created_at: datetime
    style: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "label": self.label,
            "images": [image.to_dict() for image in self.images],
            "createdAt": self.created_at.isoformat(),
            "style": self.style,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoryEntry":
        return cls(
            id=str(data["id"]),
            kind=HistoryKind(data.get("kind", HistoryKind.SINGLE.value)),
            label=str(data.get("label", "")),
            images=[StorageObject.from_dict(item) for item in data.get("images", [])],
            created_at=datetime.fromisoformat(data["createdAt"]),
            style=str(data.get("style", "")),
        )


class GenerationHistoryService:
    """JSON-backed, newest-first history capped at ``max_entries``.

    Eviction is FIFO by insertion order: once full, each new entry pushes
    out the oldest one.
    """

    def __init__(self, history_path: Path, max_entries: int = 50) -> None:
        self.history_path = Path(history_path)
        self.max_entries = max_entries

    def record(
        self,
        kind: HistoryKind,
        label: str,
        images: Sequence[StorageObject],
        style: str = "",
    ) -> HistoryEntry:
        """Create an entry for a finished generation and persist it."""
        now = datetime.now(timezone.utc)
        entry = HistoryEntry(
            id=str(int(time.time() * 1000)),
            kind=kind,
            label=(label or "")[:MAX_LABEL_LENGTH],
            images=list(images),
            created_at=now,
            style=style,
        )
        return self.add(entry)

    def add(self, entry: HistoryEntry) -> HistoryEntry:
        """Insert an entry at the front and evict beyond the cap."""
        entry.label = entry.label[:MAX_LABEL_LENGTH]
        entries = self._read()
        entries.insert(0, entry)
        del entries[self.max_entries:]
        self._write(entries)
        return entry

    def list(self, limit: Optional[int] = None) -> List[HistoryEntry]:
        """Return entries, newest first."""
        entries = self._read()
        if limit is not None:
            return entries[:limit]
        return entries

    def get(self, entry_id: str) -> Optional[HistoryEntry]:
        for entry in self._read():
            if entry.id == entry_id:
                return entry
        return None

    def delete(self, entry_id: str) -> bool:
        entries = self._read()
        remaining = [entry for entry in entries if entry.id != entry_id]
        if len(remaining) == len(entries):
            return False
        self._write(remaining)
        return True

    def clear(self) -> None:
        if self.history_path.exists():
            self.history_path.unlink()

    def stats(self) -> Dict[str, int]:
        entries = self._read()
        counts = {kind: 0 for kind in HistoryKind}
        for entry in entries:
            counts[entry.kind] += 1
        return {
            "total_sets": len(entries),
            "single_sets": counts[HistoryKind.SINGLE],
            "multi_image_sets": counts[HistoryKind.MULTI_IMAGE],
            "batch_sets": counts[HistoryKind.BATCH],
            "total_images": sum(len(entry.images) for entry in entries),
        }

    # Internal helpers ---------------------------------------------------------
    def _read(self) -> List[HistoryEntry]:
        if not self.history_path.exists():
            return []
        try:
            raw = json.loads(self.history_path.read_text(encoding="utf-8"))
            return [HistoryEntry.from_dict(item) for item in raw]
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.error("Error reading history %s: %s", self.history_path, exc)
            self._set_aside()
            return []

    def _set_aside(self) -> None:
        backup = self.history_path.with_name(self.history_path.name + ".corrupt")
        try:
            self.history_path.replace(backup)
        except OSError as exc:
            logger.warning("Could not back up unreadable history %s: %s", self.history_path, exc)
            return
        logger.warning("Unreadable history moved to %s; starting a new one", backup)

    def _write(self, entries: List[HistoryEntry]) -> None:
        self.history_path.parent.mkdir(parents=True, exist_ok=True)
        payload = [entry.to_dict() for entry in entries]
        self.history_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
