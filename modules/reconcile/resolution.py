"""Pick the images a generation produced from two bucket listings.

Attribution is a heuristic. When the diff is empty we fall back to the most
recent objects in the bucket, which under concurrent sessions may belong to
somebody else's job. Resolving that properly needs the workflow to tag its
uploads with a request id, which happens outside this application.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Sequence

from modules.errors import EmptyBucketError
from modules.services.storage_service import StorageObject, sort_newest_first


class Attribution(str, Enum):
    CONFIRMED = "confirmed"  # objects are new since the pre-trigger snapshot
    UNCERTAIN = "uncertain"  # recency fallback, may include foreign objects


@dataclass(slots=True)
class Resolution:
    """Resolved result set and how much we trust it."""

    images: List[StorageObject]
    attribution: Attribution

    @property
    def uncertain(self) -> bool:
        return self.attribution is Attribution.UNCERTAIN


def resolve(
    diff_result: Sequence[StorageObject],
    post_snapshot: Sequence[StorageObject],
    desired_count: int,
) -> Resolution:
    """Apply the new-objects-then-most-recent fallback chain."""
    if desired_count < 1:
        raise ValueError("desired_count must be at least 1")

    if diff_result:
        return Resolution(
            images=sort_newest_first(list(diff_result))[:desired_count],
            attribution=Attribution.CONFIRMED,
        )
    if post_snapshot:
        return Resolution(
            images=sort_newest_first(list(post_snapshot))[:desired_count],
            attribution=Attribution.UNCERTAIN,
        )
    raise EmptyBucketError(
        "No images found in the bucket. Make sure the workflow uploads its results."
    )
