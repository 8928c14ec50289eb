"""Snapshot, trigger, re-snapshot and resolve: one generation session."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional

from config.settings import AppConfig
from modules.errors import GenerationError, NoPreviousRequestError, ParseError
from modules.reconcile.resolution import Resolution, resolve
from modules.reconcile.snapshot import SnapshotSet, diff
from modules.services.history_service import GenerationHistoryService, HistoryKind
from modules.services.storage_service import ObjectStoreClient, StorageObject
from modules.services.webhook_client import (
    BatchRequest,
    JobImage,
    JobRequest,
    JobTriggerClient,
    RequestMode,
)

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    SNAPSHOTTING = "snapshotting"
    TRIGGERING = "triggering"
    AWAITING_REMOTE = "awaiting_remote"
    RESNAPSHOTTING = "resnapshotting"
    RESOLVING = "resolving"
    COMPLETE = "complete"
    FAILED = "failed"


STATE_MESSAGES = {
    SessionState.IDLE: "Ready.",
    SessionState.SNAPSHOTTING: "Checking existing images in storage...",
    SessionState.TRIGGERING: "Preparing the generation request...",
    SessionState.AWAITING_REMOTE: "Generating images, this can take a few minutes...",
    SessionState.RESNAPSHOTTING: "Fetching new images from storage...",
    SessionState.RESOLVING: "Matching generated images...",
    SessionState.COMPLETE: "All images ready!",
    SessionState.FAILED: "Generation failed.",
}

# Order used for progress rendering; FAILED is terminal and off the main path.
STATE_SEQUENCE = (
    SessionState.SNAPSHOTTING,
    SessionState.TRIGGERING,
    SessionState.AWAITING_REMOTE,
    SessionState.RESNAPSHOTTING,
    SessionState.RESOLVING,
    SessionState.COMPLETE,
)


@dataclass(slots=True)
class SessionProgress:
    """Snapshot of the session handed to the UI after each transition."""

    state: SessionState
    message: str
    elapsed: float = 0.0
    resolution: Optional[Resolution] = None
    error: Optional[GenerationError] = None
    notices: List[str] = field(default_factory=list)
    job_images: List[JobImage] = field(default_factory=list)

    @property
    def finished(self) -> bool:
        return self.state in (SessionState.COMPLETE, SessionState.FAILED)

    @property
    def images(self) -> List[StorageObject]:
        return self.resolution.images if self.resolution else []


def format_elapsed(seconds: float) -> str:
    whole = int(seconds)
    minutes, secs = divmod(whole, 60)
    return f"{minutes}m {secs}s" if minutes else f"{secs}s"


def history_kind(request: JobRequest) -> HistoryKind:
    if isinstance(request, BatchRequest):
        return HistoryKind.BATCH
    if request.mode is RequestMode.MULTI_IMAGE:
        return HistoryKind.MULTI_IMAGE
    return HistoryKind.SINGLE


class GenerationSession:
    """Run one generation end to end as a strictly sequential state machine.

    ``run`` is a generator that yields a ``SessionProgress`` on every state
    change, so callers can render progress between the blocking network
    calls. Errors end the run in ``FAILED``; nothing is retried
    automatically. ``retry`` replays the last request object unchanged.
    """

    def __init__(
        self,
        config: AppConfig,
        store: ObjectStoreClient,
        trigger: JobTriggerClient,
        history: Optional[GenerationHistoryService] = None,
    ) -> None:
        self.config = config
        self.store = store
        self.trigger = trigger
        self.history = history
        self.state = SessionState.IDLE
        self.last_request: Optional[JobRequest] = None
        self.last_progress: Optional[SessionProgress] = None
        self._started = 0.0

    def run(self, request: JobRequest) -> Iterator[SessionProgress]:
        """Execute the session for ``request``, yielding each transition."""
        self.last_request = request
        self._started = time.monotonic()
        notices: List[str] = []
        job_images: List[JobImage] = []
        max_keys = self.config.list_max_keys

        try:
            yield self._transition(SessionState.SNAPSHOTTING)
            before = SnapshotSet.capture(self.store.list(max_keys=max_keys))
            logger.info("Objects in storage before generation: %d", len(before))

            yield self._transition(SessionState.TRIGGERING)
            job = self.trigger.prepare(request)

            yield self._transition(SessionState.AWAITING_REMOTE)
            try:
                job_images = self.trigger.send(job).images
            except ParseError as exc:
                logger.warning("Falling back to storage polling: %s", exc)
                notices.append(exc.user_message())

            yield self._transition(SessionState.RESNAPSHOTTING, notices=notices)
            after = self.store.list(max_keys=max_keys)

            yield self._transition(SessionState.RESOLVING, notices=notices)
            created = diff(before, after)
            logger.info("Objects after generation: %d, new: %d", len(after), len(created))
            resolution = resolve(created, after, request.expected_count)
        except GenerationError as exc:
            logger.error("Generation failed in %s: %s", self.state.value, exc)
            yield self._transition(SessionState.FAILED, error=exc, notices=notices)
            return
        except Exception as exc:
            logger.exception("Unexpected error in %s", self.state.value)
            error = GenerationError(f"Unexpected error: {exc}")
            yield self._transition(SessionState.FAILED, error=error, notices=notices)
            return

        if resolution.uncertain:
            notices.append("No new images were detected; showing the most recent images in storage.")
        else:
            self._persist(request, resolution)

        yield self._transition(
            SessionState.COMPLETE,
            resolution=resolution,
            notices=notices,
            job_images=job_images,
        )

    def retry(self) -> Iterator[SessionProgress]:
        """Replay the last request verbatim."""
        if self.last_request is None:
            raise NoPreviousRequestError("There is no previous request to retry.")
        return self.run(self.last_request)

    def execute(self, request: JobRequest) -> SessionProgress:
        """Run to completion and return the terminal progress."""
        progress: Optional[SessionProgress] = None
        for progress in self.run(request):
            pass
        assert progress is not None
        return progress

    # Internal helpers ---------------------------------------------------------
    def _transition(self, state: SessionState, **details) -> SessionProgress:
        self.state = state
        notices = details.pop("notices", [])
        progress = SessionProgress(
            state=state,
            message=STATE_MESSAGES[state],
            elapsed=time.monotonic() - self._started,
            notices=list(notices),
            **details,
        )
        self.last_progress = progress
        return progress

    def _persist(self, request: JobRequest, resolution: Resolution) -> None:
        if self.history is None:
            return
        try:
            self.history.record(
                kind=history_kind(request),
                label=request.label,
                images=resolution.images,
                style=request.style_preset,
            )
        except OSError as exc:
            logger.error("Error saving to history: %s", exc)
