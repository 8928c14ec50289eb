"""GenerationSession state machine tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
import requests

from config.settings import AppConfig, WebhookSettings
from modules.errors import (
    ConfigError,
    EmptyBucketError,
    GenerationError,
    InvalidRequestError,
    NoPreviousRequestError,
    ParseError,
    RemoteError,
)
from modules.pipelines.generation_session import (
    GenerationSession,
    SessionState,
    format_elapsed,
    history_kind,
)
from modules.reconcile.resolution import Attribution
from modules.services.history_service import GenerationHistoryService, HistoryKind
from modules.services.storage_service import StorageObject
from modules.services.webhook_client import (
    BatchRequest,
    GenerationRequest,
    JobImage,
    JobTriggerClient,
    PreparedJob,
    RequestMode,
    SourceImage,
    TriggerResult,
)

BASE_TIME = datetime(2024, 6, 1, tzinfo=timezone.utc)


def make_object(key: str, minutes: int) -> StorageObject:
    return StorageObject(key=key, name=key, url=f"https://signed/{key}", last_modified=BASE_TIME + timedelta(minutes=minutes))


class DummyStore:
    """Returns a scripted sequence of listings."""

    def __init__(self, *listings, error: Optional[Exception] = None) -> None:
        self.listings = list(listings)
        self.error = error
        self.calls = 0

    def list(self, prefix: str = "", max_keys: int = 100):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.listings.pop(0)


class DummyTrigger:
    """Captures prepared jobs; optionally fails on send."""

    def __init__(self, error: Optional[Exception] = None, images=None) -> None:
        self.error = error
        self.images = images or []
        self.prepared: list = []
        self.sent = 0

    def prepare(self, request):
        self.prepared.append(request)
        return PreparedJob(url="https://hooks.example", data={})

    def send(self, job):
        self.sent += 1
        if self.error is not None:
            raise self.error
        return TriggerResult(images=self.images, shape="BareList")


def build_session(store, trigger, history=None) -> GenerationSession:
    return GenerationSession(AppConfig(), store=store, trigger=trigger, history=history)


def test_states_are_visited_in_order(tmp_path):
    before = [make_object("a.png", 0), make_object("b.png", 1)]
    after = before + [make_object("c.png", 5), make_object("d.png", 6)]
    history = GenerationHistoryService(tmp_path / "history.json")
    session = build_session(DummyStore(before, after), DummyTrigger(), history)

    progress = list(session.run(GenerationRequest(prompt="sneaker", variations=2)))

    assert [item.state for item in progress] == [
        SessionState.SNAPSHOTTING,
        SessionState.TRIGGERING,
        SessionState.AWAITING_REMOTE,
        SessionState.RESNAPSHOTTING,
        SessionState.RESOLVING,
        SessionState.COMPLETE,
    ]
    final = progress[-1]
    assert [image.key for image in final.images] == ["d.png", "c.png"]
    assert final.resolution.attribution is Attribution.CONFIRMED
    assert session.state is SessionState.COMPLETE

    [entry] = history.list()
    assert entry.kind is HistoryKind.SINGLE
    assert entry.label == "sneaker"
    assert [image.key for image in entry.images] == ["d.png", "c.png"]


def test_fallback_result_is_shown_but_not_saved(tmp_path):
    listing = [make_object("old.png", 0), make_object("older.png", -5), make_object("newest.png", 2)]
    history = GenerationHistoryService(tmp_path / "history.json")
    session = build_session(DummyStore(listing, listing), DummyTrigger(), history)

    final = session.execute(GenerationRequest(prompt="x", variations=2))

    assert final.state is SessionState.COMPLETE
    assert final.resolution.uncertain
    assert [image.key for image in final.images] == ["newest.png", "old.png"]
    assert final.notices
    assert history.list() == []


def test_empty_bucket_fails_terminally():
    session = build_session(DummyStore([], []), DummyTrigger())

    final = session.execute(GenerationRequest(prompt="x"))

    assert final.state is SessionState.FAILED
    assert isinstance(final.error, EmptyBucketError)
    assert final.finished


def test_parse_error_is_downgraded_to_notice():
    before = [make_object("a.png", 0)]
    after = before + [make_object("new.png", 3)]
    trigger = DummyTrigger(error=ParseError("not json", raw="OK"))
    session = build_session(DummyStore(before, after), trigger)

    final = session.execute(GenerationRequest(prompt="x"))

    assert final.state is SessionState.COMPLETE
    assert [image.key for image in final.images] == ["new.png"]
    assert any("check storage" in notice for notice in final.notices)


def test_remote_error_aborts_before_resnapshot():
    store = DummyStore([make_object("a.png", 0)], [])
    trigger = DummyTrigger(error=RemoteError("Workflow error", status_code=500, body="boom"))
    session = build_session(store, trigger)

    progress = list(session.run(GenerationRequest(prompt="x")))

    assert progress[-1].state is SessionState.FAILED
    assert isinstance(progress[-1].error, RemoteError)
    assert SessionState.RESNAPSHOTTING not in [item.state for item in progress]
    assert store.calls == 1
    assert trigger.sent == 1


def test_config_error_from_snapshot_fails_without_triggering():
    trigger = DummyTrigger()
    session = build_session(DummyStore(error=ConfigError("no credentials")), trigger)

    final = session.execute(GenerationRequest(prompt="x"))

    assert final.state is SessionState.FAILED
    assert isinstance(final.error, ConfigError)
    assert trigger.prepared == []


def test_unexpected_error_ends_in_failed_state():
    store = DummyStore([make_object("a.png", 0)], [])
    session = build_session(store, DummyTrigger(error=ValueError("invalid literal for int()")))

    progress = list(session.run(GenerationRequest(prompt="x")))

    assert progress[-1].state is SessionState.FAILED
    assert type(progress[-1].error) is GenerationError
    assert "invalid literal" in progress[-1].error.user_message()
    assert session.state is SessionState.FAILED


class UnreachableSession:
    """requests session whose downloads always fail."""

    def get(self, url, timeout=None):
        raise requests.ConnectionError("unreachable")


def test_unloadable_batch_image_fails_before_sending():
    config = AppConfig(webhooks=WebhookSettings(batch_url="https://hooks.example/pdp"))
    trigger = JobTriggerClient(config, session=UnreachableSession())
    session = GenerationSession(config, store=DummyStore([make_object("a.png", 0)]), trigger=trigger)
    request = BatchRequest(image=SourceImage(url="https://cdn.example/gone.png"), description="Mug")

    final = session.execute(request)

    assert final.state is SessionState.FAILED
    assert isinstance(final.error, InvalidRequestError)
    assert session.state is SessionState.FAILED


def test_job_images_are_reported_alongside_resolution():
    before = [make_object("a.png", 0)]
    after = before + [make_object("b.png", 1)]
    job_images = [JobImage(url="https://x/b.png", key="b.png", name="b.png")]
    session = build_session(DummyStore(before, after), DummyTrigger(images=job_images))

    final = session.execute(GenerationRequest(prompt="x"))

    assert final.job_images == job_images


def test_retry_replays_last_request_verbatim():
    listing = [make_object("a.png", 0)]
    trigger = DummyTrigger()
    session = build_session(DummyStore(listing, listing, listing, listing), trigger)
    request = GenerationRequest(prompt="replay me", variations=1)

    list(session.run(request))
    list(session.retry())

    assert trigger.prepared == [request, request]
    assert trigger.prepared[1] is request


def test_retry_without_previous_request():
    session = build_session(DummyStore(), DummyTrigger())

    with pytest.raises(NoPreviousRequestError):
        session.retry()


def test_batch_request_takes_six_images(tmp_path):
    before = [make_object("seed.png", 0)]
    created = [make_object(f"pdp_{index}.png", index + 1) for index in range(7)]
    history = GenerationHistoryService(tmp_path / "history.json")
    session = build_session(DummyStore(before, before + created), DummyTrigger(), history)
    request = BatchRequest(image=SourceImage(data=b"img"), description="Protein powder")

    final = session.execute(request)

    assert len(final.images) == 6
    assert final.images[0].key == "pdp_6.png"
    assert history.list()[0].kind is HistoryKind.BATCH


def test_history_kind_and_elapsed_format():
    assert history_kind(GenerationRequest(prompt="x", mode=RequestMode.MULTI_IMAGE)) is HistoryKind.MULTI_IMAGE
    assert history_kind(GenerationRequest(prompt="x")) is HistoryKind.SINGLE
    assert format_elapsed(5.7) == "5s"
    assert format_elapsed(125) == "2m 5s"
