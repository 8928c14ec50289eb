"""Client for the image-generation workflow webhooks."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

import requests

from config.settings import AppConfig
from modules.errors import ConfigError, InvalidRequestError, ParseError, RemoteError
from modules.utils.image_utils import is_remote_url

logger = logging.getLogger(__name__)

MAX_SOURCE_IMAGES = 3
BATCH_IMAGE_COUNT = 6
URL_FIELDS = ("Location", "url", "s3Url", "publicUrl")
KEY_FIELDS = ("Key", "key", "fileName", "name")


class RequestMode(str, Enum):
    SINGLE = "single"
    MULTI_IMAGE = "multi-image"


@dataclass(frozen=True, slots=True)
class SourceImage:
    """One reference-image slot: uploaded bytes or a URL to fetch."""

    data: Optional[bytes] = None
    url: Optional[str] = None
    filename: str = "reference_image.png"
    content_type: str = "image/png"

    def is_empty(self) -> bool:
        return not self.data and not self.url


def clamp_creativity(value: float) -> float:
    return max(0.1, min(float(value), 1.0))


@dataclass(frozen=True, slots=True)
class GenerationRequest:
    """Parameters for a single or multi-image generation job."""

    prompt: str
    style_preset: str = "ecommerce"
    style_suffix: str = ""
    width: int = 1024
    height: int = 1024
    creativity: float = 0.7
    variations: int = 2
    images: Tuple[SourceImage, ...] = ()
    webhook_url: str = ""
    mode: RequestMode = RequestMode.SINGLE

    def __post_init__(self) -> None:
        filled = tuple(image for image in self.images if not image.is_empty())
        if len(filled) > MAX_SOURCE_IMAGES:
            raise ValueError(f"At most {MAX_SOURCE_IMAGES} reference images are supported")
        object.__setattr__(self, "images", filled)
        object.__setattr__(self, "creativity", clamp_creativity(self.creativity))
        object.__setattr__(self, "variations", max(1, int(self.variations)))

    @property
    def full_prompt(self) -> str:
        if self.style_suffix:
            return f"{self.prompt}. {self.style_suffix}"
        return self.prompt

    @property
    def expected_count(self) -> int:
        return self.variations

    @property
    def label(self) -> str:
        return self.prompt


@dataclass(frozen=True, slots=True)
class BatchRequest:
    """Parameters for the fixed six-image product listing job."""

    image: SourceImage
    description: str
    extra_prompt: str = ""
    style_preset: str = "ecommerce"
    style_suffix: str = ""
    width: int = 1024
    height: int = 1024
    creativity: float = 0.7
    webhook_url: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "creativity", clamp_creativity(self.creativity))

    @property
    def expected_count(self) -> int:
        return BATCH_IMAGE_COUNT

    @property
    def label(self) -> str:
        return self.description


JobRequest = Union[GenerationRequest, BatchRequest]


@dataclass(slots=True)
class PreparedJob:
    """Multipart payload ready to be posted."""

    url: str
    data: Dict[str, str]
    files: List[Tuple[str, Tuple[str, bytes, str]]] = field(default_factory=list)


@dataclass(slots=True)
class JobImage:
    url: str
    key: str
    name: str


# Observed response shapes -----------------------------------------------------
@dataclass(slots=True)
class BareList:
    items: List[Dict[str, Any]]


@dataclass(slots=True)
class ImagesWrapper:
    items: List[Dict[str, Any]]


@dataclass(slots=True)
class SingleObject:
    item: Dict[str, Any]


@dataclass(slots=True)
class CountWrapper:
    count: int
    items: List[Dict[str, Any]]


@dataclass(slots=True)
class Unrecognised:
    payload: Any


ResponseShape = Union[BareList, ImagesWrapper, SingleObject, CountWrapper, Unrecognised]


@dataclass(slots=True)
class TriggerResult:
    """Outcome of a webhook call that returned structured data."""

    images: List[JobImage]
    shape: str


def _dicts(items: Any) -> List[Dict[str, Any]]:
    return [item for item in items if isinstance(item, dict)]


def _count(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def parse_response(payload: Any) -> ResponseShape:
    """Classify a decoded webhook response into one of the known shapes."""
    if isinstance(payload, list):
        return BareList(_dicts(payload))
    if not isinstance(payload, dict):
        return Unrecognised(payload)
    images = payload.get("images")
    if isinstance(images, list):
        if payload.get("success") and _count(payload.get("count")):
            return CountWrapper(count=_count(payload["count"]), items=_dicts(images))
        return ImagesWrapper(_dicts(images))
    if any(payload.get(name) for name in URL_FIELDS):
        return SingleObject(payload)
    if payload.get("success") and _count(payload.get("count")):
        return CountWrapper(count=_count(payload["count"]), items=[])
    return Unrecognised(payload)


def _first(item: Dict[str, Any], names: Tuple[str, ...]) -> str:
    for name in names:
        value = item.get(name)
        if value:
            return str(value)
    return ""


def _to_job_image(item: Dict[str, Any], default_name: str) -> Optional[JobImage]:
    url = _first(item, URL_FIELDS)
    if not url:
        return None
    key = _first(item, KEY_FIELDS)
    return JobImage(url=url, key=key, name=key or default_name)


def normalize(shape: ResponseShape) -> List[JobImage]:
    """Flatten any known response shape into ``JobImage`` records."""
    match shape:
        case BareList(items=items) | ImagesWrapper(items=items) | CountWrapper(items=items):
            images = (
                _to_job_image(item, f"variant_{index}.png")
                for index, item in enumerate(items, start=1)
            )
            return [image for image in images if image is not None]
        case SingleObject(item=item):
            image = _to_job_image(item, "generated_image.png")
            return [image] if image is not None else []
        case _:
            return []


class JobTriggerClient:
    """Post generation jobs to the workflow webhooks.

    Each ``send`` enqueues exactly one remote job. No idempotency key is
    attached, so sending the same payload twice produces two jobs.
    """

    def __init__(self, config: AppConfig, session: Optional[requests.Session] = None) -> None:
        self.config = config
        self._session = session or requests.Session()

    def resolve_url(self, request: JobRequest) -> str:
        if request.webhook_url:
            return request.webhook_url
        if isinstance(request, BatchRequest):
            default = self.config.webhooks.batch_url
        else:
            default = self.config.webhooks.single_url
        if not default:
            raise ConfigError("Webhook URL not configured.")
        return default

    def prepare(self, request: JobRequest) -> PreparedJob:
        """Build the multipart payload for a request."""
        url = self.resolve_url(request)
        if isinstance(request, BatchRequest):
            return self._prepare_batch(url, request)
        return self._prepare_generation(url, request)

    def send(self, job: PreparedJob) -> TriggerResult:
        """Post a prepared job and block until the workflow answers."""
        logger.info("Sending job to %s (%d file(s))", job.url, len(job.files))
        try:
            response = self._session.post(
                job.url,
                data=job.data,
                files=job.files or None,
                timeout=self.config.webhooks.timeout_seconds,
            )
        except requests.RequestException as exc:
            logger.error("Webhook request failed: %s", exc)
            raise RemoteError(f"Workflow request failed: {exc}") from exc

        logger.info("Workflow response status: %s", response.status_code)
        if not response.ok:
            logger.error("Workflow error response: %s", response.text[:500])
            raise RemoteError(
                "Workflow error",
                status_code=response.status_code,
                body=response.text,
            )

        text = response.text
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            logger.warning("Workflow response is not JSON: %r", text[:100])
            raise ParseError("Workflow response is not valid JSON", raw=text) from exc

        shape = parse_response(payload)
        images = normalize(shape)
        logger.info("Normalized %d image(s) from %s response", len(images), type(shape).__name__)
        return TriggerResult(images=images, shape=type(shape).__name__)

    def trigger(self, request: JobRequest) -> TriggerResult:
        return self.send(self.prepare(request))

    # Internal helpers ---------------------------------------------------------
    def _prepare_generation(self, url: str, request: GenerationRequest) -> PreparedJob:
        data = {
            "prompt": request.full_prompt,
            "raw_prompt": request.prompt,
            "style_preset": request.style_preset,
            "style_suffix": request.style_suffix,
            "width": str(request.width),
            "height": str(request.height),
            "creativity": str(request.creativity),
            "variations": str(request.variations),
            "image_count": str(len(request.images)),
        }
        files: List[Tuple[str, Tuple[str, bytes, str]]] = []
        numbered = request.mode is RequestMode.MULTI_IMAGE or len(request.images) > 1
        for index, source in enumerate(request.images, start=1):
            suffix = str(index) if numbered else ""
            payload = self._load_source(source)
            if payload is not None:
                files.append((f"image{suffix}", payload))
            elif source.url:
                data[f"image_url{suffix}"] = source.url
        return PreparedJob(url=url, data=data, files=files)

    def _prepare_batch(self, url: str, request: BatchRequest) -> PreparedJob:
        payload = self._load_source(request.image)
        if payload is None:
            raise InvalidRequestError("Could not load the product image for the batch job.")
        data = {
            "raw_description": request.description,
            "extra_prompt": request.extra_prompt,
            "style_preset": request.style_preset,
            "style_suffix": request.style_suffix,
            "width": str(request.width),
            "height": str(request.height),
            "creativity": str(request.creativity),
        }
        return PreparedJob(url=url, data=data, files=[("image", payload)])

    def _load_source(self, source: SourceImage) -> Optional[Tuple[str, bytes, str]]:
        """Return a multipart file tuple, fetching URL-only slots.

        A URL that cannot be fetched yields None so the caller can pass the
        URL through to the workflow instead.
        """
        if source.data:
            return (source.filename, source.data, source.content_type)
        if not is_remote_url(source.url):
            return None
        try:
            response = self._session.get(source.url, timeout=60)
        except requests.RequestException as exc:
            logger.warning("Could not fetch reference image %s: %s", source.url, exc)
            return None
        if not response.ok:
            logger.warning("Failed to fetch reference image: %s", response.status_code)
            return None
        content_type = response.headers.get("content-type") or source.content_type
        logger.debug("Reference image from URL: %d bytes", len(response.content))
        return (source.filename, response.content, content_type)
