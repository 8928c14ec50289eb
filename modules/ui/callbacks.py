"""Callback implementations for the Gradio interface."""

from __future__ import annotations

import logging
import mimetypes
from pathlib import Path
from typing import Any, Callable, Iterator, List, Optional, Sequence, Tuple

from config.settings import AppConfig
from modules.errors import GenerationError
from modules.optimization.style_presets import StylePresetRegistry, resolve_size
from modules.pipelines.generation_session import (
    STATE_SEQUENCE,
    GenerationSession,
    SessionProgress,
    SessionState,
    format_elapsed,
)
from modules.services.history_service import GenerationHistoryService, HistoryEntry
from modules.services.settings_store import SettingsStore
from modules.services.storage_service import ObjectStoreClient, StorageObject
from modules.services.webhook_client import (
    BatchRequest,
    GenerationRequest,
    JobRequest,
    JobTriggerClient,
    RequestMode,
    SourceImage,
)
from modules.utils.image_utils import download_url

logger = logging.getLogger(__name__)

GalleryItems = List[Tuple[str, str]]
StoreFactory = Callable[[AppConfig], ObjectStoreClient]
TriggerFactory = Callable[[AppConfig], JobTriggerClient]


def _default_store_factory(config: AppConfig) -> ObjectStoreClient:
    return ObjectStoreClient(config.storage)


def _default_trigger_factory(config: AppConfig) -> JobTriggerClient:
    return JobTriggerClient(config)


def gallery_items(images: Sequence[StorageObject]) -> GalleryItems:
    return [(image.url, image.name) for image in images]


def download_links(images: Sequence[StorageObject]) -> str:
    lines = []
    for index, image in enumerate(images, start=1):
        filename = image.name or image.key or f"generated_image_{index}.png"
        lines.append(f"- [{filename}]({download_url(image.url, filename)})")
    return "\n".join(lines)


def render_progress(progress: SessionProgress) -> str:
    """Render a progress snapshot as markdown for the status panel."""
    elapsed = format_elapsed(progress.elapsed)
    if progress.state is SessionState.FAILED:
        message = progress.error.user_message() if progress.error else progress.message
        lines = [f"⚠️ {message}"]
    elif progress.state is SessionState.COMPLETE:
        count = len(progress.images)
        lines = [f"✅ {progress.message} {count} image(s) in {elapsed}."]
    else:
        step = STATE_SEQUENCE.index(progress.state) + 1
        lines = [f"**Step {step}/{len(STATE_SEQUENCE)}** {progress.message} ({elapsed})"]
    lines.extend(f"ℹ️ {notice}" for notice in progress.notices)
    if progress.state is SessionState.COMPLETE and progress.images:
        lines.append(download_links(progress.images))
    return "\n\n".join(lines)


def _read_source(path: Any, fallback_name: str) -> Optional[SourceImage]:
    if not path:
        return None
    file_path = Path(str(path))
    content_type = mimetypes.guess_type(file_path.name)[0] or "image/png"
    return SourceImage(
        data=file_path.read_bytes(),
        filename=file_path.name or fallback_name,
        content_type=content_type,
    )


def format_history(
    entries: Sequence[HistoryEntry],
    style_name: Callable[[str], str] = str,
) -> str:
    if not entries:
        return "No saved generations yet."
    blocks = []
    for entry in entries:
        created = entry.created_at.strftime("%Y-%m-%d %H:%M")
        parts = [f"**{entry.label[:50] or 'Untitled'}**", entry.kind.value]
        if entry.style:
            parts.append(style_name(entry.style))
        parts.extend([created, f"`{entry.id}`"])
        header = " · ".join(parts)
        blocks.append("\n".join([header, download_links(entry.images)]))
    return "\n\n---\n\n".join(blocks)


def build_callbacks(
    config: AppConfig,
    settings_store: Optional[SettingsStore] = None,
    history: Optional[GenerationHistoryService] = None,
    style_registry: Optional[StylePresetRegistry] = None,
    store_factory: Optional[StoreFactory] = None,
    trigger_factory: Optional[TriggerFactory] = None,
) -> dict[str, Any]:
    """Return a dictionary of Gradio callback functions."""

    registry = style_registry or StylePresetRegistry()
    make_store = store_factory or _default_store_factory
    make_trigger = trigger_factory or _default_trigger_factory

    def _session_config() -> AppConfig:
        # Settings are read once per action and passed down explicitly.
        if settings_store is None:
            return config
        return settings_store.apply(config)

    def _new_session() -> GenerationSession:
        session_config = _session_config()
        return GenerationSession(
            session_config,
            store=make_store(session_config),
            trigger=make_trigger(session_config),
            history=history,
        )

    def _stream(request: JobRequest) -> Iterator[tuple[GalleryItems, str, Optional[JobRequest]]]:
        session = _new_session()
        for progress in session.run(request):
            yield gallery_items(progress.images), render_progress(progress), request

    def _creativity(percent: Any) -> float:
        try:
            return float(percent) / 100.0
        except (TypeError, ValueError):
            return 0.7

    def on_generate_single(
        prompt: str,
        reference_1: Any,
        reference_2: Any,
        reference_3: Any,
        reference_urls: str,
        style_id: str,
        custom_style: str,
        size_id: str,
        custom_width: Any,
        custom_height: Any,
        creativity: Any,
        variations: Any,
        last_request: Optional[JobRequest] = None,
    ) -> Iterator[tuple[GalleryItems, str, Optional[JobRequest]]]:
        if not (prompt or "").strip():
            yield [], "⚠️ Please enter a prompt describing the image you want.", last_request
            return

        sources: List[SourceImage] = []
        for index, path in enumerate((reference_1, reference_2, reference_3), start=1):
            source = _read_source(path, f"reference_image_{index}.png")
            if source is not None:
                sources.append(source)
        for url in (reference_urls or "").splitlines():
            if url.strip():
                sources.append(SourceImage(url=url.strip()))
        if len(sources) > 3:
            yield [], "⚠️ Use at most 3 reference images.", last_request
            return

        width, height = resolve_size(size_id, custom_width, custom_height)
        request = GenerationRequest(
            prompt=prompt.strip(),
            style_preset=style_id or config.default_style_preset,
            style_suffix=registry.suffix_for(style_id, custom_style),
            width=width,
            height=height,
            creativity=_creativity(creativity),
            variations=int(variations or 2),
            images=tuple(sources),
            mode=RequestMode.MULTI_IMAGE if len(sources) > 1 else RequestMode.SINGLE,
        )
        yield from _stream(request)

    def on_generate_batch(
        product_image: Any,
        description: str,
        extra_prompt: str,
        style_id: str,
        custom_style: str,
        size_id: str,
        custom_width: Any,
        custom_height: Any,
        creativity: Any,
        last_request: Optional[JobRequest] = None,
    ) -> Iterator[tuple[GalleryItems, str, Optional[JobRequest]]]:
        source = _read_source(product_image, "product_image.png")
        if source is None or not (description or "").strip():
            yield [], "⚠️ Please upload an image and enter a product description.", last_request
            return

        width, height = resolve_size(size_id, custom_width, custom_height)
        request = BatchRequest(
            image=source,
            description=description.strip(),
            extra_prompt=(extra_prompt or "").strip(),
            style_preset=style_id or config.default_style_preset,
            style_suffix=registry.suffix_for(style_id, custom_style),
            width=width,
            height=height,
            creativity=_creativity(creativity),
        )
        yield from _stream(request)

    def on_retry(
        last_request: Optional[JobRequest],
    ) -> Iterator[tuple[GalleryItems, str, Optional[JobRequest]]]:
        if last_request is None:
            yield [], "⚠️ Nothing to retry yet.", None
            return
        yield from _stream(last_request)

    def on_list_bucket(prefix: str = "") -> tuple[GalleryItems, str]:
        store = make_store(_session_config())
        try:
            images = store.list(prefix=prefix or "", max_keys=config.gallery_max_keys)
        except GenerationError as exc:
            return [], f"⚠️ {exc.user_message()}"
        if not images:
            return [], "The bucket has no images yet."
        summary = f"{len(images)} image(s) in `{store.settings.bucket}`."
        return gallery_items(images), "\n\n".join([summary, download_links(images)])

    def on_history_refresh() -> tuple[str, str]:
        if history is None:
            return "History is disabled.", ""
        stats = history.stats()
        summary = (
            f"{stats['total_sets']} set(s), {stats['total_images']} image(s) "
            f"({stats['single_sets']} single, {stats['multi_image_sets']} multi-image, "
            f"{stats['batch_sets']} batch)"
        )
        return format_history(history.list(), registry.display_name), summary

    def on_history_delete(entry_id: str) -> tuple[str, str]:
        if history is not None and entry_id and not history.delete(entry_id.strip()):
            logger.info("History entry %s not found", entry_id)
        return on_history_refresh()

    def on_history_clear() -> tuple[str, str]:
        if history is not None:
            history.clear()
        return on_history_refresh()

    def on_load_settings() -> tuple[str, str, str, str, str, str]:
        effective = _session_config()
        return (
            effective.storage.access_key_id,
            effective.storage.secret_access_key,
            effective.storage.region,
            effective.storage.bucket,
            effective.webhooks.single_url,
            effective.webhooks.batch_url,
        )

    def on_save_settings(
        access_key_id: str,
        secret_access_key: str,
        region: str,
        bucket: str,
        single_webhook_url: str,
        batch_webhook_url: str,
    ) -> str:
        if settings_store is None:
            return "⚠️ Settings storage is not available."
        try:
            settings_store.save(
                {
                    "aws_access_key_id": access_key_id,
                    "aws_secret_access_key": secret_access_key,
                    "aws_region": region,
                    "aws_bucket": bucket,
                    "n8n_single_webhook_url": single_webhook_url,
                    "n8n_pdp_webhook_url": batch_webhook_url,
                }
            )
        except OSError as exc:
            logger.error("Error saving settings: %s", exc)
            return f"⚠️ Could not save settings: {exc}"
        return "✅ Settings saved."

    def on_clear_settings() -> str:
        if settings_store is not None:
            settings_store.clear()
        return "Settings cleared."

    def on_test_connection() -> str:
        store = make_store(_session_config())
        try:
            payload = store.list_payload(max_keys=config.list_max_keys)
        except GenerationError as exc:
            return f"⚠️ {exc.user_message()}"
        return f"✅ Connected to `{payload['bucket']}`, {payload['count']} object(s) visible."

    return {
        "on_generate_single": on_generate_single,
        "on_generate_batch": on_generate_batch,
        "on_retry": on_retry,
        "on_list_bucket": on_list_bucket,
        "on_history_refresh": on_history_refresh,
        "on_history_delete": on_history_delete,
        "on_history_clear": on_history_clear,
        "on_load_settings": on_load_settings,
        "on_save_settings": on_save_settings,
        "on_clear_settings": on_clear_settings,
        "on_test_connection": on_test_connection,
    }
