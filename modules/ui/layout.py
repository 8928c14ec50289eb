"""Gradio layout composition for generation, galleries and settings."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional, Sequence

import gradio as gr

from config.settings import AppConfig
from modules.optimization.style_presets import (
    CUSTOM_PRESET_ID,
    IMAGE_SIZES,
    MAX_DIMENSION,
    MIN_DIMENSION,
    StylePresetRegistry,
)
from modules.services.history_service import GenerationHistoryService
from modules.services.settings_store import SettingsStore
from modules.ui.callbacks import build_callbacks


def _load_style_registry(config: AppConfig) -> StylePresetRegistry:
    registry = StylePresetRegistry()
    registry.load_from_file(Path(config.assets_dir) / "styles.json")
    return registry


def _style_choices(registry: StylePresetRegistry) -> Sequence[tuple[str, str]]:
    return [(f"{preset.name} - {preset.description}", preset.id) for preset in registry.list_presets()]


def _size_choices() -> Sequence[tuple[str, str]]:
    return [(size.label, size.id) for size in IMAGE_SIZES]


def _style_and_size_controls(registry: StylePresetRegistry, default_style: str) -> dict[str, Any]:
    """Create the style, size and creativity inputs shared by both generators."""
    style = gr.Dropdown(label="Style Preset", choices=_style_choices(registry), value=default_style)
    custom_style = gr.Textbox(
        label="Custom Style",
        lines=2,
        placeholder="e.g. Vintage polaroid look, soft focus, nostalgic colors",
        visible=default_style == CUSTOM_PRESET_ID,
    )
    style.change(
        fn=lambda value: gr.update(visible=value == CUSTOM_PRESET_ID),
        inputs=style,
        outputs=custom_style,
    )
    size = gr.Radio(label="Image Size", choices=_size_choices(), value=IMAGE_SIZES[0].id)
    with gr.Row(visible=False) as custom_size_row:
        width = gr.Number(label="Width", value=1024, minimum=MIN_DIMENSION, maximum=MAX_DIMENSION, precision=0)
        height = gr.Number(label="Height", value=1024, minimum=MIN_DIMENSION, maximum=MAX_DIMENSION, precision=0)
    size.change(
        fn=lambda value: gr.update(visible=value == "custom"),
        inputs=size,
        outputs=custom_size_row,
    )
    creativity = gr.Slider(
        label="Creativity (%)",
        minimum=10,
        maximum=100,
        step=5,
        value=70,
        info="Conservative to creative",
    )
    return {
        "style": style,
        "custom_style": custom_style,
        "size": size,
        "width": width,
        "height": height,
        "creativity": creativity,
    }


def build_app(
    config: AppConfig,
    settings_store: Optional[SettingsStore] = None,
    history: Optional[GenerationHistoryService] = None,
) -> Any:
    """Compose and return the Gradio application."""
    settings_store = settings_store or SettingsStore(config.settings_path)
    history = history or GenerationHistoryService(config.history_path, config.max_history_entries)
    style_registry = _load_style_registry(config)

    callbacks_map = build_callbacks(
        config,
        settings_store=settings_store,
        history=history,
        style_registry=style_registry,
    )

    with gr.Blocks(title="Product Image Studio") as demo:
        gr.Markdown("## Product Image Studio")

        # Single / multi-image generation
        with gr.Tab("Single Image"):
            single_state = gr.State(None)
            with gr.Row():
                with gr.Column():
                    prompt = gr.Textbox(
                        label="Prompt",
                        lines=4,
                        placeholder="Describe the image you want",
                    )
                    with gr.Row():
                        reference_1 = gr.Image(label="Reference 1 (optional)", type="filepath")
                        reference_2 = gr.Image(label="Reference 2 (optional)", type="filepath")
                        reference_3 = gr.Image(label="Reference 3 (optional)", type="filepath")
                    reference_urls = gr.Textbox(
                        label="Reference image URLs (one per line, optional)",
                        lines=2,
                    )
                    single_controls = _style_and_size_controls(style_registry, config.default_style_preset)
                    variations = gr.Slider(label="Variations", minimum=1, maximum=4, step=1, value=2)
                    with gr.Row():
                        generate_btn = gr.Button("Generate", variant="primary")
                        retry_btn = gr.Button("Retry last request")

                with gr.Column():
                    single_gallery = gr.Gallery(label="Generated Images", columns=2)
                    single_status = gr.Markdown("Ready.")

            generate_btn.click(
                fn=callbacks_map["on_generate_single"],
                inputs=[
                    prompt,
                    reference_1,
                    reference_2,
                    reference_3,
                    reference_urls,
                    single_controls["style"],
                    single_controls["custom_style"],
                    single_controls["size"],
                    single_controls["width"],
                    single_controls["height"],
                    single_controls["creativity"],
                    variations,
                    single_state,
                ],
                outputs=[single_gallery, single_status, single_state],
            )
            retry_btn.click(
                fn=callbacks_map["on_retry"],
                inputs=[single_state],
                outputs=[single_gallery, single_status, single_state],
            )

        # Six-image product listing batch
        with gr.Tab("Amazon PDP"):
            batch_state = gr.State(None)
            with gr.Row():
                with gr.Column():
                    product_image = gr.Image(label="Product Image", type="filepath")
                    description = gr.Textbox(
                        label="Product Description",
                        lines=5,
                        placeholder="Paste your raw product description here...",
                    )
                    extra_prompt = gr.Textbox(
                        label="Extra Instructions (optional)",
                        lines=2,
                        placeholder="Add any specific styling preferences...",
                    )
                    batch_controls = _style_and_size_controls(style_registry, config.default_style_preset)
                    with gr.Row():
                        batch_btn = gr.Button("Generate 6 PDP Images", variant="primary")
                        batch_retry_btn = gr.Button("Retry last request")

                with gr.Column():
                    batch_gallery = gr.Gallery(label="PDP Images", columns=3)
                    batch_status = gr.Markdown("Ready.")

            batch_btn.click(
                fn=callbacks_map["on_generate_batch"],
                inputs=[
                    product_image,
                    description,
                    extra_prompt,
                    batch_controls["style"],
                    batch_controls["custom_style"],
                    batch_controls["size"],
                    batch_controls["width"],
                    batch_controls["height"],
                    batch_controls["creativity"],
                    batch_state,
                ],
                outputs=[batch_gallery, batch_status, batch_state],
            )
            batch_retry_btn.click(
                fn=callbacks_map["on_retry"],
                inputs=[batch_state],
                outputs=[batch_gallery, batch_status, batch_state],
            )

        # Everything currently in the bucket
        with gr.Tab("Bucket Gallery"):
            with gr.Row():
                prefix = gr.Textbox(label="Prefix (optional)", scale=3)
                refresh_btn = gr.Button("Refresh", scale=1)
            bucket_gallery = gr.Gallery(label="Bucket", columns=4)
            bucket_status = gr.Markdown("")
            refresh_btn.click(
                fn=callbacks_map["on_list_bucket"],
                inputs=[prefix],
                outputs=[bucket_gallery, bucket_status],
            )

        with gr.Tab("History"):
            history_summary = gr.Markdown("")
            history_view = gr.Markdown("")
            with gr.Row():
                entry_id = gr.Textbox(label="Entry id", scale=3)
                delete_btn = gr.Button("Delete entry", scale=1)
                clear_btn = gr.Button("Clear history", variant="stop", scale=1)
                history_refresh_btn = gr.Button("Refresh", scale=1)
            history_refresh_btn.click(
                fn=callbacks_map["on_history_refresh"],
                outputs=[history_view, history_summary],
            )
            delete_btn.click(
                fn=callbacks_map["on_history_delete"],
                inputs=[entry_id],
                outputs=[history_view, history_summary],
            )
            clear_btn.click(
                fn=callbacks_map["on_history_clear"],
                outputs=[history_view, history_summary],
            )

        with gr.Tab("Settings"):
            with gr.Row():
                with gr.Column():
                    gr.Markdown("### Object storage")
                    access_key = gr.Textbox(label="Access Key ID")
                    secret_key = gr.Textbox(label="Secret Access Key", type="password")
                    region = gr.Textbox(label="Region")
                    bucket = gr.Textbox(label="Bucket")
                with gr.Column():
                    gr.Markdown("### Workflow webhooks")
                    single_webhook = gr.Textbox(label="Single image webhook URL")
                    batch_webhook = gr.Textbox(label="PDP (6 images) webhook URL")
            with gr.Row():
                save_btn = gr.Button("Save", variant="primary")
                test_btn = gr.Button("Test connection")
                clear_settings_btn = gr.Button("Clear settings", variant="stop")
            settings_status = gr.Markdown("")

            settings_fields = [access_key, secret_key, region, bucket, single_webhook, batch_webhook]
            save_btn.click(
                fn=callbacks_map["on_save_settings"],
                inputs=settings_fields,
                outputs=settings_status,
            )
            test_btn.click(fn=callbacks_map["on_test_connection"], outputs=settings_status)
            clear_settings_btn.click(
                fn=callbacks_map["on_clear_settings"],
                outputs=settings_status,
            ).then(fn=callbacks_map["on_load_settings"], outputs=settings_fields)

        demo.load(fn=callbacks_map["on_load_settings"], outputs=settings_fields)
        demo.load(fn=callbacks_map["on_history_refresh"], outputs=[history_view, history_summary])

    return demo
