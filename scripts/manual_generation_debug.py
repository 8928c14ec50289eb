"""One-off script for debugging a full generation round trip."""

from __future__ import annotations

import argparse
from pathlib import Path

from config.settings import load_config
from modules.pipelines.generation_session import GenerationSession, format_elapsed
from modules.services.history_service import GenerationHistoryService
from modules.services.settings_store import SettingsStore
from modules.services.storage_service import ObjectStoreClient
from modules.services.webhook_client import GenerationRequest, JobTriggerClient, SourceImage
from modules.utils.logging import setup_logging


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Trigger one generation and reconcile its results.")
    parser.add_argument("prompt")
    parser.add_argument("--image", type=Path, help="optional reference image")
    parser.add_argument("--variations", type=int, default=2)
    parser.add_argument("--no-history", action="store_true", help="do not record the result")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    # Same layering as the UI: .env first, then saved settings
    config = load_config()
    setup_logging(config)
    config = SettingsStore(config.settings_path).apply(config)

    images = ()
    if args.image:
        images = (SourceImage(data=args.image.read_bytes(), filename=args.image.name),)

    history = None if args.no_history else GenerationHistoryService(config.history_path)
    session = GenerationSession(
        config,
        store=ObjectStoreClient(config.storage),
        trigger=JobTriggerClient(config),
        history=history,
    )
    request = GenerationRequest(prompt=args.prompt, variations=args.variations, images=images)

    for progress in session.run(request):
        print(f"[{format_elapsed(progress.elapsed):>7}] {progress.state.value}: {progress.message}")
        for notice in progress.notices:
            print("    note:", notice)

    final = session.last_progress
    if final is not None and final.error is not None:
        print("error:", final.error.user_message())
        return
    if final is not None and final.resolution is not None:
        print("attribution:", final.resolution.attribution.value)
        for image in final.images:
            print(" -", image.key, image.url)


if __name__ == "__main__":
    main()
