"""Locally persisted user settings (credentials and webhook targets)."""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import Dict

from config.settings import AppConfig, DEFAULT_BUCKET, DEFAULT_REGION

logger = logging.getLogger(__name__)

SETTING_KEYS = (
    "aws_access_key_id",
    "aws_secret_access_key",
    "aws_region",
    "aws_bucket",
    "n8n_pdp_webhook_url",
    "n8n_single_webhook_url",
)


class SettingsStore:
    """Flat key-value JSON blob, no schema versioning."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.error("Error reading settings %s: %s", self.path, exc)
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(key): str(value) for key, value in data.items() if value is not None}

    def save(self, settings: Dict[str, str]) -> Dict[str, str]:
        """Merge ``settings`` into the stored blob and return the result."""
        current = self.load()
        current.update({key: (value or "").strip() for key, value in settings.items()})
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(current, indent=2), encoding="utf-8")
        return current

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()

    def apply(self, config: AppConfig) -> AppConfig:
        """Return a copy of ``config`` with stored values layered on top.

        Empty stored values leave the base configuration untouched.
        """
        stored = self.load()
        storage = replace(
            config.storage,
            access_key_id=stored.get("aws_access_key_id") or config.storage.access_key_id,
            secret_access_key=stored.get("aws_secret_access_key") or config.storage.secret_access_key,
            region=stored.get("aws_region") or config.storage.region or DEFAULT_REGION,
            bucket=stored.get("aws_bucket") or config.storage.bucket or DEFAULT_BUCKET,
        )
        webhooks = replace(
            config.webhooks,
            single_url=stored.get("n8n_single_webhook_url") or config.webhooks.single_url,
            batch_url=stored.get("n8n_pdp_webhook_url") or config.webhooks.batch_url,
        )
        return config.with_overrides(storage=storage, webhooks=webhooks)
