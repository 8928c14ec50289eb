"""Configuration helpers for the Product Image Studio project."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Optional

DEFAULT_REGION = "ap-south-1"
DEFAULT_BUCKET = "amazon-image-data"


@dataclass(slots=True)
class StorageSettings:
    """Credentials and location of the object store bucket."""

    access_key_id: str = ""
    secret_access_key: str = ""
    region: str = DEFAULT_REGION
    bucket: str = DEFAULT_BUCKET
    endpoint_url: Optional[str] = None
    presign_ttl_seconds: int = 3600
    filter_policy: str = "images"

    def has_credentials(self) -> bool:
        return bool(self.access_key_id and self.secret_access_key)


@dataclass(slots=True)
class WebhookSettings:
    """Default targets for the workflow webhooks."""

    single_url: str = ""
    batch_url: str = ""
    timeout_seconds: float = 300.0


@dataclass(slots=True)
class AppConfig:
    """Centralized application configuration."""

    storage: StorageSettings = field(default_factory=StorageSettings)
    webhooks: WebhookSettings = field(default_factory=WebhookSettings)
    assets_dir: Path = Path("assets")
    data_dir: Path = Path("data")
    log_dir: Path = Path("logs")
    history_path: Path = Path("data/history.json")
    settings_path: Path = Path("data/settings.json")
    max_history_entries: int = 50
    list_max_keys: int = 100
    gallery_max_keys: int = 200
    default_style_preset: str = "ecommerce"
    metadata: dict[str, Any] = field(default_factory=dict)

    def with_overrides(
        self,
        storage: Optional[StorageSettings] = None,
        webhooks: Optional[WebhookSettings] = None,
    ) -> "AppConfig":
        """Return a copy with the given sections swapped in."""
        return replace(
            self,
            storage=storage or replace(self.storage),
            webhooks=webhooks or replace(self.webhooks),
            metadata=dict(self.metadata),
        )


def _load_env_file(path: Path) -> None:
    """Populate environment variables from a simple KEY=VALUE .env file."""
    if not path.exists():
        return

    for line in path.read_text(encoding="utf-8").splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#") or "=" not in stripped:
            continue
        key, value = stripped.split("=", 1)
        os.environ[key.strip()] = value.strip().strip('"').strip("'")


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def load_config(config_path: Optional[str] = None) -> AppConfig:
    """Return an AppConfig instance with environment-aware settings."""
    env_path = Path(config_path) if config_path else Path(".env")
    _load_env_file(env_path)

    data_dir = Path(os.getenv("DATA_DIR", "data")).expanduser()
    log_dir = Path(os.getenv("LOG_DIR", "logs")).expanduser()

    storage = StorageSettings(
        access_key_id=os.getenv("AWS_ACCESS_KEY_ID", ""),
        secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY", ""),
        region=os.getenv("AWS_REGION") or DEFAULT_REGION,
        bucket=os.getenv("AWS_S3_BUCKET") or DEFAULT_BUCKET,
        endpoint_url=os.getenv("AWS_S3_ENDPOINT_URL") or None,
        filter_policy=(os.getenv("STORAGE_FILTER_POLICY") or "images").lower(),
    )
    webhooks = WebhookSettings(
        single_url=os.getenv("N8N_SINGLE_WEBHOOK_URL", ""),
        batch_url=os.getenv("N8N_PDP_WEBHOOK_URL", ""),
        timeout_seconds=_float_env("WEBHOOK_TIMEOUT_SECONDS", 300.0),
    )

    metadata: dict[str, Any] = {}
    server_port = os.getenv("PORT")
    if server_port and server_port.isdigit():
        metadata["server_port"] = int(server_port)
    if os.getenv("HOST"):
        metadata["server_host"] = os.getenv("HOST")

    return AppConfig(
        storage=storage,
        webhooks=webhooks,
        data_dir=data_dir,
        log_dir=log_dir,
        history_path=data_dir / "history.json",
        settings_path=data_dir / "settings.json",
        metadata=metadata,
    )
