"""Utility helpers for reference URLs and download names."""

from __future__ import annotations

import re
from typing import Optional
from urllib.parse import urlencode

DOWNLOAD_ROUTE = "/api/download"


def is_remote_url(value: Optional[str]) -> bool:
    return bool(value) and value.startswith(("http://", "https://"))


def safe_filename(name: Optional[str], fallback: str = "image.png") -> str:
    """Strip path separators and quoting characters from a download name."""
    cleaned = re.sub(r"[\\/\"\r\n]+", "_", (name or "").strip())
    return cleaned or fallback


def download_url(url: str, filename: str) -> str:
    """Build a proxy link that forces the browser to download ``url``."""
    query = urlencode({"url": url, "filename": safe_filename(filename)})
    return f"{DOWNLOAD_ROUTE}?{query}"
