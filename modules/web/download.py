"""Download proxy so stored images can be saved despite cross-origin rules."""

from __future__ import annotations

import logging
from typing import Callable, Optional

import requests
from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse, Response

from modules.utils.image_utils import DOWNLOAD_ROUTE, safe_filename

logger = logging.getLogger(__name__)


def build_download_router(session_factory: Optional[Callable[[], requests.Session]] = None) -> APIRouter:
    """Return a router exposing ``GET /api/download?url=&filename=``."""
    router = APIRouter()
    make_session = session_factory or requests.Session

    @router.get(DOWNLOAD_ROUTE)
    def download(
        url: Optional[str] = Query(default=None),
        filename: str = Query(default="image.png"),
    ) -> Response:
        if not url:
            return JSONResponse({"error": "URL is required"}, status_code=400)

        try:
            with make_session() as session:
                upstream = session.get(url, timeout=60)
        except requests.RequestException as exc:
            logger.error("Download proxy error: %s", exc)
            return JSONResponse({"error": str(exc) or "Failed to download image"}, status_code=500)

        if not upstream.ok:
            return JSONResponse(
                {"error": f"Failed to fetch image: {upstream.status_code}"},
                status_code=upstream.status_code,
            )

        body = upstream.content
        name = safe_filename(filename)
        return Response(
            content=body,
            media_type=upstream.headers.get("content-type") or "image/png",
            headers={
                "Content-Disposition": f'attachment; filename="{name}"',
                "Content-Length": str(len(body)),
            },
        )

    return router
