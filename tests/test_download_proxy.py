"""Download proxy route tests."""

from __future__ import annotations

import pytest
import requests
from fastapi import FastAPI
from fastapi.testclient import TestClient

from modules.web.download import build_download_router


class DummyUpstream:
    def __init__(self, status_code: int = 200, content: bytes = b"", headers=None) -> None:
        self.status_code = status_code
        self.content = content
        self.headers = headers or {}

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400


class DummySession:
    def __init__(self, response=None, error: Exception | None = None) -> None:
        self.response = response
        self.error = error
        self.urls: list[str] = []

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False

    def get(self, url, timeout=None):
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        return self.response


def build_client(session: DummySession) -> TestClient:
    app = FastAPI()
    app.include_router(build_download_router(lambda: session))
    return TestClient(app)


def test_download_sets_attachment_headers():
    session = DummySession(DummyUpstream(content=b"\x89PNG", headers={"content-type": "image/webp"}))
    client = build_client(session)

    response = client.get("/api/download", params={"url": "https://bucket/a.webp?sig=1", "filename": "a.webp"})

    assert response.status_code == 200
    assert response.content == b"\x89PNG"
    assert response.headers["content-type"] == "image/webp"
    assert response.headers["content-disposition"] == 'attachment; filename="a.webp"'
    assert response.headers["content-length"] == "4"
    assert session.urls == ["https://bucket/a.webp?sig=1"]


def test_download_defaults_filename_and_type():
    client = build_client(DummySession(DummyUpstream(content=b"x")))

    response = client.get("/api/download", params={"url": "https://bucket/a"})

    assert response.headers["content-type"] == "image/png"
    assert 'filename="image.png"' in response.headers["content-disposition"]


def test_download_requires_url():
    response = build_client(DummySession()).get("/api/download")

    assert response.status_code == 400
    assert response.json() == {"error": "URL is required"}


def test_download_relays_upstream_status():
    client = build_client(DummySession(DummyUpstream(status_code=403)))

    response = client.get("/api/download", params={"url": "https://bucket/expired"})

    assert response.status_code == 403
    assert response.json() == {"error": "Failed to fetch image: 403"}


@pytest.mark.parametrize("error", [requests.ConnectionError("refused"), requests.Timeout("slow")])
def test_download_network_errors_return_500(error):
    client = build_client(DummySession(error=error))

    response = client.get("/api/download", params={"url": "https://bucket/a.png"})

    assert response.status_code == 500
    assert "error" in response.json()
