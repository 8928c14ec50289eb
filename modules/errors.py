"""Error taxonomy shared by the storage, webhook and session layers."""

from __future__ import annotations

from typing import Optional

SETTINGS_HINT = "Open the Settings tab to configure it."


class GenerationError(RuntimeError):
    """Base class for failures surfaced to the user."""

    fatal = True

    def user_message(self) -> str:
        return str(self)


class ConfigError(GenerationError):
    """Missing credentials or webhook target; fixable from settings."""

    def user_message(self) -> str:
        return f"{self} {SETTINGS_HINT}"


class RemoteError(GenerationError):
    """Non-success response from the object store or the workflow webhook."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body[:200]

    def user_message(self) -> str:
        parts = [str(self)]
        if self.status_code is not None:
            parts.append(f"(status {self.status_code})")
        if self.body:
            parts.append(f"- {self.body}")
        return " ".join(parts)


class ParseError(GenerationError):
    """The webhook answered with something that is not JSON.

    Not fatal: the workflow may still have written its images, so callers
    fall back to polling the bucket.
    """

    fatal = False

    def __init__(self, message: str, raw: str = "") -> None:
        super().__init__(message)
        self.raw = raw[:100]

    def user_message(self) -> str:
        return "Workflow triggered, check storage for images."


class EmptyBucketError(GenerationError):
    """Neither new nor existing images were found in the bucket."""


class NoPreviousRequestError(GenerationError):
    """Retry was requested before any generation ran."""


class InvalidRequestError(GenerationError):
    """The request cannot be sent as built, e.g. an unreadable source image."""
