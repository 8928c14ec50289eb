"""Object store listing with presigned retrieval URLs."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from config.settings import StorageSettings
from modules.errors import ConfigError, RemoteError

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".webp", ".gif")


@dataclass(slots=True)
class StorageObject:
    """One object in the bucket, as seen by a single listing call."""

    key: str
    name: str
    url: str
    size: int = 0
    last_modified: Optional[datetime] = None
    public_url: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "name": self.name,
            "url": self.url,
            "publicUrl": self.public_url,
            "size": self.size,
            "lastModified": self.last_modified.isoformat() if self.last_modified else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StorageObject":
        raw_modified = data.get("lastModified")
        last_modified = None
        if isinstance(raw_modified, str) and raw_modified:
            try:
                last_modified = datetime.fromisoformat(raw_modified.replace("Z", "+00:00"))
            except ValueError:
                last_modified = None
        key = str(data.get("key") or "")
        return cls(
            key=key,
            name=str(data.get("name") or object_name(key)),
            url=str(data.get("url") or ""),
            size=int(data.get("size") or 0),
            last_modified=last_modified,
            public_url=str(data.get("publicUrl") or ""),
        )


class FilterPolicy(str, Enum):
    """Which listed keys count as results."""

    LENIENT = "lenient"  # skip directory markers only
    IMAGES = "images"  # also require an image extension (or none at all)


class ObjectFilter:
    """Single predicate applied to every listing."""

    def __init__(self, policy: FilterPolicy = FilterPolicy.IMAGES) -> None:
        self.policy = policy

    @classmethod
    def from_name(cls, name: str) -> "ObjectFilter":
        try:
            return cls(FilterPolicy(name.lower()))
        except ValueError:
            logger.warning("Unknown storage filter policy %r, using images", name)
            return cls(FilterPolicy.IMAGES)

    def __call__(self, key: str) -> bool:
        lowered = (key or "").lower()
        if not lowered or lowered.endswith("/"):
            return False
        if self.policy is FilterPolicy.LENIENT:
            return True
        leaf = object_name(lowered)
        return lowered.endswith(IMAGE_EXTENSIONS) or "." not in leaf


def object_name(key: str) -> str:
    """Return the last path segment of an object key."""
    return key.rsplit("/", 1)[-1] or key


def _sort_key(obj: StorageObject) -> datetime:
    return obj.last_modified or datetime.min.replace(tzinfo=timezone.utc)


def sort_newest_first(objects: List[StorageObject]) -> List[StorageObject]:
    """Order objects by last-modified time, newest first, undated last."""
    return sorted(objects, key=_sort_key, reverse=True)


class ObjectStoreClient:
    """Thin wrapper around an S3 bucket for listings and presigned GETs.

    There are no write or delete helpers: the bucket is only ever read.
    """

    def __init__(
        self,
        settings: StorageSettings,
        client: Any = None,
        object_filter: Optional[ObjectFilter] = None,
    ) -> None:
        self.settings = settings
        self.object_filter = object_filter or ObjectFilter.from_name(settings.filter_policy)
        self._client = client

    def _get_client(self) -> Any:
        if not self.settings.has_credentials():
            raise ConfigError("Object storage credentials are not configured.")
        if self._client is None:
            session = boto3.session.Session()
            self._client = session.client(
                "s3",
                endpoint_url=self.settings.endpoint_url,
                aws_access_key_id=self.settings.access_key_id,
                aws_secret_access_key=self.settings.secret_access_key,
                region_name=self.settings.region,
                config=Config(signature_version="s3v4"),
            )
        return self._client

    def public_url(self, key: str) -> str:
        return f"https://{self.settings.bucket}.s3.{self.settings.region}.amazonaws.com/{key}"

    def presign_get(self, key: str) -> str:
        """Mint a retrieval URL valid for the configured TTL from now."""
        client = self._get_client()
        return client.generate_presigned_url(
            ClientMethod="get_object",
            Params={"Bucket": self.settings.bucket, "Key": key},
            ExpiresIn=int(self.settings.presign_ttl_seconds),
        )

    def list(self, prefix: str = "", max_keys: int = 100) -> List[StorageObject]:
        """List bucket objects that pass the filter, newest first.

        Every call presigns fresh URLs; do not hold on to them for longer than
        the presign TTL.
        """
        client = self._get_client()
        try:
            response = client.list_objects_v2(
                Bucket=self.settings.bucket,
                Prefix=prefix or "",
                MaxKeys=int(max_keys),
            )
            contents = response.get("Contents") or []
            objects: List[StorageObject] = []
            for item in contents:
                key = item.get("Key") or ""
                if not self.object_filter(key):
                    continue
                objects.append(
                    StorageObject(
                        key=key,
                        name=object_name(key),
                        url=self.presign_get(key),
                        size=int(item.get("Size") or 0),
                        last_modified=item.get("LastModified"),
                        public_url=self.public_url(key),
                    )
                )
        except ClientError as exc:
            error = exc.response.get("Error", {}) if hasattr(exc, "response") else {}
            status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
            logger.error("S3 list error on %s: %s", self.settings.bucket, exc)
            raise RemoteError(
                "Failed to list bucket contents",
                status_code=status,
                body=str(error.get("Message") or exc),
            ) from exc
        except BotoCoreError as exc:
            logger.error("S3 list error on %s: %s", self.settings.bucket, exc)
            raise RemoteError("Failed to list bucket contents", body=str(exc)) from exc

        logger.debug("Listed %d objects from %s", len(objects), self.settings.bucket)
        return sort_newest_first(objects)

    def list_payload(self, prefix: str = "", max_keys: int = 100) -> Dict[str, Any]:
        """Return a listing in the JSON shape used by the gallery views."""
        images = self.list(prefix=prefix, max_keys=max_keys)
        return {
            "success": True,
            "count": len(images),
            "bucket": self.settings.bucket,
            "images": [image.to_dict() for image in images],
        }
