"""ObjectStoreClient listing tests."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from botocore.exceptions import ClientError

from config.settings import StorageSettings
from modules.errors import ConfigError, RemoteError
from modules.services.storage_service import (
    FilterPolicy,
    ObjectFilter,
    ObjectStoreClient,
    StorageObject,
    object_name,
)


class DummyS3Client:
    """Stub boto3 S3 client."""

    def __init__(self, contents=None, error: Exception | None = None) -> None:
        self.contents = contents or []
        self.error = error
        self.list_calls: list[dict] = []
        self.presign_calls: list[dict] = []

    def list_objects_v2(self, **kwargs):
        self.list_calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return {"Contents": self.contents}

    def generate_presigned_url(self, ClientMethod, Params, ExpiresIn):
        self.presign_calls.append({"method": ClientMethod, "params": Params, "expires": ExpiresIn})
        return f"https://signed.example/{Params['Key']}?expires={ExpiresIn}"


def settings(**overrides) -> StorageSettings:
    values = {"access_key_id": "AKIA", "secret_access_key": "secret", "bucket": "images", "region": "ap-south-1"}
    values.update(overrides)
    return StorageSettings(**values)


def s3_item(key: str, day: int, size: int = 10) -> dict:
    return {"Key": key, "Size": size, "LastModified": datetime(2024, 1, day, tzinfo=timezone.utc)}


def test_list_presigns_and_sorts_newest_first():
    client = DummyS3Client([s3_item("out/a.png", 1), s3_item("out/b.png", 3), s3_item("out/", 2)])
    store = ObjectStoreClient(settings(), client=client)

    objects = store.list(prefix="out/", max_keys=50)

    assert [obj.key for obj in objects] == ["out/b.png", "out/a.png"]
    assert objects[0].name == "b.png"
    assert objects[0].url == "https://signed.example/out/b.png?expires=3600"
    assert objects[0].public_url == "https://images.s3.ap-south-1.amazonaws.com/out/b.png"
    assert client.list_calls == [{"Bucket": "images", "Prefix": "out/", "MaxKeys": 50}]
    assert all(call["expires"] == 3600 for call in client.presign_calls)


def test_urls_are_minted_on_every_listing():
    client = DummyS3Client([s3_item("a.png", 1)])
    store = ObjectStoreClient(settings(), client=client)

    store.list()
    store.list()

    assert len(client.presign_calls) == 2


def test_missing_credentials_raise_config_error():
    store = ObjectStoreClient(settings(secret_access_key=""), client=DummyS3Client())

    with pytest.raises(ConfigError) as excinfo:
        store.list()

    assert "Settings" in excinfo.value.user_message()


def test_client_error_becomes_remote_error():
    error = ClientError(
        {"Error": {"Code": "AccessDenied", "Message": "Access Denied"}, "ResponseMetadata": {"HTTPStatusCode": 403}},
        "ListObjectsV2",
    )
    store = ObjectStoreClient(settings(), client=DummyS3Client(error=error))

    with pytest.raises(RemoteError) as excinfo:
        store.list()

    assert excinfo.value.status_code == 403
    assert excinfo.value.body == "Access Denied"


def test_lenient_filter_only_skips_directory_markers():
    predicate = ObjectFilter(FilterPolicy.LENIENT)

    assert predicate("out/report.json")
    assert predicate("uploads/raw")
    assert not predicate("out/")
    assert not predicate("")


def test_images_filter_requires_image_extension_or_none():
    predicate = ObjectFilter.from_name("images")

    assert predicate("out/a.PNG")
    assert predicate("out/photo.webp")
    assert predicate("uploads/raw")
    assert not predicate("out/report.json")
    assert not predicate("folder/")


def test_unknown_policy_name_falls_back_to_images():
    assert ObjectFilter.from_name("strictest").policy is FilterPolicy.IMAGES


def test_default_listing_skips_non_image_objects():
    client = DummyS3Client([s3_item("out/meta.json", 2), s3_item("out/a.png", 1), s3_item("out/raw", 3)])
    store = ObjectStoreClient(settings(), client=client)

    assert store.object_filter.policy is FilterPolicy.IMAGES
    assert [obj.key for obj in store.list()] == ["out/raw", "out/a.png"]


def test_list_payload_shape():
    client = DummyS3Client([s3_item("a.png", 2, size=42)])
    store = ObjectStoreClient(settings(), client=client)

    payload = store.list_payload()

    assert payload["success"] is True
    assert payload["count"] == 1
    assert payload["bucket"] == "images"
    item = payload["images"][0]
    assert set(item) == {"key", "name", "url", "publicUrl", "size", "lastModified"}
    assert item["size"] == 42
    assert item["lastModified"].startswith("2024-01-02")


def test_storage_object_dict_round_trip():
    obj = StorageObject(
        key="x/y.png",
        name="y.png",
        url="https://signed/y",
        size=5,
        last_modified=datetime(2024, 2, 1, 8, 30, tzinfo=timezone.utc),
        public_url="https://public/y",
    )

    assert StorageObject.from_dict(obj.to_dict()) == obj


def test_object_name_uses_last_segment():
    assert object_name("a/b/c.png") == "c.png"
    assert object_name("plain.png") == "plain.png"
