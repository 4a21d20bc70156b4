"""Tests for the object-store client."""

import re

import pytest

from instaclone.clients import storage_client
from instaclone.clients.storage_client import (
    build_object_key,
    delete_object_quietly,
    get_s3,
    init_storage,
    key_from_url,
    public_url,
    upload_object,
)


def test_object_key_format():
    key = build_object_key("user_abc", "Holiday.PNG")
    assert re.fullmatch(r"user_abc/\d{13}-[0-9a-f]{8}\.png", key)


@pytest.mark.parametrize("filename", [None, "", "noextension", "trailingdot."])
def test_object_key_defaults_to_jpg(filename):
    assert build_object_key("owner", filename).endswith(".jpg")


def test_object_keys_are_unique():
    assert build_object_key("owner", "a.jpg") != build_object_key("owner", "a.jpg")


def test_key_round_trips_through_public_url():
    url = public_url("posts", "user_1/123-abcd.jpg")
    assert url == "https://cdn.test/posts/user_1/123-abcd.jpg"
    assert key_from_url("posts", url) == "user_1/123-abcd.jpg"


@pytest.mark.parametrize(
    "url",
    [None, "", "https://cdn.test/avatars/user_1/x.jpg", "https://elsewhere.test/posts/x.jpg"],
)
def test_key_from_foreign_url_is_none(url):
    assert key_from_url("posts", url) is None


def test_init_storage_creates_missing_buckets(fake_s3, monkeypatch):
    fake_s3.buckets.add("posts")
    monkeypatch.setattr(storage_client.boto3, "client", lambda *args, **kwargs: fake_s3)

    init_storage()

    assert fake_s3.buckets == {"posts", "avatars"}
    assert get_s3() is fake_s3


def test_get_s3_before_init(monkeypatch):
    monkeypatch.setattr(storage_client, "_s3", None)
    with pytest.raises(RuntimeError):
        get_s3()


def test_upload_object(fake_s3):
    url = upload_object("posts", "u/1-a.png", b"png-bytes", "image/png")
    assert url == "https://cdn.test/posts/u/1-a.png"
    assert fake_s3.objects[("posts", "u/1-a.png")] == {
        "data": b"png-bytes",
        "content_type": "image/png",
    }


def test_upload_failure_propagates(fake_s3):
    fake_s3.fail_put = True
    with pytest.raises(RuntimeError):
        upload_object("posts", "u/1-a.png", b"x", "image/png")


def test_quiet_delete(fake_s3):
    assert delete_object_quietly("posts", "u/1-a.png") is True
    assert fake_s3.deleted == [("posts", "u/1-a.png")]

    assert delete_object_quietly("posts", None) is False

    fake_s3.fail_delete = True
    assert delete_object_quietly("posts", "u/2-b.png") is False
