"""Tests for error translation and rendering."""

import sqlite3

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from instaclone.errors import (
    ERROR_MESSAGES,
    BadRequest,
    Conflict,
    PayloadTooLarge,
    ServerError,
    Unauthenticated,
    classify_store_error,
    get_error_message,
    store_error_message,
)
from instaclone.models import Follow


class PgDriverError(Exception):
    def __init__(self, sqlstate, message="constraint violation"):
        super().__init__(message)
        self.sqlstate = sqlstate


def integrity(orig):
    return IntegrityError("INSERT", {}, orig)


@pytest.mark.parametrize(
    "orig, expected",
    [
        (PgDriverError("23505"), "unique"),
        (PgDriverError("23514"), "check"),
        (PgDriverError("23503"), "foreign_key"),
        (Exception(1062, "Duplicate entry 'a-b' for key 'uq_follows_pair'"), "unique"),
        (Exception(3819, "Check constraint 'ck_follows_not_self' is violated."), "check"),
        (Exception(1452, "Cannot add or update a child row"), "foreign_key"),
        (sqlite3.IntegrityError("UNIQUE constraint failed: likes.post_id, likes.user_id"), "unique"),
        (sqlite3.IntegrityError("CHECK constraint failed: ck_follows_not_self"), "check"),
        (sqlite3.IntegrityError("FOREIGN KEY constraint failed"), "foreign_key"),
        (sqlite3.IntegrityError("NOT NULL constraint failed: posts.image_url"), None),
    ],
)
def test_classify_store_error(orig, expected):
    assert classify_store_error(integrity(orig)) == expected


def test_non_integrity_errors_are_not_classified():
    assert classify_store_error(OperationalError("SELECT", {}, Exception("gone away"))) is None
    assert classify_store_error(ValueError("duplicate")) is None


def test_store_error_messages_hide_driver_text():
    leaky = "Duplicate entry 'secret@example.com' for key 'users.email'"
    message = store_error_message(integrity(Exception(1062, leaky)))
    assert message == ERROR_MESSAGES[409]
    assert "secret" not in message

    assert store_error_message(integrity(PgDriverError("23503"))) == (
        "Related data exists, so this cannot be processed."
    )
    assert store_error_message(integrity(PgDriverError("23514"))) == ERROR_MESSAGES[400]
    assert store_error_message(OperationalError("SELECT", {}, Exception("down"))) == ERROR_MESSAGES[503]
    assert store_error_message(RuntimeError("boom")) == ERROR_MESSAGES[500]
    assert store_error_message(None) == ERROR_MESSAGES[500]


def test_error_messages_fall_back_by_status():
    assert get_error_message(404) == ERROR_MESSAGES[404]
    assert get_error_message(404, "Post not found.") == "Post not found."
    assert get_error_message(418) == ERROR_MESSAGES[500]


def test_api_error_defaults():
    assert BadRequest().status_code == 400
    assert BadRequest().message == ERROR_MESSAGES[400]
    assert Conflict("taken").message == "taken"
    assert PayloadTooLarge().status_code == 413
    assert ServerError().status_code == 500

    unauthenticated = Unauthenticated()
    assert unauthenticated.status_code == 401
    assert unauthenticated.headers == {"WWW-Authenticate": "Bearer"}


@pytest.mark.asyncio
async def test_store_rejects_self_follow(db, make_user):
    user = await make_user()
    async with db() as session:
        session.add(Follow(follower_id=user.id, following_id=user.id))
        with pytest.raises(IntegrityError) as excinfo:
            await session.commit()
    assert classify_store_error(excinfo.value) == "check"


@pytest.mark.asyncio
async def test_unknown_route_renders_error_body(client):
    response = await client.get("/nowhere")
    assert response.status_code == 404
    assert response.json() == {"error": "Not Found"}


@pytest.mark.asyncio
async def test_unauthenticated_response_advertises_bearer(client):
    response = await client.post("/likes", json={"postId": "p"})
    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"
