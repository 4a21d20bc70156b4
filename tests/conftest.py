"""Shared fixtures: in-memory store, fake object store, users and session tokens."""

import os

TEST_SECRET = "test-session-secret"

# Settings are read at import time, so configure before importing the app
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["IDENTITY_SHARED_SECRET"] = TEST_SECRET
os.environ["TRACING_ENABLED"] = "false"
os.environ["STORAGE_PUBLIC_URL"] = "https://cdn.test"
os.environ["ENVIRONMENT"] = "test"

import time
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy import event, func, select

from instaclone.clients import storage_client
from instaclone.database import AsyncSessionLocal, engine, init_db
from instaclone.main import app
from instaclone.models import Comment, Follow, Like, Post, User

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


@event.listens_for(engine.sync_engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite only honours ON DELETE CASCADE with this pragma on
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class FakeS3:
    """Records puts and deletes the way the boto3 S3 client would receive them."""

    def __init__(self):
        self.buckets = set()
        self.objects = {}
        self.deleted = []
        self.fail_put = False
        self.fail_delete = False

    def list_buckets(self):
        return {"Buckets": [{"Name": name} for name in sorted(self.buckets)]}

    def create_bucket(self, Bucket):
        self.buckets.add(Bucket)

    def put_object(self, Bucket, Key, Body, ContentType, CacheControl=None):
        if self.fail_put:
            raise RuntimeError("simulated upload failure")
        self.objects[(Bucket, Key)] = {"data": Body.read(), "content_type": ContentType}

    def delete_object(self, Bucket, Key):
        if self.fail_delete:
            raise RuntimeError("simulated delete failure")
        self.deleted.append((Bucket, Key))
        self.objects.pop((Bucket, Key), None)


@pytest.fixture
def fake_s3(monkeypatch):
    s3 = FakeS3()
    monkeypatch.setattr(storage_client, "_s3", s3)
    return s3


@pytest_asyncio.fixture
async def db():
    """Fresh schema per test; disposing the engine drops the in-memory database."""
    await init_db()
    yield AsyncSessionLocal
    await engine.dispose()


@pytest_asyncio.fixture
async def client(db, fake_s3):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth_headers():
    def _headers(user_or_subject, expires_in: int = 3600) -> dict[str, str]:
        subject = getattr(user_or_subject, "external_id", user_or_subject)
        token = jwt.encode(
            {"sub": subject, "iat": int(time.time()), "exp": int(time.time()) + expires_in},
            TEST_SECRET,
            algorithm="HS256",
        )
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def make_user(db):
    async def _make(
        name: str = "alice",
        external_id: Optional[str] = None,
        profile_image_url: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> User:
        async with db() as session:
            user = User(
                external_id=external_id or f"user_{uuid4().hex[:12]}",
                name=name,
                profile_image_url=profile_image_url,
                created_at=created_at or BASE_TIME,
            )
            session.add(user)
            await session.commit()
            return user

    return _make


@pytest.fixture
def make_post(db):
    async def _make(
        author: User,
        caption: Optional[str] = "a photo",
        minutes: int = 0,
        image_url: Optional[str] = None,
    ) -> Post:
        async with db() as session:
            key = f"{author.external_id}/{uuid4().hex}.jpg"
            post = Post(
                user_id=author.id,
                image_url=image_url or f"https://cdn.test/posts/{key}",
                caption=caption,
                created_at=BASE_TIME + timedelta(minutes=minutes),
                updated_at=BASE_TIME + timedelta(minutes=minutes),
            )
            session.add(post)
            await session.commit()
            return post

    return _make


@pytest.fixture
def make_comment(db):
    async def _make(post: Post, author: User, content: str = "nice", minutes: int = 0) -> Comment:
        async with db() as session:
            comment = Comment(
                post_id=post.id,
                user_id=author.id,
                content=content,
                created_at=BASE_TIME + timedelta(minutes=minutes),
                updated_at=BASE_TIME + timedelta(minutes=minutes),
            )
            session.add(comment)
            await session.commit()
            return comment

    return _make


@pytest.fixture
def make_like(db):
    async def _make(post: Post, user: User) -> Like:
        async with db() as session:
            like = Like(post_id=post.id, user_id=user.id)
            session.add(like)
            await session.commit()
            return like

    return _make


@pytest.fixture
def make_follow(db):
    async def _make(follower: User, following: User) -> Follow:
        async with db() as session:
            follow = Follow(follower_id=follower.id, following_id=following.id)
            session.add(follow)
            await session.commit()
            return follow

    return _make


@pytest.fixture
def count_rows(db):
    async def _count(model, **filters) -> int:
        async with db() as session:
            query = select(func.count()).select_from(model)
            for column, value in filters.items():
                query = query.where(getattr(model, column) == value)
            return (await session.execute(query)).scalar_one()

    return _count


@pytest.fixture
def jpeg_bytes():
    def _make(size: int = 1024) -> bytes:
        # JPEG SOI marker followed by filler; the API checks size and MIME only
        return b"\xff\xd8\xff\xe0" + b"\x00" * max(size - 4, 0)

    return _make
