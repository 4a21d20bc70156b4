"""
SQLAlchemy ORM models for the relational store.

Tables:
  users    — profiles, keyed internally by UUID and externally by the
             identity provider's subject id
  posts    — photo posts (image bytes live in the object store)
  likes    — user × post engagement, one row per pair
  comments — text replies on posts
  follows  — social graph edges (follower → following)

Views (read-only, created after the tables):
  post_stats — per-post like / comment counts
  user_stats — per-user post / follower / following counts

Cascades and uniqueness are enforced by the store itself; handlers only
pre-check them.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    func,
    select,
)
from sqlalchemy.dialects import mysql
from sqlalchemy.orm import Mapped, mapped_column, relationship

from instaclone.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


# Microsecond precision keeps "newest first" ordering stable on MySQL.
Timestamp = DateTime(timezone=True).with_variant(mysql.DATETIME(fsp=6), "mysql")


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    # Subject id issued by the identity provider; rows are created by the
    # provider sync, never by this service.
    external_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(30), nullable=False, default="")
    profile_image_url: Mapped[Optional[str]] = mapped_column(String(1024))
    created_at: Mapped[datetime] = mapped_column(Timestamp, default=_now, nullable=False)


class Post(Base):
    __tablename__ = "posts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    image_url: Mapped[str] = mapped_column(String(1024), nullable=False)
    caption: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(Timestamp, default=_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        Timestamp, default=_now, onupdate=_now, nullable=False
    )

    author = relationship("User", lazy="joined")

    __table_args__ = (
        Index("idx_posts_user", "user_id"),
        Index("idx_posts_created", "created_at"),
    )


class Like(Base):
    __tablename__ = "likes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    post_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("posts.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(Timestamp, default=_now, nullable=False)

    __table_args__ = (
        UniqueConstraint("post_id", "user_id", name="uq_likes_post_user"),
        Index("idx_likes_user", "user_id"),
    )


class Comment(Base):
    __tablename__ = "comments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    post_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("posts.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(Timestamp, default=_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        Timestamp, default=_now, onupdate=_now, nullable=False
    )

    author = relationship("User", lazy="joined")

    __table_args__ = (
        Index("idx_comments_post_created", "post_id", "created_at"),
    )


class Follow(Base):
    __tablename__ = "follows"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    follower_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    following_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(Timestamp, default=_now, nullable=False)

    __table_args__ = (
        UniqueConstraint("follower_id", "following_id", name="uq_follows_pair"),
        CheckConstraint("follower_id <> following_id", name="ck_follows_not_self"),
        # "Who follows user X?" — used for follower counts
        Index("idx_follows_following", "following_id"),
    )


# ─────────────────────────── Stats views ──────────────────────────────────

def _count_of(column, match):
    return select(func.count(column)).where(match).scalar_subquery()


POST_STATS_QUERY = select(
    Post.id.label("post_id"),
    Post.user_id,
    Post.image_url,
    Post.caption,
    Post.created_at,
    _count_of(Like.id, Like.post_id == Post.id).label("likes_count"),
    _count_of(Comment.id, Comment.post_id == Post.id).label("comments_count"),
)

USER_STATS_QUERY = select(
    User.id.label("user_id"),
    User.external_id,
    User.name,
    _count_of(Post.id, Post.user_id == User.id).label("posts_count"),
    _count_of(Follow.id, Follow.following_id == User.id).label("followers_count"),
    _count_of(Follow.id, Follow.follower_id == User.id).label("following_count"),
)

# Kept off Base.metadata so create_all never materialises them as tables.
views_metadata = MetaData()

post_stats = Table(
    "post_stats",
    views_metadata,
    Column("post_id", String(36), primary_key=True),
    Column("user_id", String(36)),
    Column("image_url", String(1024)),
    Column("caption", Text),
    Column("created_at", Timestamp),
    Column("likes_count", Integer),
    Column("comments_count", Integer),
)

user_stats = Table(
    "user_stats",
    views_metadata,
    Column("user_id", String(36), primary_key=True),
    Column("external_id", String(255)),
    Column("name", String(30)),
    Column("posts_count", Integer),
    Column("followers_count", Integer),
    Column("following_count", Integer),
)

_VIEWS = {
    "post_stats": POST_STATS_QUERY,
    "user_stats": USER_STATS_QUERY,
}


def create_views(conn) -> None:
    """(Re)create the stats views, compiled for the connected dialect."""
    for name, query in _VIEWS.items():
        compiled = query.compile(dialect=conn.dialect, compile_kwargs={"literal_binds": True})
        conn.exec_driver_sql(f"DROP VIEW IF EXISTS {name}")
        conn.exec_driver_sql(f"CREATE VIEW {name} AS {compiled}")
