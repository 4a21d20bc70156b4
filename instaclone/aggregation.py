"""
Post aggregation — turns raw post rows into viewer-aware feed records.

Every route that returns posts (list, detail, create, search) goes through
`aggregate_posts`, which enriches a page of posts with:

  • the author, normalised to a single optional record
  • likes_count / comments_count from the post_stats view
  • is_liked for the signed-in viewer
  • up to `preview_comments_limit` newest comments, each with its author

The number of queries is fixed regardless of page size: one stats query, one
comments query and, only when a viewer is present, one likes query.
Those are secondary reads: a failure is logged and the affected fields
fall back to zero / False / [] instead of failing the request.
"""
import logging
import time
from collections import defaultdict
from typing import Any, Mapping, Optional, Sequence

from opentelemetry import trace
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from instaclone.config import settings
from instaclone.errors import log_error
from instaclone.models import Comment, Like, User, post_stats
from instaclone.schemas import CommentWithUser, PostWithUser, UserOut
from instaclone.telemetry import AGGREGATION_LATENCY

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

# Stand-in author for comments whose user row is missing, so the
# response shape stays total.
EMPTY_AUTHOR = UserOut(id="", external_id="", name="", profile_image_url=None, created_at=None)

_POST_FIELDS = ("id", "user_id", "image_url", "caption", "created_at", "updated_at")


def extract_author(value: Any) -> Optional[UserOut]:
    """
    Normalise an embedded author to a single record.

    Joined relations arrive either as one record or as a one-element
    collection depending on the join; both (ORM rows or plain mappings)
    collapse to a UserOut. Anything without an id yields None.
    """
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if value is None:
        return None
    if isinstance(value, User):
        return UserOut.model_validate(value)
    if isinstance(value, Mapping) and value.get("id"):
        return UserOut(
            id=str(value["id"]),
            external_id=value.get("external_id") or "",
            name=value.get("name") or "",
            profile_image_url=value.get("profile_image_url"),
            created_at=value.get("created_at"),
        )
    return None


def normalize_comment(comment: Comment) -> CommentWithUser:
    author = extract_author(comment.author)
    return CommentWithUser(
        id=comment.id,
        post_id=comment.post_id,
        user_id=comment.user_id or (author.id if author else ""),
        content=comment.content,
        created_at=comment.created_at,
        updated_at=comment.updated_at,
        user=author or EMPTY_AUTHOR,
    )


def _split_post(row: Any) -> tuple[dict, Any]:
    """Core post fields plus the raw embedded author, from an ORM row or a mapping."""
    if isinstance(row, Mapping):
        return {name: row.get(name) for name in _POST_FIELDS}, row.get("user")
    return {name: getattr(row, name) for name in _POST_FIELDS}, row.author


async def _fetch_counts(db: AsyncSession, post_ids: list[str]) -> dict[str, tuple[int, int]]:
    try:
        rows = await db.execute(
            select(
                post_stats.c.post_id,
                post_stats.c.likes_count,
                post_stats.c.comments_count,
            ).where(post_stats.c.post_id.in_(post_ids))
        )
    except SQLAlchemyError as exc:
        log_error(exc, "aggregate posts - fetch stats")
        return {}
    return {r.post_id: (r.likes_count or 0, r.comments_count or 0) for r in rows}


async def _fetch_viewer_likes(
    db: AsyncSession, post_ids: list[str], viewer_subject: str
) -> set[str]:
    # Viewer resolution folded into the likes query: one round trip
    try:
        rows = await db.execute(
            select(Like.post_id)
            .join(User, User.id == Like.user_id)
            .where(User.external_id == viewer_subject, Like.post_id.in_(post_ids))
        )
    except SQLAlchemyError as exc:
        log_error(exc, "aggregate posts - fetch viewer likes")
        return set()
    return {r[0] for r in rows}


async def _fetch_preview_comments(
    db: AsyncSession, post_ids: list[str], per_post: int
) -> dict[str, list[CommentWithUser]]:
    try:
        result = await db.execute(
            select(Comment)
            .where(Comment.post_id.in_(post_ids))
            .order_by(Comment.created_at.desc(), Comment.id.desc())
        )
        comments = result.scalars().all()
    except SQLAlchemyError as exc:
        log_error(exc, "aggregate posts - fetch comments")
        return {}

    by_post: dict[str, list[CommentWithUser]] = defaultdict(list)
    for comment in comments:
        bucket = by_post[comment.post_id]
        if len(bucket) < per_post:
            bucket.append(normalize_comment(comment))
    return by_post


async def aggregate_posts(
    db: AsyncSession,
    posts: Sequence[Any],
    viewer_subject: Optional[str] = None,
) -> list[PostWithUser]:
    """
    Enrich `posts` (ORM Post rows or mappings with a "user" entry).

    Output order and length match the input. `viewer_subject` is the
    identity provider's subject id of the caller, or None for anonymous.
    """
    rows = [_split_post(p) for p in posts]
    if not rows:
        return []

    started = time.perf_counter()
    post_ids = list(dict.fromkeys(fields["id"] for fields, _ in rows))

    with tracer.start_as_current_span("aggregate_posts") as span:
        span.set_attribute("posts.count", len(post_ids))
        span.set_attribute("viewer.present", viewer_subject is not None)

        counts = await _fetch_counts(db, post_ids)
        liked = (
            await _fetch_viewer_likes(db, post_ids, viewer_subject)
            if viewer_subject
            else set()
        )
        previews = await _fetch_preview_comments(
            db, post_ids, settings.preview_comments_limit
        )

    enriched = []
    for fields, author in rows:
        likes_count, comments_count = counts.get(fields["id"], (0, 0))
        enriched.append(
            PostWithUser(
                **fields,
                user=extract_author(author),
                likes_count=likes_count,
                comments_count=comments_count,
                is_liked=fields["id"] in liked,
                preview_comments=list(previews.get(fields["id"], [])),
            )
        )

    AGGREGATION_LATENCY.observe(time.perf_counter() - started)
    return enriched


async def fetch_comments(db: AsyncSession, post_id: str) -> list[CommentWithUser]:
    """Every comment on one post, newest first. Degrades to [] on store errors."""
    try:
        result = await db.execute(
            select(Comment)
            .where(Comment.post_id == post_id)
            .order_by(Comment.created_at.desc(), Comment.id.desc())
        )
        comments = result.scalars().all()
    except SQLAlchemyError as exc:
        log_error(exc, f"GET /posts/{post_id} - fetch comments")
        return []
    return [normalize_comment(c) for c in comments]

