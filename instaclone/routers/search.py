"""
Search endpoint — GET /search?q=<text>&type=all|users|posts&limit=<n>

Case-insensitive substring match on user names and post captions, newest
first. A failing branch is logged and comes back empty rather than failing
the whole search.
"""
import logging

from fastapi import APIRouter, Depends, Query
from opentelemetry import trace
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from instaclone.aggregation import aggregate_posts
from instaclone.config import settings
from instaclone.database import get_db
from instaclone.errors import BadRequest, log_error
from instaclone.models import Post, User
from instaclone.schemas import PostWithUser, SearchResponse, UserOut

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)

SEARCH_TYPES = ("all", "users", "posts")


async def _search_users(db: AsyncSession, query: str, limit: int) -> list[UserOut]:
    try:
        result = await db.execute(
            select(User)
            .where(User.name.icontains(query, autoescape=True))
            .order_by(User.created_at.desc())
            .limit(limit)
        )
    except SQLAlchemyError as exc:
        log_error(exc, "GET /search - search users")
        return []
    return [UserOut.model_validate(u) for u in result.scalars().all()]


async def _search_posts(db: AsyncSession, query: str, limit: int) -> list[PostWithUser]:
    try:
        result = await db.execute(
            select(Post)
            .where(Post.caption.icontains(query, autoescape=True))
            .order_by(Post.created_at.desc(), Post.id.desc())
            .limit(limit)
        )
        posts = result.scalars().all()
    except SQLAlchemyError as exc:
        log_error(exc, "GET /search - search posts")
        return []
    # Search results don't carry the viewer's like state
    return await aggregate_posts(db, posts, viewer_subject=None)


@router.get("", response_model=SearchResponse)
async def search(
    q: str = Query(""),
    type: str = Query("all"),
    limit: int = Query(settings.search_default_limit),
    db: AsyncSession = Depends(get_db),
):
    query = q.strip()
    if len(query) < settings.search_min_query_length:
        raise BadRequest(
            f"Search terms must be at least {settings.search_min_query_length} characters."
        )
    if not 1 <= limit <= settings.search_max_limit:
        raise BadRequest(f"limit must be between 1 and {settings.search_max_limit}.")
    if type not in SEARCH_TYPES:
        raise BadRequest("type must be one of: all, users, posts.")

    with tracer.start_as_current_span("search") as span:
        span.set_attribute("search.type", type)
        span.set_attribute("search.limit", limit)

        users = await _search_users(db, query, limit) if type in ("all", "users") else []
        posts = await _search_posts(db, query, limit) if type in ("all", "posts") else []

        logger.debug("Search %r (%s): %d users, %d posts", query, type, len(users), len(posts))
        return SearchResponse(users=users, posts=posts, query=query, type=type)
