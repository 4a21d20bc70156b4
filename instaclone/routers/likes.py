"""
Like endpoints:
  POST   /likes — like a post (once per user and post)
  DELETE /likes — remove your like; succeeds whether or not one existed
"""
import logging

from fastapi import APIRouter, Depends, status
from opentelemetry import trace
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from instaclone.database import get_db
from instaclone.deps import get_acting_user, require_subject
from instaclone.errors import (
    BadRequest,
    NotFound,
    classify_store_error,
    server_error_from,
)
from instaclone.models import Like, Post
from instaclone.schemas import LikeCreateResponse, LikeOut, LikeRequest, SuccessResponse
from instaclone.telemetry import ENGAGEMENT_EVENTS_TOTAL

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)

ALREADY_LIKED = "You have already liked this post."


@router.post("", response_model=LikeCreateResponse, status_code=status.HTTP_201_CREATED)
async def like_post(
    body: LikeRequest,
    subject: str = Depends(require_subject),
    db: AsyncSession = Depends(get_db),
):
    with tracer.start_as_current_span("like_post") as span:
        span.set_attribute("post.id", body.post_id)
        user = await get_acting_user(db, subject, "POST /likes")

        try:
            post = await db.get(Post, body.post_id)
            existing = await db.execute(
                select(Like.id).where(Like.post_id == body.post_id, Like.user_id == user.id)
            )
        except SQLAlchemyError as exc:
            raise server_error_from(exc, "POST /likes - fetch post")
        if not post:
            raise NotFound("Post not found.")
        if existing.first() is not None:
            raise BadRequest(ALREADY_LIKED)

        like = Like(post_id=post.id, user_id=user.id)
        db.add(like)
        try:
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            # Lost a race with a concurrent like; the unique constraint caught it
            if classify_store_error(exc) == "unique":
                raise BadRequest(ALREADY_LIKED)
            raise server_error_from(exc, "POST /likes - create like")

        ENGAGEMENT_EVENTS_TOTAL.labels(action="like").inc()
        logger.info("User %s liked post %s", user.id, post.id)
        return LikeCreateResponse(like=LikeOut.model_validate(like))


@router.delete("", response_model=SuccessResponse)
async def unlike_post(
    body: LikeRequest,
    subject: str = Depends(require_subject),
    db: AsyncSession = Depends(get_db),
):
    with tracer.start_as_current_span("unlike_post"):
        user = await get_acting_user(db, subject, "DELETE /likes")

        try:
            await db.execute(
                delete(Like).where(Like.post_id == body.post_id, Like.user_id == user.id)
            )
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            raise server_error_from(exc, "DELETE /likes - delete like")

        ENGAGEMENT_EVENTS_TOTAL.labels(action="unlike").inc()
        return SuccessResponse()
