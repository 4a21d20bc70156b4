"""
Comment endpoints:
  POST   /comments — comment on a post
  DELETE /comments — delete one of your own comments
"""
import logging

from fastapi import APIRouter, Depends, status
from opentelemetry import trace
from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from instaclone.aggregation import normalize_comment
from instaclone.database import get_db
from instaclone.deps import get_acting_user, require_subject
from instaclone.errors import BadRequest, Forbidden, NotFound, server_error_from
from instaclone.models import Comment, Post
from instaclone.schemas import (
    CommentCreate,
    CommentCreateResponse,
    CommentDelete,
    SuccessResponse,
)
from instaclone.telemetry import ENGAGEMENT_EVENTS_TOTAL

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


@router.post("", response_model=CommentCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_comment(
    body: CommentCreate,
    subject: str = Depends(require_subject),
    db: AsyncSession = Depends(get_db),
):
    with tracer.start_as_current_span("create_comment") as span:
        content = body.content.strip()
        if not content:
            raise BadRequest("Please enter a comment.")

        user = await get_acting_user(db, subject, "POST /comments")

        try:
            post = await db.get(Post, body.post_id)
        except SQLAlchemyError as exc:
            raise server_error_from(exc, "POST /comments - fetch post")
        if not post:
            raise NotFound("Post not found.")

        comment = Comment(post_id=post.id, user_id=user.id, content=content)
        db.add(comment)
        try:
            await db.commit()
            await db.refresh(comment, attribute_names=["author"])
        except SQLAlchemyError as exc:
            await db.rollback()
            raise server_error_from(exc, "POST /comments - create comment")

        span.set_attribute("comment.id", comment.id)
        ENGAGEMENT_EVENTS_TOTAL.labels(action="comment").inc()
        logger.info("Comment %s added to post %s by user %s", comment.id, post.id, user.id)
        return CommentCreateResponse(comment=normalize_comment(comment))


@router.delete("", response_model=SuccessResponse)
async def delete_comment(
    body: CommentDelete,
    subject: str = Depends(require_subject),
    db: AsyncSession = Depends(get_db),
):
    with tracer.start_as_current_span("delete_comment"):
        user = await get_acting_user(db, subject, "DELETE /comments")

        try:
            comment = await db.get(Comment, body.comment_id)
        except SQLAlchemyError as exc:
            raise server_error_from(exc, "DELETE /comments - fetch comment")
        if not comment:
            raise NotFound("Comment not found.")
        if comment.user_id != user.id:
            raise Forbidden("You can only delete your own comments.")

        try:
            await db.execute(
                delete(Comment).where(Comment.id == comment.id, Comment.user_id == user.id)
            )
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            raise server_error_from(exc, "DELETE /comments - delete comment")

        ENGAGEMENT_EVENTS_TOTAL.labels(action="uncomment").inc()
        logger.info("Comment %s deleted by user %s", comment.id, user.id)
        return SuccessResponse()
