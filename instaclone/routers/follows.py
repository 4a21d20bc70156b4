"""
Follow endpoints:
  POST   /follows — follow another user
  DELETE /follows — unfollow; succeeds even when no follow existed
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
    Conflict,
    NotFound,
    classify_store_error,
    server_error_from,
)
from instaclone.models import Follow, User
from instaclone.schemas import FollowCreateResponse, FollowOut, FollowRequest, SuccessResponse
from instaclone.telemetry import ENGAGEMENT_EVENTS_TOTAL

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)

SELF_FOLLOW = "You cannot follow yourself."
ALREADY_FOLLOWING = "You are already following this user."


@router.post("", response_model=FollowCreateResponse, status_code=status.HTTP_201_CREATED)
async def follow_user(
    body: FollowRequest,
    subject: str = Depends(require_subject),
    db: AsyncSession = Depends(get_db),
):
    """
    Create a follower → following edge in the social graph.

    Self-follows and duplicates are rejected up front; the store's check
    and unique constraints back those checks up.
    """
    with tracer.start_as_current_span("follow_user"):
        current = await get_acting_user(db, subject, "POST /follows")
        if current.id == body.following_id:
            raise BadRequest(SELF_FOLLOW)

        try:
            target = await db.get(User, body.following_id)
            existing = await db.execute(
                select(Follow.id).where(
                    Follow.follower_id == current.id,
                    Follow.following_id == body.following_id,
                )
            )
        except SQLAlchemyError as exc:
            raise server_error_from(exc, "POST /follows - fetch user")
        if not target:
            raise NotFound("The user to follow could not be found.")
        if existing.first() is not None:
            raise Conflict(ALREADY_FOLLOWING)

        follow = Follow(follower_id=current.id, following_id=target.id)
        db.add(follow)
        try:
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            kind = classify_store_error(exc)
            if kind == "unique":
                raise Conflict(ALREADY_FOLLOWING)
            if kind == "check":
                raise BadRequest(SELF_FOLLOW)
            raise server_error_from(exc, "POST /follows - create follow")

        ENGAGEMENT_EVENTS_TOTAL.labels(action="follow").inc()
        logger.info("%s followed %s", current.id, target.id)
        return FollowCreateResponse(follow=FollowOut.model_validate(follow))


@router.delete("", response_model=SuccessResponse)
async def unfollow_user(
    body: FollowRequest,
    subject: str = Depends(require_subject),
    db: AsyncSession = Depends(get_db),
):
    # Idempotent: deleting a follow that never existed is still a success
    with tracer.start_as_current_span("unfollow_user"):
        current = await get_acting_user(db, subject, "DELETE /follows")

        try:
            await db.execute(
                delete(Follow).where(
                    Follow.follower_id == current.id,
                    Follow.following_id == body.following_id,
                )
            )
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            raise server_error_from(exc, "DELETE /follows - delete follow")

        ENGAGEMENT_EVENTS_TOTAL.labels(action="unfollow").inc()
        return SuccessResponse()
