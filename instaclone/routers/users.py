"""
Profile endpoints:
  GET /users/{id} — profile with post / follower / following counts and the
                    caller's relationship to it
  PUT /users/{id} — change your own display name and/or profile image
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from opentelemetry import trace
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from instaclone.clients.storage_client import (
    build_object_key,
    delete_object_quietly,
    key_from_url,
    upload_object,
)
from instaclone.config import settings
from instaclone.database import get_db
from instaclone.deps import get_acting_user, get_subject, require_subject
from instaclone.errors import (
    BadRequest,
    Forbidden,
    NotFound,
    ServerError,
    log_error,
    server_error_from,
)
from instaclone.models import Follow, User, user_stats
from instaclone.schemas import ProfileResponse, ProfileUser, UserOut, UserUpdateResponse
from instaclone.uploads import read_image_upload

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


async def _is_following(db: AsyncSession, viewer_subject: str, user_id: str) -> bool:
    try:
        row = await db.execute(
            select(Follow.id)
            .join(User, User.id == Follow.follower_id)
            .where(User.external_id == viewer_subject, Follow.following_id == user_id)
        )
    except SQLAlchemyError as exc:
        log_error(exc, "GET /users/{id} - fetch follow state")
        return False
    return row.first() is not None


@router.get("/{user_id}", response_model=ProfileResponse)
async def get_user(
    user_id: str,
    viewer: Optional[str] = Depends(get_subject),
    db: AsyncSession = Depends(get_db),
):
    with tracer.start_as_current_span("get_user") as span:
        span.set_attribute("user.id", user_id)
        try:
            stats = (
                await db.execute(select(user_stats).where(user_stats.c.user_id == user_id))
            ).first()
            user = await db.get(User, user_id)
        except SQLAlchemyError as exc:
            raise server_error_from(exc, "GET /users/{id} - fetch user")
        if stats is None or user is None:
            raise NotFound("User not found.")

        is_own_profile = viewer is not None and user.external_id == viewer
        is_following = False
        if viewer and not is_own_profile:
            is_following = await _is_following(db, viewer, user_id)

        profile = ProfileUser(
            **UserOut.model_validate(user).model_dump(),
            posts_count=stats.posts_count or 0,
            followers_count=stats.followers_count or 0,
            following_count=stats.following_count or 0,
            is_following=is_following,
            is_own_profile=is_own_profile,
        )
        return ProfileResponse(user=profile)


@router.put("/{user_id}", response_model=UserUpdateResponse)
async def update_user(
    user_id: str,
    name: Optional[str] = Form(None),
    profile_image: Optional[UploadFile] = File(None, alias="profileImage"),
    subject: str = Depends(require_subject),
    db: AsyncSession = Depends(get_db),
):
    """
    Update your own profile.

    A new profile image is uploaded before the row changes; if the update
    fails the upload is removed again, and once it commits the previous
    image is removed on a best-effort basis.
    """
    with tracer.start_as_current_span("update_user"):
        current = await get_acting_user(db, subject, "PUT /users/{id}")
        if current.id != user_id:
            raise Forbidden("You can only edit your own profile.")

        has_image = profile_image is not None and bool(profile_image.filename)
        if name is None and not has_image:
            raise BadRequest("Provide a name or a profile image to update.")

        trimmed = None
        if name is not None:
            trimmed = name.strip()
            if not trimmed:
                raise BadRequest("Please enter a name.")
            if len(trimmed) > settings.max_name_length:
                raise BadRequest(
                    f"Names can be at most {settings.max_name_length} characters."
                )

        bucket = settings.storage_avatars_bucket
        new_key = None
        old_url = current.profile_image_url
        if has_image:
            data = await read_image_upload(profile_image, "A profile image file is required.")
            new_key = build_object_key(subject, profile_image.filename)
            try:
                current.profile_image_url = upload_object(
                    bucket, new_key, data, profile_image.content_type
                )
            except Exception as exc:
                log_error(exc, "PUT /users/{id} - upload image")
                raise ServerError("Image upload failed.")

        if trimmed is not None:
            current.name = trimmed

        try:
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            delete_object_quietly(bucket, new_key)
            raise server_error_from(exc, "PUT /users/{id} - update user")

        if new_key:
            old_key = key_from_url(bucket, old_url)
            if old_key and old_key != new_key:
                delete_object_quietly(bucket, old_key)

        logger.info("Profile updated for user %s", current.id)
        return UserUpdateResponse(user=UserOut.model_validate(current))
