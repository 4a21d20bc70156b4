"""
Post endpoints:
  GET    /posts           — newest-first page of posts (optionally one author's)
  POST   /posts           — upload an image and publish a post
  GET    /posts/{id}      — one post plus its full comment thread
  DELETE /posts/{id}      — delete your own post and its image
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from opentelemetry import trace
from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from instaclone.aggregation import aggregate_posts, fetch_comments
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
from instaclone.models import Post
from instaclone.schemas import (
    PostCreateResponse,
    PostDetailResponse,
    PostListResponse,
    SuccessResponse,
)
from instaclone.telemetry import POSTS_CREATED_TOTAL, POSTS_DELETED_TOTAL
from instaclone.uploads import read_image_upload

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


@router.get("", response_model=PostListResponse)
async def list_posts(
    limit: int = Query(settings.posts_page_size, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user_id: Optional[str] = Query(None, alias="userId"),
    viewer: Optional[str] = Depends(get_subject),
    db: AsyncSession = Depends(get_db),
):
    with tracer.start_as_current_span("list_posts") as span:
        span.set_attribute("page.limit", limit)
        span.set_attribute("page.offset", offset)

        query = select(Post).order_by(Post.created_at.desc(), Post.id.desc())
        count_query = select(func.count(Post.id))
        if user_id:
            query = query.where(Post.user_id == user_id)
            count_query = count_query.where(Post.user_id == user_id)

        try:
            posts = (await db.execute(query.offset(offset).limit(limit))).scalars().all()
            total = (await db.execute(count_query)).scalar_one()
        except SQLAlchemyError as exc:
            raise server_error_from(exc, "GET /posts - fetch posts")

        enriched = await aggregate_posts(db, posts, viewer)
        return PostListResponse(
            posts=enriched,
            has_more=offset + limit < total,
            total=total,
        )


@router.post("", response_model=PostCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_post(
    image: Optional[UploadFile] = File(None),
    caption: Optional[str] = Form(None),
    subject: str = Depends(require_subject),
    db: AsyncSession = Depends(get_db),
):
    """
    Publish a photo post.

    1. Resolve the caller's users row.
    2. Validate the image (present, ≤ 5MB, JPEG/PNG/WebP) and caption length.
    3. Upload the image to the posts bucket.
    4. Insert the row; if that fails, remove the uploaded object again.
    """
    with tracer.start_as_current_span("create_post") as span:
        user = await get_acting_user(db, subject, "POST /posts")

        data = await read_image_upload(image, "An image file is required.")
        if caption and len(caption) > settings.max_caption_length:
            raise BadRequest(
                f"Captions can be at most {settings.max_caption_length:,} characters."
            )

        bucket = settings.storage_posts_bucket
        key = build_object_key(subject, image.filename)
        try:
            image_url = upload_object(bucket, key, data, image.content_type)
        except Exception as exc:
            log_error(exc, "POST /posts - upload image")
            raise ServerError("Image upload failed.")

        post = Post(
            user_id=user.id,
            image_url=image_url,
            caption=(caption or "").strip() or None,
        )
        db.add(post)
        try:
            await db.commit()
            await db.refresh(post, attribute_names=["author"])
        except SQLAlchemyError as exc:
            await db.rollback()
            delete_object_quietly(bucket, key)
            raise server_error_from(exc, "POST /posts - create post")

        span.set_attribute("post.id", post.id)
        span.set_attribute("post.user_id", post.user_id)

        [enriched] = await aggregate_posts(db, [post], subject)

        POSTS_CREATED_TOTAL.inc()
        logger.info("Post created: %s by user %s", post.id, post.user_id)
        return PostCreateResponse(post=enriched)


@router.get("/{post_id}", response_model=PostDetailResponse)
async def get_post(
    post_id: str,
    viewer: Optional[str] = Depends(get_subject),
    db: AsyncSession = Depends(get_db),
):
    try:
        post = await db.get(Post, post_id)
    except SQLAlchemyError as exc:
        raise server_error_from(exc, "GET /posts/{id} - fetch post")
    if not post:
        raise NotFound("Post not found.")

    [enriched] = await aggregate_posts(db, [post], viewer)
    comments = await fetch_comments(db, post_id)
    return PostDetailResponse(post=enriched, comments=comments)


@router.delete("/{post_id}", response_model=SuccessResponse)
async def delete_post(
    post_id: str,
    subject: str = Depends(require_subject),
    db: AsyncSession = Depends(get_db),
):
    """
    Delete your own post. Likes and comments go with it (store cascade);
    the image is removed afterwards on a best-effort basis.
    """
    with tracer.start_as_current_span("delete_post"):
        user = await get_acting_user(db, subject, "DELETE /posts/{id}")

        try:
            post = await db.get(Post, post_id)
        except SQLAlchemyError as exc:
            raise server_error_from(exc, "DELETE /posts/{id} - fetch post")
        if not post:
            raise NotFound("Post not found.")
        if post.user_id != user.id:
            raise Forbidden("You can only delete your own posts.")

        image_url = post.image_url
        try:
            await db.execute(delete(Post).where(Post.id == post_id, Post.user_id == user.id))
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            raise server_error_from(exc, "DELETE /posts/{id} - delete post")

        bucket = settings.storage_posts_bucket
        key = key_from_url(bucket, image_url)
        if key is None:
            logger.warning("Post %s image %s is not in bucket '%s'", post_id, image_url, bucket)
        else:
            delete_object_quietly(bucket, key)

        POSTS_DELETED_TOTAL.inc()
        logger.info("Post deleted: %s by user %s", post_id, user.id)
        return SuccessResponse()
