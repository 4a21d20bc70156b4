"""
Pydantic request / response schemas for the API layer.
Kept separate from ORM models to avoid coupling transport to storage.

JSON request bodies use the camelCase keys the web client sends
(postId, commentId, followingId); response bodies are snake_case apart
from the pagination flag `hasMore`.
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


# ──────────────────────────── Users ───────────────────────────────────────

class UserOut(BaseModel):
    id: str
    external_id: str
    name: str
    profile_image_url: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ProfileUser(UserOut):
    posts_count: int = 0
    followers_count: int = 0
    following_count: int = 0
    is_following: bool = False
    is_own_profile: bool = False


class ProfileResponse(BaseModel):
    user: ProfileUser


class UserUpdateResponse(BaseModel):
    success: bool = True
    user: UserOut


# ──────────────────────────── Comments ────────────────────────────────────

class CommentWithUser(BaseModel):
    id: str
    post_id: str
    user_id: str
    content: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    user: UserOut


class CommentCreate(BaseModel):
    post_id: str = Field(..., alias="postId", min_length=1)
    content: str


class CommentDelete(BaseModel):
    comment_id: str = Field(..., alias="commentId", min_length=1)


class CommentCreateResponse(BaseModel):
    success: bool = True
    comment: CommentWithUser


# ──────────────────────────── Posts ───────────────────────────────────────

class PostWithUser(BaseModel):
    """A post enriched with its author, counts and the viewer's like flag."""
    id: str
    user_id: str
    image_url: str
    caption: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    user: Optional[UserOut] = None
    likes_count: int = 0
    comments_count: int = 0
    is_liked: bool = False
    preview_comments: list[CommentWithUser] = []


class PostListResponse(BaseModel):
    posts: list[PostWithUser]
    has_more: bool = Field(False, alias="hasMore")
    total: int = 0

    class Config:
        populate_by_name = True


class PostCreateResponse(BaseModel):
    success: bool = True
    post: PostWithUser


class PostDetailResponse(BaseModel):
    post: PostWithUser
    comments: list[CommentWithUser]


# ──────────────────────────── Likes & follows ─────────────────────────────

class LikeRequest(BaseModel):
    post_id: str = Field(..., alias="postId", min_length=1)


class LikeOut(BaseModel):
    id: str
    post_id: str
    user_id: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class LikeCreateResponse(BaseModel):
    success: bool = True
    like: LikeOut


class FollowRequest(BaseModel):
    following_id: str = Field(..., alias="followingId", min_length=1)


class FollowOut(BaseModel):
    id: str
    follower_id: str
    following_id: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class FollowCreateResponse(BaseModel):
    success: bool = True
    follow: FollowOut


class SuccessResponse(BaseModel):
    success: bool = True


# ──────────────────────────── Search ──────────────────────────────────────

class SearchResponse(BaseModel):
    users: list[UserOut]
    posts: list[PostWithUser]
    query: str
    type: str
