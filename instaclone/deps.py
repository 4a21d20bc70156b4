"""
Request-scoped dependencies: who is calling, and which users row they are.
"""
import logging
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from instaclone.clients.identity_client import identity_client
from instaclone.config import settings
from instaclone.errors import NotFound, Unauthenticated, server_error_from
from instaclone.models import User

logger = logging.getLogger(__name__)


def _session_token(request: Request) -> Optional[str]:
    header = request.headers.get("authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return request.cookies.get(settings.identity_session_cookie)


async def get_subject(request: Request) -> Optional[str]:
    """Subject id of the signed-in caller, or None for anonymous requests."""
    return await identity_client.verify(_session_token(request))


async def require_subject(subject: Optional[str] = Depends(get_subject)) -> str:
    if not subject:
        raise Unauthenticated()
    return subject


async def find_user_by_subject(db: AsyncSession, subject: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.external_id == subject))
    return result.scalar_one_or_none()


async def get_acting_user(db: AsyncSession, subject: str, context: str) -> User:
    """
    Resolve the caller's internal users row.

    Rows are created by the identity-provider sync; a verified subject
    without one is reported as not found.
    """
    try:
        user = await find_user_by_subject(db, subject)
    except SQLAlchemyError as exc:
        raise server_error_from(exc, f"{context} - find user")
    if user is None:
        logger.info("%s: no user row for subject %s", context, subject)
        raise NotFound("User not found.")
    return user
