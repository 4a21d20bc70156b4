"""
Image upload validation shared by post creation and profile updates.
"""
from typing import Optional

from fastapi import UploadFile

from instaclone.config import settings
from instaclone.errors import BadRequest, PayloadTooLarge, UnsupportedMediaType


async def read_image_upload(upload: Optional[UploadFile], missing_message: str) -> bytes:
    """
    Read an uploaded image, enforcing presence, size and MIME type.

    Never reads more than one byte past the limit.
    """
    if upload is None or not upload.filename:
        raise BadRequest(missing_message)

    limit = settings.max_upload_bytes
    data = await upload.read(limit + 1)
    if len(data) > limit:
        raise PayloadTooLarge(f"Files must be {limit // (1024 * 1024)}MB or smaller.")

    if upload.content_type not in settings.allowed_image_types:
        raise UnsupportedMediaType("Only JPEG, PNG and WebP images can be uploaded.")

    return data
