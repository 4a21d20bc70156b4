"""
Object-store (S3-compatible) client for post images and profile avatars.

Stores image bytes as objects and hands back public retrieval URLs built
from `storage_base_url/<bucket>/<key>`; the store rows only keep that URL,
so deletion recovers the key from it.
"""
import logging
import secrets
import time
from io import BytesIO
from typing import Optional

import boto3
from botocore.client import Config

from instaclone.config import settings
from instaclone.telemetry import STORAGE_ERRORS_TOTAL

logger = logging.getLogger(__name__)

_s3 = None


def init_storage() -> None:
    """Create the S3 client and ensure the posts / avatars buckets exist."""
    global _s3
    _s3 = boto3.client(
        "s3",
        endpoint_url=settings.storage_endpoint_url,
        aws_access_key_id=settings.storage_access_key,
        aws_secret_access_key=settings.storage_secret_key,
        config=Config(signature_version="s3v4"),
        region_name=settings.storage_region,
    )

    existing = [b["Name"] for b in _s3.list_buckets().get("Buckets", [])]
    for bucket in (settings.storage_posts_bucket, settings.storage_avatars_bucket):
        if bucket not in existing:
            _s3.create_bucket(Bucket=bucket)
            logger.info("Created storage bucket '%s'", bucket)
        else:
            logger.info("Storage bucket '%s' already exists", bucket)


def get_s3():
    if _s3 is None:
        raise RuntimeError("Storage client not initialised — call init_storage() at startup")
    return _s3


def build_object_key(owner: str, filename: Optional[str]) -> str:
    """
    Key format: {owner}/{epoch-ms}-{random}.{ext}
    The extension comes from the uploaded filename, defaulting to jpg.
    """
    ext = "jpg"
    if filename and "." in filename:
        ext = filename.rsplit(".", 1)[-1].lower() or "jpg"
    return f"{owner}/{int(time.time() * 1000)}-{secrets.token_hex(4)}.{ext}"


def public_url(bucket: str, key: str) -> str:
    return f"{settings.storage_base_url}/{bucket}/{key}"


def key_from_url(bucket: str, url: Optional[str]) -> Optional[str]:
    """Recover the object key from a public URL; None for foreign URLs."""
    if not url:
        return None
    prefix = f"{settings.storage_base_url}/{bucket}/"
    if not url.startswith(prefix):
        return None
    return url[len(prefix):] or None


def upload_object(bucket: str, key: str, data: bytes, content_type: str) -> str:
    """Upload bytes under bucket/key and return the object's public URL."""
    s3 = get_s3()
    try:
        s3.put_object(
            Bucket=bucket,
            Key=key,
            Body=BytesIO(data),
            ContentType=content_type,
            CacheControl="max-age=3600",
        )
    except Exception:
        STORAGE_ERRORS_TOTAL.labels(operation="upload").inc()
        raise
    logger.debug("Uploaded object %s/%s (%d bytes)", bucket, key, len(data))
    return public_url(bucket, key)


def delete_object(bucket: str, key: str) -> None:
    s3 = get_s3()
    try:
        s3.delete_object(Bucket=bucket, Key=key)
    except Exception:
        STORAGE_ERRORS_TOTAL.labels(operation="delete").inc()
        raise
    logger.debug("Deleted object %s/%s", bucket, key)


def delete_object_quietly(bucket: str, key: Optional[str]) -> bool:
    """
    Best-effort delete used for cleanup paths (compensating deletes after a
    failed insert, image removal after a post delete). Failures are logged
    and leave an orphaned object behind; they never reach the caller.
    """
    if not key:
        return False
    try:
        delete_object(bucket, key)
        return True
    except Exception as exc:
        logger.warning("Failed to delete object %s/%s: %s", bucket, key, exc)
        return False
