"""
Photo service: profile photos in a blob table keyed by user id.

Photos are fetched on demand and never replicated; the user's profile only
carries ``photo_ref``, a short content hash clients use to bust caches.
"""

import hashlib
import logging
import os
from typing import Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from matchday.database.models import UserPhoto

logger = logging.getLogger(__name__)

# Validation constants
MAX_PHOTO_BYTES = int(os.getenv("MAX_PHOTO_BYTES", str(200 * 1024)))  # 200KB
ALLOWED_CONTENT_TYPES = {"image/jpeg", "image/png", "image/webp"}

# Leading bytes of each allowed format
_SIGNATURES = {
    "image/jpeg": lambda data: data.startswith(b"\xff\xd8\xff"),
    "image/png": lambda data: data.startswith(b"\x89PNG\r\n\x1a\n"),
    "image/webp": lambda data: data[:4] == b"RIFF" and data[8:12] == b"WEBP",
}


def validate_photo(data: bytes, content_type: str) -> Tuple[bool, str]:
    """
    Validate an uploaded photo.

    Checks size, declared content type and that the bytes actually start
    like that format.

    Returns:
        Tuple of (is_valid, error_message). error_message is empty string if valid.
    """
    if not data:
        return False, "Photo is empty"
    if len(data) > MAX_PHOTO_BYTES:
        return False, f"Photo exceeds maximum of {MAX_PHOTO_BYTES // 1024}KB"
    if content_type not in ALLOWED_CONTENT_TYPES:
        return False, f"Invalid file type '{content_type}'. Allowed: JPEG, PNG, WebP"
    if not _SIGNATURES[content_type](data):
        return False, f"File content does not match '{content_type}'"
    return True, ""


def photo_ref_for(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()[:16]


async def save_photo(session: AsyncSession, user_id: str, data: bytes, content_type: str) -> str:
    """
    Store (or replace) a user's photo.

    Args:
        session: Database session
        user_id: Owner of the photo
        data: Raw image bytes
        content_type: MIME type from the upload

    Returns:
        The new photo reference

    Raises:
        ValueError: If the photo fails validation
    """
    is_valid, error = validate_photo(data, content_type)
    if not is_valid:
        raise ValueError(error)

    photo = await session.get(UserPhoto, user_id)
    if photo is None:
        session.add(UserPhoto(user_id=user_id, content_type=content_type, data=data))
    else:
        photo.content_type = content_type
        photo.data = data
    await session.flush()

    photo_ref = photo_ref_for(data)
    logger.info(f"Stored photo {photo_ref} for user {user_id} ({len(data)} bytes)")
    return photo_ref


async def get_photo(session: AsyncSession, user_id: str) -> Optional[Tuple[bytes, str]]:
    """
    Returns:
        ``(data, content_type)``, or None if the user has no photo
    """
    result = await session.execute(select(UserPhoto).where(UserPhoto.user_id == user_id))
    photo = result.scalar_one_or_none()
    if photo is None:
        return None
    return photo.data, photo.content_type
