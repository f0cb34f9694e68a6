"""
Tests for profile photo validation and storage.
"""

import pytest

from matchday.services import photo_service

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
JPEG = b"\xff\xd8\xff\xe0" + b"\x00" * 64
WEBP = b"RIFF\x00\x00\x00\x00WEBPVP8 " + b"\x00" * 64


class TestValidatePhoto:
    @pytest.mark.parametrize(
        "data,content_type",
        [(PNG, "image/png"), (JPEG, "image/jpeg"), (WEBP, "image/webp")],
    )
    def test_accepts_supported_formats(self, data, content_type):
        assert photo_service.validate_photo(data, content_type) == (True, "")

    def test_rejects_empty(self):
        is_valid, error = photo_service.validate_photo(b"", "image/png")
        assert not is_valid
        assert "empty" in error

    def test_rejects_oversized(self):
        data = PNG + b"\x00" * photo_service.MAX_PHOTO_BYTES
        is_valid, error = photo_service.validate_photo(data, "image/png")
        assert not is_valid
        assert "maximum" in error

    def test_rejects_unsupported_type(self):
        is_valid, error = photo_service.validate_photo(b"GIF89a", "image/gif")
        assert not is_valid
        assert "Invalid file type" in error

    def test_rejects_mismatched_content(self):
        is_valid, error = photo_service.validate_photo(JPEG, "image/png")
        assert not is_valid
        assert "does not match" in error


class TestStorage:
    @pytest.mark.asyncio
    async def test_save_and_get(self, db_session):
        photo_ref = await photo_service.save_photo(db_session, "u1", PNG, "image/png")
        await db_session.commit()

        assert photo_ref == photo_service.photo_ref_for(PNG)
        assert await photo_service.get_photo(db_session, "u1") == (PNG, "image/png")

    @pytest.mark.asyncio
    async def test_replace_photo_changes_ref(self, db_session):
        first = await photo_service.save_photo(db_session, "u1", PNG, "image/png")
        second = await photo_service.save_photo(db_session, "u1", JPEG, "image/jpeg")
        await db_session.commit()

        assert first != second
        assert await photo_service.get_photo(db_session, "u1") == (JPEG, "image/jpeg")

    @pytest.mark.asyncio
    async def test_invalid_photo_is_not_stored(self, db_session):
        with pytest.raises(ValueError):
            await photo_service.save_photo(db_session, "u1", b"not an image", "image/png")
        assert await photo_service.get_photo(db_session, "u1") is None

    @pytest.mark.asyncio
    async def test_missing_photo(self, db_session):
        assert await photo_service.get_photo(db_session, "nobody") is None
