"""Tests for the SQLAlchemy photo directory."""

import uuid

import pytest
from sqlalchemy.exc import IntegrityError

from photobook.models import PhotoMetadata, PhotoStatus, ThumbnailSize, new_photo, new_thumbnail
from photobook.services.photo_directory import PhotoNotFoundError

pytestmark = pytest.mark.unit


def _photo(owner_id=None, photo_id=None):
    owner_id = owner_id or uuid.uuid4()
    photo_id = photo_id or uuid.uuid4()
    return new_photo(
        photo_id=photo_id,
        owner_id=owner_id,
        storage_key=f"{owner_id}/{photo_id}.jpg",
        original_filename="beach.jpg",
        mime_type="image/jpeg",
        file_size=1234,
    )


def _thumbnail(photo_id, size, width=50, height=25):
    return new_thumbnail(
        photo_id=photo_id,
        size=size,
        storage_key=f"x/{photo_id}_{size.value.lower()}.jpg",
        width=width,
        height=height,
        file_size=321,
    )


class TestPhotos:

    def test_create_and_get(self, directory):
        photo = _photo()

        assert directory.create_photo(photo) == photo.id

        stored = directory.get_photo(photo.id)
        assert stored.status == PhotoStatus.PROCESSING
        assert stored.original_filename == "beach.jpg"
        assert stored.file_size == 1234
        assert stored.width is None and stored.height is None
        assert stored.exif_data is None
        assert stored.camera_metadata is None

    def test_get_missing_returns_none(self, directory):
        assert directory.get_photo(uuid.uuid4()) is None

    def test_update_sets_fields_and_timestamp(self, directory):
        photo = _photo()
        directory.create_photo(photo)
        before = directory.get_photo(photo.id).updated_at

        directory.update_photo(
            photo.id,
            status=PhotoStatus.READY,
            width=200,
            height=100,
            exif_data={"make": "TestCamera", "iso": 200},
        )

        stored = directory.get_photo(photo.id)
        assert stored.status == PhotoStatus.READY
        assert (stored.width, stored.height) == (200, 100)
        assert stored.camera_metadata == PhotoMetadata(make="TestCamera", iso=200)
        assert stored.updated_at >= before

    def test_update_missing_raises(self, directory):
        with pytest.raises(PhotoNotFoundError):
            directory.update_photo(uuid.uuid4(), status=PhotoStatus.FAILED)

    def test_delete_removes_photo_and_thumbnails(self, directory):
        photo = _photo()
        directory.create_photo(photo)
        directory.create_thumbnail(_thumbnail(photo.id, ThumbnailSize.SMALL))

        assert directory.delete_photo(photo.id) is True
        assert directory.get_photo(photo.id) is None
        assert directory.find_thumbnails(photo.id) == []
        assert directory.delete_photo(photo.id) is False


class TestThumbnails:

    def test_listed_in_size_order(self, directory):
        photo = _photo()
        directory.create_photo(photo)
        for size in (ThumbnailSize.LARGE, ThumbnailSize.SMALL, ThumbnailSize.MEDIUM):
            directory.create_thumbnail(_thumbnail(photo.id, size))

        sizes = [thumb.size for thumb in directory.find_thumbnails(photo.id)]
        assert sizes == [ThumbnailSize.SMALL, ThumbnailSize.MEDIUM, ThumbnailSize.LARGE]

    def test_one_per_size_class(self, directory):
        photo = _photo()
        directory.create_photo(photo)
        directory.create_thumbnail(_thumbnail(photo.id, ThumbnailSize.SMALL))

        with pytest.raises(IntegrityError):
            directory.create_thumbnail(_thumbnail(photo.id, ThumbnailSize.SMALL))

    def test_thumbnails_scoped_to_photo(self, directory):
        first, second = _photo(), _photo()
        directory.create_photo(first)
        directory.create_photo(second)
        directory.create_thumbnail(_thumbnail(first.id, ThumbnailSize.SMALL))

        assert directory.find_thumbnails(second.id) == []

    def test_delete_thumbnails_counts_rows(self, directory):
        photo = _photo()
        directory.create_photo(photo)
        directory.create_thumbnail(_thumbnail(photo.id, ThumbnailSize.SMALL))
        directory.create_thumbnail(_thumbnail(photo.id, ThumbnailSize.MEDIUM))

        assert directory.delete_thumbnails(photo.id) == 2
        assert directory.delete_thumbnails(photo.id) == 0
        assert directory.get_photo(photo.id) is not None
