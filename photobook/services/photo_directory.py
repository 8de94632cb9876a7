"""Persistence of Photo and PhotoThumbnail records.

Every method opens its own short-lived session so the directory can be
shared by the upload request path and all derivation worker threads.
"""

import logging
import uuid
from typing import Any, List, Optional

from sqlalchemy import Engine, delete, select, update
from sqlalchemy.orm import Session, sessionmaker

from photobook.models import Base, Photo, PhotoThumbnail, ThumbnailSize, utcnow

logger = logging.getLogger(__name__)

_SIZE_ORDER = {size: position for position, size in enumerate(ThumbnailSize)}


class PhotoNotFoundError(Exception):
    """Raised when updating a photo that has no record."""
    pass


class PhotoDirectory:
    """SQLAlchemy-backed store for photos and their thumbnails.

    Attributes:
        engine: Engine the sessions are bound to.
    """

    def __init__(self, engine: Engine, session_factory: sessionmaker[Session]) -> None:
        self.engine = engine
        self._session_factory = session_factory

    def create_schema(self) -> None:
        """Create the photos and photo_thumbnails tables if missing."""
        Base.metadata.create_all(self.engine)

    # -------------------------------------------------------------------------
    # Photos
    # -------------------------------------------------------------------------

    def create_photo(self, photo: Photo) -> uuid.UUID:
        """Insert a new photo record.

        Args:
            photo: Record built with ``new_photo``.

        Returns:
            The photo's id.
        """
        with self._session_factory.begin() as session:
            session.add(photo)
        logger.debug(f"Created photo record: {photo.id}")
        return photo.id

    def get_photo(self, photo_id: uuid.UUID) -> Optional[Photo]:
        with self._session_factory() as session:
            return session.get(Photo, photo_id)

    def update_photo(self, photo_id: uuid.UUID, **fields: Any) -> None:
        """Apply ``fields`` to one photo in a single UPDATE statement.

        ``updated_at`` is stamped as part of the same statement, so a
        concurrent reader sees either all of the new values or none.

        Args:
            photo_id: Photo to update.
            **fields: Column values to set.

        Raises:
            PhotoNotFoundError: If no photo has this id.
        """
        values = dict(fields, updated_at=utcnow())
        with self._session_factory.begin() as session:
            result = session.execute(
                update(Photo).where(Photo.id == photo_id).values(**values)
            )
            if result.rowcount == 0:
                raise PhotoNotFoundError(f"No photo with id {photo_id}")

    def delete_photo(self, photo_id: uuid.UUID) -> bool:
        """Delete a photo record together with its thumbnail rows.

        Returns:
            True if a photo was deleted, False if it didn't exist.
        """
        with self._session_factory.begin() as session:
            session.execute(
                delete(PhotoThumbnail).where(PhotoThumbnail.photo_id == photo_id)
            )
            result = session.execute(delete(Photo).where(Photo.id == photo_id))
        return result.rowcount > 0

    # -------------------------------------------------------------------------
    # Thumbnails
    # -------------------------------------------------------------------------

    def create_thumbnail(self, thumbnail: PhotoThumbnail) -> uuid.UUID:
        with self._session_factory.begin() as session:
            session.add(thumbnail)
        logger.debug(
            f"Created {thumbnail.size.value} thumbnail record for photo: {thumbnail.photo_id}"
        )
        return thumbnail.id

    def find_thumbnails(self, photo_id: uuid.UUID) -> List[PhotoThumbnail]:
        """Thumbnails of a photo, ordered SMALL, MEDIUM, LARGE."""
        with self._session_factory() as session:
            result = session.scalars(
                select(PhotoThumbnail).where(PhotoThumbnail.photo_id == photo_id)
            )
            return sorted(result, key=lambda thumb: _SIZE_ORDER[thumb.size])

    def delete_thumbnails(self, photo_id: uuid.UUID) -> int:
        """Delete all thumbnail rows of a photo.

        Returns:
            Number of rows deleted.
        """
        with self._session_factory.begin() as session:
            result = session.execute(
                delete(PhotoThumbnail).where(PhotoThumbnail.photo_id == photo_id)
            )
        return result.rowcount
