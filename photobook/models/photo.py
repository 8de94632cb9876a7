"""
Photo and PhotoThumbnail Models
===============================

A ``Photo`` row is created for every original that reaches the blob store.
It starts in ``PROCESSING`` and is moved exactly once, by the background
worker assigned to it, to ``READY`` or ``FAILED``:

```
PROCESSING ──► READY    (width/height/metadata set, three thumbnails)
     │
     └──────► FAILED   (derived fields unset, no thumbnails)
```

``PhotoThumbnail`` rows hold the derived JPEG renditions, one per size
class. Records are built through ``new_photo`` / ``new_thumbnail`` which
stamp their timestamps at construction time.
"""

import enum
import uuid
from dataclasses import asdict, dataclass, fields
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from photobook.models.base import Base, utcnow


# =============================================================================
# ENUMERATION TYPES
# =============================================================================

class PhotoStatus(str, enum.Enum):
    """Processing state of a photo's derived assets."""
    PROCESSING = "PROCESSING"
    READY = "READY"
    FAILED = "FAILED"


class ThumbnailSize(str, enum.Enum):
    """
    Closed vocabulary of thumbnail size classes.

    Declaration order is the order renditions are generated and listed in.
    """
    SMALL = "SMALL"
    MEDIUM = "MEDIUM"
    LARGE = "LARGE"


# =============================================================================
# CAMERA METADATA
# =============================================================================

@dataclass(frozen=True)
class PhotoMetadata:
    """
    Camera and capture attributes read from an original's EXIF block.

    Every field is independently optional. ``PhotoMetadata()`` is the
    explicit "nothing could be read" value.
    """
    make: Optional[str] = None
    model: Optional[str] = None
    orientation: Optional[int] = None
    taken_at: Optional[datetime] = None
    exposure_time: Optional[str] = None
    f_number: Optional[float] = None
    iso: Optional[int] = None
    focal_length: Optional[float] = None

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready dict holding only the fields that are present."""
        data = {key: value for key, value in asdict(self).items() if value is not None}
        if self.taken_at is not None:
            data["taken_at"] = self.taken_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "PhotoMetadata":
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        values = {key: value for key, value in data.items() if key in known}
        if isinstance(values.get("taken_at"), str):
            values["taken_at"] = datetime.fromisoformat(values["taken_at"])
        return cls(**values)


# =============================================================================
# PHOTO TABLE
# =============================================================================

class Photo(Base):
    """
    An uploaded original and the state of its derived assets.

    Attributes:
        id: Photo identifier, also embedded in the storage key.
        owner_id: User who uploaded the original.
        storage_key: Key of the original in the originals bucket
            (``{owner_id}/{photo_id}.{ext}``).
        original_filename: Filename as supplied by the uploader.
        mime_type: Declared or inferred content type of the original.
        file_size: Size of the original in bytes.
        width: Decoded width, set only when READY.
        height: Decoded height, set only when READY.
        exif_data: ``PhotoMetadata.to_dict()`` output, set only when READY.
        status: See ``PhotoStatus``.
    """

    __tablename__ = "photos"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)

    storage_key: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
        comment="Key of the original in the originals bucket",
    )
    original_filename: Mapped[str] = mapped_column(String(255), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # -------------------------------------------------------------------------
    # Derived fields (written together by the worker on success)
    # -------------------------------------------------------------------------
    width: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    height: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    exif_data: Mapped[Optional[dict]] = mapped_column(
        JSON,
        nullable=True,
        comment="Camera metadata extracted from the original",
    )

    status: Mapped[PhotoStatus] = mapped_column(
        Enum(PhotoStatus, name="photo_status", native_enum=False, length=20),
        nullable=False,
        default=PhotoStatus.PROCESSING,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    @property
    def camera_metadata(self) -> Optional[PhotoMetadata]:
        """Typed view of ``exif_data``; None until the photo is READY."""
        if self.exif_data is None:
            return None
        return PhotoMetadata.from_dict(self.exif_data)


# =============================================================================
# THUMBNAIL TABLE
# =============================================================================

class PhotoThumbnail(Base):
    """One JPEG rendition of a photo at a given size class."""

    __tablename__ = "photo_thumbnails"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    photo_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("photos.id", ondelete="CASCADE"),
        nullable=False,
    )
    size: Mapped[ThumbnailSize] = mapped_column(
        Enum(ThumbnailSize, name="thumbnail_size", native_enum=False, length=20),
        nullable=False,
    )
    storage_key: Mapped[str] = mapped_column(String(500), nullable=False)
    width: Mapped[int] = mapped_column(Integer, nullable=False)
    height: Mapped[int] = mapped_column(Integer, nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("photo_id", "size", name="uq_photo_thumbnails_photo_size"),
        Index("ix_photo_thumbnails_photo_id", "photo_id"),
    )


# =============================================================================
# FACTORIES
# =============================================================================

def new_photo(
    *,
    photo_id: uuid.UUID,
    owner_id: uuid.UUID,
    storage_key: str,
    original_filename: str,
    mime_type: str,
    file_size: int,
) -> Photo:
    """Build a PROCESSING photo with no derived fields."""
    now = utcnow()
    return Photo(
        id=photo_id,
        owner_id=owner_id,
        storage_key=storage_key,
        original_filename=original_filename,
        mime_type=mime_type,
        file_size=file_size,
        width=None,
        height=None,
        exif_data=None,
        status=PhotoStatus.PROCESSING,
        created_at=now,
        updated_at=now,
    )


def new_thumbnail(
    *,
    photo_id: uuid.UUID,
    size: ThumbnailSize,
    storage_key: str,
    width: int,
    height: int,
    file_size: int,
) -> PhotoThumbnail:
    return PhotoThumbnail(
        id=uuid.uuid4(),
        photo_id=photo_id,
        size=size,
        storage_key=storage_key,
        width=width,
        height=height,
        file_size=file_size,
        created_at=utcnow(),
    )
