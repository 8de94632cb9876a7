from photobook.models.base import Base, utcnow
from photobook.models.photo import (
    Photo,
    PhotoMetadata,
    PhotoStatus,
    PhotoThumbnail,
    ThumbnailSize,
    new_photo,
    new_thumbnail,
)

__all__ = [
    "Base",
    "Photo",
    "PhotoMetadata",
    "PhotoStatus",
    "PhotoThumbnail",
    "ThumbnailSize",
    "new_photo",
    "new_thumbnail",
    "utcnow",
]
