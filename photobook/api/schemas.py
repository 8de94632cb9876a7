"""Request and response schemas for the photo endpoints."""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from photobook.models import PhotoStatus, ThumbnailSize


class UploadResponse(BaseModel):
    """Ids of the photos registered by an upload batch."""
    photo_ids: List[uuid.UUID]
    count: int = Field(..., description="Number of photos registered")


class ThumbnailResponse(BaseModel):
    """One rendition of a photo."""
    model_config = ConfigDict(from_attributes=True)

    size: ThumbnailSize
    width: int
    height: int
    file_size: int
    url: Optional[str] = None


class PhotoResponse(BaseModel):
    """
    A photo and the state of its derived assets.

    ``width``, ``height`` and ``metadata`` stay null until the photo is
    READY. ``thumbnails`` is empty unless the photo is READY.
    """
    id: uuid.UUID
    owner_id: uuid.UUID
    original_filename: str
    mime_type: str
    file_size: int
    status: PhotoStatus
    width: Optional[int] = None
    height: Optional[int] = None
    metadata: Optional[Dict[str, Any]] = None
    original_url: Optional[str] = None
    thumbnails: List[ThumbnailResponse] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
