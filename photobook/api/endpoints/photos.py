"""Photo upload, status and deletion endpoints.

Uploads return as soon as the originals are stored and registered;
clients poll ``GET /photos/{photo_id}`` until the status leaves
PROCESSING.

The handlers are plain ``def`` functions so FastAPI runs them in its
thread pool; storage and database calls in the pipeline are blocking.
"""

import logging
import uuid
from typing import List

from fastapi import APIRouter, File, Response, UploadFile, status

from photobook.api.deps import OwnerId, Pipeline
from photobook.api.schemas import PhotoResponse, ThumbnailResponse, UploadResponse
from photobook.core.exceptions import NotFoundException, ValidationException
from photobook.services.ingest import UploadItem

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/photos", tags=["Photos"])


@router.post(
    "",
    response_model=UploadResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload Photos",
    description="Upload images or zip archives of images for one owner.",
)
def upload_photos(
    pipeline: Pipeline,
    owner_id: OwnerId,
    files: List[UploadFile] = File(..., description="Images or zip archives"),
) -> UploadResponse:
    """Store and register every qualifying image of the batch.

    Unsupported files and unreadable archives are skipped, so the
    number of ids returned can differ from the number of files sent.
    """
    if not files:
        raise ValidationException("No files uploaded")

    items = [
        UploadItem(
            filename=file.filename,
            content_type=file.content_type,
            size=file.size or 0,
            stream=file.file,
        )
        for file in files
    ]
    photo_ids = pipeline.upload_photos(owner_id, items)

    return UploadResponse(photo_ids=photo_ids, count=len(photo_ids))


@router.get(
    "/{photo_id}",
    response_model=PhotoResponse,
    summary="Get Photo",
    description="Processing status, metadata and thumbnail links of a photo.",
)
def get_photo(photo_id: uuid.UUID, pipeline: Pipeline) -> PhotoResponse:
    photo = pipeline.get_photo(photo_id)
    if photo is None:
        raise NotFoundException("Photo not found", details={"photo_id": str(photo_id)})

    urls = pipeline.presigned_urls(photo)
    thumbnails = [
        ThumbnailResponse(
            size=thumbnail.size,
            width=thumbnail.width,
            height=thumbnail.height,
            file_size=thumbnail.file_size,
            url=urls.get(thumbnail.size.value),
        )
        for thumbnail in pipeline.get_thumbnails(photo_id)
    ]

    return PhotoResponse(
        id=photo.id,
        owner_id=photo.owner_id,
        original_filename=photo.original_filename,
        mime_type=photo.mime_type,
        file_size=photo.file_size,
        status=photo.status,
        width=photo.width,
        height=photo.height,
        metadata=photo.exif_data,
        original_url=urls["original"],
        thumbnails=thumbnails,
        created_at=photo.created_at,
        updated_at=photo.updated_at,
    )


@router.delete(
    "/{photo_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Photo",
    description="Delete a photo with its thumbnails and stored blobs.",
)
def delete_photo(photo_id: uuid.UUID, pipeline: Pipeline) -> Response:
    if not pipeline.delete_photo(photo_id):
        raise NotFoundException("Photo not found", details={"photo_id": str(photo_id)})
    return Response(status_code=status.HTTP_204_NO_CONTENT)
