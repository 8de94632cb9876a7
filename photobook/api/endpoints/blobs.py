"""Presigned blob downloads.

Serves the targets of the URLs built by ``LocalBlobStore.presign``.
A request is honoured only while its signature is valid and unexpired.
"""

from fastapi import APIRouter, Query
from fastapi.responses import FileResponse

from photobook.api.deps import Pipeline
from photobook.core.exceptions import ForbiddenException, NotFoundException
from photobook.services.storage_manager import LocalBlobStore, StorageError

router = APIRouter(prefix="/blobs", tags=["Blobs"])


@router.get(
    "/{bucket}/{key:path}",
    response_class=FileResponse,
    summary="Download Blob",
    description="Download an original or thumbnail through a presigned link.",
)
def download_blob(
    bucket: str,
    key: str,
    pipeline: Pipeline,
    expires: int = Query(..., description="Expiry as a unix timestamp"),
    signature: str = Query(..., description="Hex HMAC-SHA256 signature"),
) -> FileResponse:
    """Stream one blob from the local store.

    Raises:
        ForbiddenException: Invalid or expired signature.
        NotFoundException: The blob doesn't exist.
    """
    store = pipeline.blob_store
    if not isinstance(store, LocalBlobStore):
        raise NotFoundException("Blob downloads are not served by this store")

    if not store.verify_presigned(bucket, key, expires, signature):
        raise ForbiddenException("Invalid or expired link")

    try:
        path = store.path_for(bucket, key)
    except StorageError:
        raise NotFoundException("Blob not found")
    if not path.is_file():
        raise NotFoundException("Blob not found", details={"bucket": bucket, "key": key})

    return FileResponse(path, media_type=store.content_type(bucket, key))
