"""
Original Store & Register
=========================

Stores one image payload as an original and registers it as a photo:

1. Generate a photo id and derive the storage key
   ``{owner_id}/{photo_id}.{ext}``
2. Upload the bytes to the originals bucket
3. Insert the Photo row in PROCESSING
4. Schedule exactly one derivation job

Derivation never runs on the caller's thread. A failed upload registers
nothing; a failed insert removes the uploaded original again. A photo
whose job cannot be scheduled is marked FAILED but its id is returned.
"""

import logging
import uuid
from typing import Callable, Optional

from photobook.models import PhotoStatus, new_photo
from photobook.services.image_utils import get_file_extension
from photobook.services.photo_directory import PhotoDirectory
from photobook.services.storage_manager import BlobStore, StorageError
from photobook.services.thumbnail_worker import JobQueueError, ThumbnailJobQueue

logger = logging.getLogger(__name__)


def original_key(owner_id: uuid.UUID, photo_id: uuid.UUID, filename: str) -> str:
    """Storage key of an original; the extension is omitted when absent."""
    extension = get_file_extension(filename)
    if extension:
        return f"{owner_id}/{photo_id}.{extension}"
    return f"{owner_id}/{photo_id}"


class PhotoRegistrar:
    """
    Writes originals and creates their Photo records.

    Attributes:
        blob_store: Destination of the original bytes.
        directory: Photo records.
        job_queue: Pool running derivation jobs.
        derive: Job body, called with the new photo id.
        originals_bucket: Bucket receiving the originals.
    """

    def __init__(
        self,
        blob_store: BlobStore,
        directory: PhotoDirectory,
        job_queue: ThumbnailJobQueue,
        derive: Callable[[uuid.UUID], object],
        originals_bucket: str,
    ) -> None:
        self.blob_store = blob_store
        self.directory = directory
        self.job_queue = job_queue
        self.derive = derive
        self.originals_bucket = originals_bucket

    def store_photo(
        self,
        owner_id: uuid.UUID,
        filename: str,
        data: bytes,
        content_type: str,
    ) -> Optional[uuid.UUID]:
        """
        Store an original and register it for derivation.

        Args:
            owner_id: Uploading user.
            filename: Name supplied by the uploader, used for the extension.
            data: Original bytes.
            content_type: Resolved MIME type of the original.

        Returns:
            The new photo id, or None if the original could not be stored
            or registered.
        """
        photo_id = uuid.uuid4()
        storage_key = original_key(owner_id, photo_id, filename)

        try:
            self.blob_store.upload(self.originals_bucket, storage_key, data, content_type)
        except StorageError as e:
            logger.error(f"Failed to store original {filename!r}: {e}")
            return None

        try:
            self.directory.create_photo(
                new_photo(
                    photo_id=photo_id,
                    owner_id=owner_id,
                    storage_key=storage_key,
                    original_filename=filename,
                    mime_type=content_type,
                    file_size=len(data),
                )
            )
        except Exception:
            logger.exception(f"Failed to register photo for {filename!r}")
            self._discard_original(storage_key)
            return None

        logger.info(f"Registered photo {photo_id} ({filename}, {len(data)} bytes)")

        try:
            self.job_queue.submit(self.derive, photo_id)
        except JobQueueError as e:
            logger.error(f"Could not schedule derivation for photo {photo_id}: {e}")
            self.directory.update_photo(photo_id, status=PhotoStatus.FAILED)

        return photo_id

    def _discard_original(self, storage_key: str) -> None:
        try:
            self.blob_store.delete(self.originals_bucket, storage_key)
        except StorageError as e:
            logger.error(f"Failed to remove orphaned original {storage_key}: {e}")
