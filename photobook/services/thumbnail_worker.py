"""
Derived-Asset Worker and Job Queue
==================================

Every registered photo gets exactly one derivation job, run off the
upload request path:

```
download original → decode → read EXIF → SMALL/MEDIUM/LARGE renditions
        │                                         │
        └──── any unrecoverable error ────────────┴──► rollback, FAILED
                                                  │
                                   all three ok ──┴──► READY (one UPDATE)
```

Derivation is all-or-nothing: when a later size fails, the thumbnail
blobs and rows already written for the photo are removed before it is
marked FAILED. FAILED is terminal; there is no retry.

Jobs run on ``ThumbnailJobQueue``, a fixed-size thread pool with a
bounded number of waiting jobs. When it is saturated, ``submit`` blocks
for up to ``submit_timeout`` seconds and then raises ``QueueFullError``;
after ``shutdown`` it raises ``QueueClosedError``.
"""

import logging
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable, List, Mapping, Optional, Set

from PIL import Image

from photobook.models import PhotoStatus, ThumbnailSize, new_thumbnail
from photobook.services.image_processor import ImageProcessor
from photobook.services.image_utils import get_file_extension
from photobook.services.photo_directory import PhotoDirectory
from photobook.services.storage_manager import BlobStore, StorageError

logger = logging.getLogger(__name__)


class JobQueueError(Exception):
    """Raised when a derivation job cannot be scheduled."""
    pass


class QueueFullError(JobQueueError):
    """Raised when no job slot frees up within the submit timeout."""
    pass


class QueueClosedError(JobQueueError):
    """Raised when submitting to a queue that has been shut down."""
    pass


def thumbnail_key(storage_key: str, original_filename: str, size: ThumbnailSize) -> str:
    """
    Storage key of a rendition.

    The original's extension is dropped from its key and
    ``_{size}.jpg`` appended: ``u1/p1.PNG`` → ``u1/p1_small.jpg``.
    """
    extension = get_file_extension(original_filename)
    suffix = f".{extension}"
    base = storage_key
    if extension and storage_key.lower().endswith(suffix):
        base = storage_key[: -len(suffix)]
    return f"{base}_{size.value.lower()}.jpg"


class ThumbnailJobQueue:
    """
    Bounded thread pool for derivation jobs.

    At most ``max_workers`` jobs run at once and at most ``queue_size``
    more wait for a thread.

    Attributes:
        submit_timeout: Seconds ``submit`` waits for a free slot.
    """

    def __init__(self, max_workers: int = 4, queue_size: int = 100, submit_timeout: float = 30.0) -> None:
        self.submit_timeout = submit_timeout
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="thumbnail-worker",
        )
        self._slots = threading.BoundedSemaphore(max_workers + queue_size)
        self._pending: Set[Future] = set()
        self._lock = threading.Lock()

    def submit(self, fn: Callable[..., Any], *args: Any) -> Future:
        """
        Schedule ``fn(*args)`` on the pool.

        Raises:
            QueueFullError: If the pool stayed saturated for ``submit_timeout``.
            QueueClosedError: If the queue has been shut down.
        """
        if not self._slots.acquire(timeout=self.submit_timeout):
            raise QueueFullError(
                f"Derivation queue still full after {self.submit_timeout}s"
            )

        try:
            future = self._executor.submit(fn, *args)
        except RuntimeError as e:
            self._slots.release()
            raise QueueClosedError("Derivation queue is shut down") from e

        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._on_done)
        return future

    def _on_done(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)
        self._slots.release()

        if not future.cancelled() and future.exception() is not None:
            logger.error(
                "Derivation job raised",
                exc_info=future.exception(),
            )

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._pending)

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Block until every job submitted so far has finished.

        Returns:
            True if all jobs finished, False on timeout.
        """
        with self._lock:
            pending = list(self._pending)
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


class DerivedAssetWorker:
    """
    Moves one PROCESSING photo to READY or FAILED.

    Attributes:
        directory: Photo and thumbnail records.
        blob_store: Originals and thumbnails storage.
        processor: Decoding, EXIF and rendering.
        thumbnail_sizes: Max dimension per size class.
    """

    def __init__(
        self,
        directory: PhotoDirectory,
        blob_store: BlobStore,
        processor: ImageProcessor,
        thumbnail_sizes: Mapping[ThumbnailSize, int],
        originals_bucket: str,
        thumbnails_bucket: str,
    ) -> None:
        missing = set(ThumbnailSize) - set(thumbnail_sizes)
        if missing:
            raise ValueError(f"No max dimension configured for: {sorted(s.value for s in missing)}")

        self.directory = directory
        self.blob_store = blob_store
        self.processor = processor
        self.thumbnail_sizes = dict(thumbnail_sizes)
        self.originals_bucket = originals_bucket
        self.thumbnails_bucket = thumbnails_bucket

    def generate(self, photo_id: uuid.UUID) -> Optional[PhotoStatus]:
        """
        Derive metadata and thumbnails for a photo.

        Args:
            photo_id: Photo created by the registrar.

        Returns:
            The photo's final status, or None if the photo doesn't exist.
        """
        photo = self.directory.get_photo(photo_id)
        if photo is None:
            logger.warning(f"Photo not found for thumbnail generation: {photo_id}")
            return None
        if photo.status != PhotoStatus.PROCESSING:
            logger.info(f"Photo {photo_id} already {photo.status.value}, skipping")
            return photo.status

        logger.info(f"Starting thumbnail generation for photo: {photo_id}")
        uploaded_keys: List[str] = []

        try:
            original = self.blob_store.download(self.originals_bucket, photo.storage_key)
            image = self.processor.decode_image(original)
            metadata = self.processor.extract_metadata(image)
            width, height = image.size

            for size in ThumbnailSize:
                self._store_rendition(
                    photo_id,
                    photo.storage_key,
                    photo.original_filename,
                    image,
                    size,
                    uploaded_keys,
                )

            self.directory.update_photo(
                photo_id,
                status=PhotoStatus.READY,
                width=width,
                height=height,
                exif_data=metadata.to_dict(),
            )
        except Exception:
            logger.exception(f"Failed to generate thumbnails for photo: {photo_id}")
            try:
                self._rollback(photo_id, uploaded_keys)
            except Exception:
                logger.exception(f"Rollback failed for photo: {photo_id}")
            self._mark_failed(photo_id)
            return PhotoStatus.FAILED

        logger.info(f"Completed thumbnail generation for photo: {photo_id}")
        return PhotoStatus.READY

    def _store_rendition(
        self,
        photo_id: uuid.UUID,
        storage_key: str,
        original_filename: str,
        image: Image.Image,
        size: ThumbnailSize,
        uploaded_keys: List[str],
    ) -> None:
        rendition = self.processor.render_thumbnail(image, self.thumbnail_sizes[size])
        key = thumbnail_key(storage_key, original_filename, size)

        self.blob_store.upload(self.thumbnails_bucket, key, rendition.data, "image/jpeg")
        uploaded_keys.append(key)

        self.directory.create_thumbnail(
            new_thumbnail(
                photo_id=photo_id,
                size=size,
                storage_key=key,
                width=rendition.width,
                height=rendition.height,
                file_size=len(rendition.data),
            )
        )
        logger.debug(f"Stored {size.value} thumbnail for photo: {photo_id}")

    def _mark_failed(self, photo_id: uuid.UUID) -> None:
        try:
            self.directory.update_photo(photo_id, status=PhotoStatus.FAILED)
        except Exception:
            logger.exception(f"Could not mark photo {photo_id} as FAILED")

    def _rollback(self, photo_id: uuid.UUID, uploaded_keys: List[str]) -> None:
        """Remove thumbnail blobs and rows written before a failure."""
        for key in uploaded_keys:
            try:
                self.blob_store.delete(self.thumbnails_bucket, key)
            except StorageError as e:
                logger.error(f"Failed to delete thumbnail blob {key}: {e}")

        if uploaded_keys:
            removed = self.directory.delete_thumbnails(photo_id)
            logger.info(f"Rolled back {removed} thumbnail(s) for photo: {photo_id}")
