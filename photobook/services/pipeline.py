"""
Photo Pipeline
==============

Composition root wiring the blob store, photo directory, job queue,
registrar, dispatcher and derived-asset worker together. The HTTP layer
and tests talk to the pipeline only through this class.

```python
from photobook.core.config import get_settings
from photobook.services.pipeline import PhotoPipeline

pipeline = PhotoPipeline.from_settings(get_settings())
pipeline.start()
ids = pipeline.upload_photos(owner_id, items)
...
pipeline.shutdown()
```
"""

import logging
import uuid
from datetime import timedelta
from typing import Dict, Iterable, List, Optional

from photobook.core.config import Settings
from photobook.models import Photo, PhotoThumbnail, ThumbnailSize
from photobook.services.database import make_engine, make_session_factory
from photobook.services.image_processor import ImageProcessor
from photobook.services.ingest import IngestDispatcher, UploadItem
from photobook.services.photo_directory import PhotoDirectory
from photobook.services.photo_upload import PhotoRegistrar
from photobook.services.storage_manager import BlobStore, LocalBlobStore, StorageError
from photobook.services.thumbnail_worker import DerivedAssetWorker, ThumbnailJobQueue

logger = logging.getLogger(__name__)


class PhotoPipeline:
    """
    Upload, lookup and deletion of photos and their derived assets.

    Attributes:
        blob_store: Originals and thumbnails storage.
        directory: Photo and thumbnail records.
        job_queue: Pool running derivation jobs.
        worker: Derivation job body.
        registrar: Stores originals and schedules jobs.
        dispatcher: Classifies and decomposes upload batches.
    """

    def __init__(
        self,
        blob_store: BlobStore,
        directory: PhotoDirectory,
        job_queue: ThumbnailJobQueue,
        processor: ImageProcessor,
        thumbnail_sizes: Dict[ThumbnailSize, int],
        allowed_extensions: Iterable[str],
        originals_bucket: str = "originals",
        thumbnails_bucket: str = "thumbnails",
        max_upload_bytes: Optional[int] = None,
        presign_ttl: timedelta = timedelta(hours=1),
    ) -> None:
        self.blob_store = blob_store
        self.directory = directory
        self.job_queue = job_queue
        self.originals_bucket = originals_bucket
        self.thumbnails_bucket = thumbnails_bucket
        self.presign_ttl = presign_ttl

        self.worker = DerivedAssetWorker(
            directory=directory,
            blob_store=blob_store,
            processor=processor,
            thumbnail_sizes=thumbnail_sizes,
            originals_bucket=originals_bucket,
            thumbnails_bucket=thumbnails_bucket,
        )
        self.registrar = PhotoRegistrar(
            blob_store=blob_store,
            directory=directory,
            job_queue=job_queue,
            derive=self.worker.generate,
            originals_bucket=originals_bucket,
        )
        self.dispatcher = IngestDispatcher(
            registrar=self.registrar,
            allowed_extensions=frozenset(allowed_extensions),
            max_upload_bytes=max_upload_bytes,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "PhotoPipeline":
        """Build a pipeline with a local blob store and SQLAlchemy directory."""
        engine = make_engine(settings.DATABASE_URL, echo=settings.DEBUG)
        directory = PhotoDirectory(engine, make_session_factory(engine))
        blob_store = LocalBlobStore(
            base_path=settings.STORAGE_ROOT,
            secret=settings.PRESIGN_SECRET,
            base_url=settings.PRESIGN_BASE_URL,
        )
        job_queue = ThumbnailJobQueue(
            max_workers=settings.WORKER_MAX_THREADS,
            queue_size=settings.WORKER_QUEUE_SIZE,
            submit_timeout=settings.WORKER_SUBMIT_TIMEOUT,
        )
        return cls(
            blob_store=blob_store,
            directory=directory,
            job_queue=job_queue,
            processor=ImageProcessor(quality=settings.THUMBNAIL_QUALITY),
            thumbnail_sizes={
                ThumbnailSize(name): dimension
                for name, dimension in settings.thumbnail_sizes.items()
            },
            allowed_extensions=settings.allowed_extensions,
            originals_bucket=settings.ORIGINALS_BUCKET,
            thumbnails_bucket=settings.THUMBNAILS_BUCKET,
            max_upload_bytes=settings.MAX_UPLOAD_BYTES,
            presign_ttl=timedelta(seconds=settings.PRESIGN_TTL_SECONDS),
        )

    def start(self) -> None:
        """Create the buckets and tables the pipeline writes to."""
        if isinstance(self.blob_store, LocalBlobStore):
            self.blob_store.ensure_buckets([self.originals_bucket, self.thumbnails_bucket])
        self.directory.create_schema()
        logger.info("Photo pipeline started")

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting jobs and, by default, drain the running ones."""
        logger.info("Shutting down photo pipeline")
        self.job_queue.shutdown(wait=wait)

    # -------------------------------------------------------------------------
    # Upload
    # -------------------------------------------------------------------------

    def upload_photos(self, owner_id: uuid.UUID, items: Iterable[UploadItem]) -> List[uuid.UUID]:
        return self.dispatcher.upload_photos(owner_id, items)

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def get_photo(self, photo_id: uuid.UUID) -> Optional[Photo]:
        return self.directory.get_photo(photo_id)

    def get_thumbnails(self, photo_id: uuid.UUID) -> List[PhotoThumbnail]:
        return self.directory.find_thumbnails(photo_id)

    def presigned_urls(self, photo: Photo) -> Dict[str, str]:
        """
        Presigned download links for a photo's original and thumbnails.

        Returns:
            Mapping of ``"original"`` and each present size class
            (``"SMALL"``, ...) to a URL.
        """
        urls = {
            "original": self.blob_store.presign(
                self.originals_bucket, photo.storage_key, self.presign_ttl
            ),
        }
        for thumbnail in self.directory.find_thumbnails(photo.id):
            urls[thumbnail.size.value] = self.blob_store.presign(
                self.thumbnails_bucket, thumbnail.storage_key, self.presign_ttl
            )
        return urls

    # -------------------------------------------------------------------------
    # Deletion
    # -------------------------------------------------------------------------

    def delete_photo(self, photo_id: uuid.UUID) -> bool:
        """
        Delete a photo with its thumbnails and blobs.

        Blob deletion failures are logged and do not stop the records
        from being removed.

        Returns:
            True if the photo existed.
        """
        photo = self.directory.get_photo(photo_id)
        if photo is None:
            return False

        for thumbnail in self.directory.find_thumbnails(photo_id):
            self._delete_blob(self.thumbnails_bucket, thumbnail.storage_key)
        self._delete_blob(self.originals_bucket, photo.storage_key)

        deleted = self.directory.delete_photo(photo_id)
        logger.info(f"Deleted photo {photo_id}")
        return deleted

    def _delete_blob(self, bucket: str, key: str) -> None:
        try:
            self.blob_store.delete(bucket, key)
        except StorageError as e:
            logger.error(f"Failed to delete blob {bucket}/{key}: {e}")
