"""
Ingest Dispatcher
=================

Entry point of an upload batch. Each item is classified by the extension
of its filename:

- ``zip`` → archive, decomposed into one payload per qualifying entry
- allowed image extension → forwarded as is
- anything else → skipped

Every forwarded payload goes to ``PhotoRegistrar.store_photo``. Failures
are isolated per item and per archive entry; the caller only learns which
photos were registered.

Example Usage:
-------------
```python
dispatcher = IngestDispatcher(registrar, allowed_extensions={"jpg", "png"})
with open("trip.zip", "rb") as fh:
    ids = dispatcher.upload_photos(owner_id, [
        UploadItem("trip.zip", "application/zip", size, fh),
    ])
```
"""

import io
import logging
import uuid
import zipfile
from dataclasses import dataclass
from typing import AbstractSet, BinaryIO, Iterable, List, Optional

from photobook.services.image_utils import (
    filename_from_path,
    guess_content_type,
    is_allowed_image,
    is_archive,
)
from photobook.services.photo_upload import PhotoRegistrar

logger = logging.getLogger(__name__)


class UnsupportedFileTypeError(Exception):
    """Raised for batch items that are neither archives nor allowed images."""
    pass


class ArchiveReadError(Exception):
    """Raised when an archive cannot be opened or listed."""
    pass


@dataclass
class UploadItem:
    """One named payload of an upload batch."""
    filename: Optional[str]
    content_type: Optional[str]
    size: int
    stream: BinaryIO


class IngestDispatcher:
    """
    Classifies batch items and forwards images to the registrar.

    Performs no storage I/O itself.

    Attributes:
        registrar: Stores and registers each image payload.
        allowed_extensions: Lower-cased image extensions without dots.
        max_upload_bytes: Largest payload forwarded, None for no limit.
    """

    def __init__(
        self,
        registrar: PhotoRegistrar,
        allowed_extensions: AbstractSet[str],
        max_upload_bytes: Optional[int] = None,
    ) -> None:
        self.registrar = registrar
        self.allowed_extensions = frozenset(ext.lower() for ext in allowed_extensions)
        self.max_upload_bytes = max_upload_bytes

    def upload_photos(self, owner_id: uuid.UUID, items: Iterable[UploadItem]) -> List[uuid.UUID]:
        """
        Register every qualifying image of a batch.

        Args:
            owner_id: Uploading user.
            items: Batch items in upload order.

        Returns:
            Ids of the photos registered, in upload order. May be shorter
            or longer than ``items``.
        """
        photo_ids: List[uuid.UUID] = []

        for item in items:
            try:
                photo_ids.extend(self._dispatch(owner_id, item))
            except UnsupportedFileTypeError as e:
                logger.warning(f"Skipping upload: {e}")
            except ArchiveReadError as e:
                logger.error(f"Skipping archive {item.filename!r}: {e}")
            except Exception:
                logger.exception(f"Failed to process upload {item.filename!r}")

        logger.info(f"Registered {len(photo_ids)} photo(s) for owner {owner_id}")
        return photo_ids

    def _dispatch(self, owner_id: uuid.UUID, item: UploadItem) -> List[uuid.UUID]:
        filename = item.filename or ""
        if not filename:
            logger.debug("Skipping upload without filename")
            return []

        if is_archive(filename):
            return self._ingest_archive(owner_id, filename, item.stream)

        if is_allowed_image(filename, self.allowed_extensions):
            if self._too_large(item.size, filename):
                return []
            data = item.stream.read()
            content_type = item.content_type or guess_content_type(filename)
            photo_id = self._forward(owner_id, filename, data, content_type)
            return [photo_id] if photo_id is not None else []

        raise UnsupportedFileTypeError(f"Unsupported file type: {filename!r}")

    # -------------------------------------------------------------------------
    # Archives
    # -------------------------------------------------------------------------

    def _ingest_archive(self, owner_id: uuid.UUID, archive_name: str, stream: BinaryIO) -> List[uuid.UUID]:
        """
        Forward the qualifying entries of a zip archive.

        Entries are read one at a time; each entry's reader is closed
        before the next one is opened.

        Raises:
            ArchiveReadError: If the archive itself is unreadable.
        """
        if not stream.seekable():
            stream = io.BytesIO(stream.read())

        try:
            archive = zipfile.ZipFile(stream)
        except (zipfile.BadZipFile, OSError) as e:
            raise ArchiveReadError(f"Cannot open {archive_name!r}: {e}") from e

        photo_ids: List[uuid.UUID] = []
        with archive:
            for info in archive.infolist():
                if info.is_dir():
                    continue

                filename = filename_from_path(info.filename)
                if not is_allowed_image(filename, self.allowed_extensions):
                    logger.debug(f"Skipping archive entry {info.filename!r} in {archive_name!r}")
                    continue

                if self._too_large(info.file_size, info.filename):
                    continue

                try:
                    with archive.open(info) as entry:
                        data = entry.read()
                except Exception as e:
                    logger.error(f"Failed to read {info.filename!r} from {archive_name!r}: {e}")
                    continue

                try:
                    photo_id = self._forward(owner_id, filename, data, guess_content_type(filename))
                except Exception:
                    logger.exception(f"Failed to register {info.filename!r} from {archive_name!r}")
                    continue
                if photo_id is not None:
                    photo_ids.append(photo_id)

        logger.info(f"Archive {archive_name!r} yielded {len(photo_ids)} photo(s)")
        return photo_ids

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _forward(self, owner_id: uuid.UUID, filename: str, data: bytes, content_type: str) -> Optional[uuid.UUID]:
        if self._too_large(len(data), filename):
            return None
        return self.registrar.store_photo(owner_id, filename, data, content_type)

    def _too_large(self, size: int, filename: str) -> bool:
        if self.max_upload_bytes is not None and size > self.max_upload_bytes:
            logger.warning(
                f"Skipping {filename!r}: {size} bytes exceeds limit of {self.max_upload_bytes}"
            )
            return True
        return False
