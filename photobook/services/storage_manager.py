"""
Blob Storage for Originals and Thumbnails
=========================================

This module is the blob store gateway of the photo pipeline. Bytes are kept
in named buckets and addressed by string keys; the store knows nothing about
photos or thumbnails beyond those keys.

Bucket Layout:
-------------
The local implementation maps each bucket to a directory under the storage
root. Keys may contain ``/`` and become nested paths:

```
/storage/
├── originals/
│   └── <owner-id>/
│       └── <photo-id>.jpg
├── thumbnails/
│   └── <owner-id>/
│       ├── <photo-id>_small.jpg
│       ├── <photo-id>_medium.jpg
│       └── <photo-id>_large.jpg
└── .content-types/           # declared content type per stored blob
```

Presigned URLs:
--------------
``presign`` returns ``{base_url}/{bucket}/{key}?expires=<unix>&signature=<hex>``
where the signature is an HMAC-SHA256 over bucket, key and expiry. The
``/blobs`` route of the API checks it with ``verify_presigned`` before
serving the file.

Example Usage:
-------------
```python
from photobook.services.storage_manager import LocalBlobStore

store = LocalBlobStore(base_path="/app/storage", secret="s3cr3t",
                       base_url="https://photos.example.com/blobs")
store.ensure_buckets(["originals", "thumbnails"])

store.upload("originals", "u1/p1.jpg", data, "image/jpeg")
url = store.presign("originals", "u1/p1.jpg", ttl=3600)
```
"""

import errno
import logging
import os
import tempfile
import time
from datetime import timedelta
from pathlib import Path, PurePosixPath
from typing import Iterable, Protocol, Union
from urllib.parse import quote, urlencode

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac

logger = logging.getLogger(__name__)

_CONTENT_TYPE_DIR = ".content-types"


class StorageError(Exception):
    """Base exception for storage-related errors."""
    pass


class DiskSpaceError(StorageError):
    """Raised when there's insufficient disk space."""
    pass


class BlobNotFoundError(StorageError):
    """Raised when a requested blob doesn't exist."""
    pass


class BlobStore(Protocol):
    """Operations the pipeline needs from an object store."""

    def upload(self, bucket: str, key: str, data: bytes, content_type: str) -> None: ...

    def download(self, bucket: str, key: str) -> bytes: ...

    def delete(self, bucket: str, key: str) -> bool: ...

    def presign(self, bucket: str, key: str, ttl: Union[int, timedelta]) -> str: ...


class LocalBlobStore:
    """
    Filesystem-backed blob store with per-bucket directories.

    Writes go to a temporary file in the target directory and are moved
    into place with ``os.replace``, so readers never see a partial blob.
    Independent keys can be written from several threads at once.

    Attributes:
        base_path: Root directory holding one directory per bucket.
        base_url: Public URL prefix used when building presigned links.
    """

    def __init__(
        self,
        base_path: Union[str, Path],
        secret: str,
        base_url: str = "http://localhost:8000/blobs",
    ) -> None:
        """
        Initialize the blob store.

        Args:
            base_path: Root directory for all buckets. Created if missing.
            secret: HMAC key for presigned URLs.
            base_url: Prefix of presigned URLs (no trailing slash needed).

        Raises:
            StorageError: If base_path cannot be created.
        """
        self.base_path = Path(base_path)
        self.base_url = base_url.rstrip("/")
        self._secret = secret.encode("utf-8")

        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(
                f"Cannot create storage directory at {self.base_path}: {e}"
            ) from e
        logger.info(f"Blob storage initialized at: {self.base_path}")

    # -------------------------------------------------------------------------
    # Paths
    # -------------------------------------------------------------------------

    def path_for(self, bucket: str, key: str) -> Path:
        """
        Resolve the file path of a blob.

        Raises:
            StorageError: If the bucket or key would escape the storage root.
        """
        self._check_name(bucket, "bucket")
        self._check_name(key, "key")
        return self.base_path / bucket / Path(*PurePosixPath(key).parts)

    def _content_type_path(self, bucket: str, key: str) -> Path:
        return self.base_path / _CONTENT_TYPE_DIR / bucket / Path(*PurePosixPath(key).parts)

    @staticmethod
    def _check_name(name: str, kind: str) -> None:
        parts = PurePosixPath(name).parts
        if (
            not name
            or name.startswith("/")
            or "\\" in name
            or any(part in ("..", ".") for part in parts)
            or (kind == "bucket" and (len(parts) != 1 or name.startswith(".")))
        ):
            raise StorageError(f"Invalid {kind}: {name!r}")

    def ensure_buckets(self, buckets: Iterable[str]) -> None:
        """Create the bucket directories if they don't exist."""
        for bucket in buckets:
            self._check_name(bucket, "bucket")
            try:
                (self.base_path / bucket).mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StorageError(f"Failed to create bucket {bucket}: {e}") from e
            logger.debug(f"Bucket ready: {bucket}")

    # -------------------------------------------------------------------------
    # Blob operations
    # -------------------------------------------------------------------------

    def upload(self, bucket: str, key: str, data: bytes, content_type: str) -> None:
        """
        Store ``data`` under ``bucket/key``, replacing any existing blob.

        Args:
            bucket: Target bucket name.
            key: Blob key, may contain ``/``.
            data: Blob contents.
            content_type: MIME type recorded alongside the blob.

        Raises:
            DiskSpaceError: If the disk is full.
            StorageError: If writing fails for any other reason.
        """
        file_path = self.path_for(bucket, key)
        logger.debug(f"Uploading blob: {bucket}/{key} ({len(data)} bytes)")

        try:
            self._atomic_write(file_path, data)
            self._atomic_write(
                self._content_type_path(bucket, key),
                content_type.encode("utf-8"),
            )
        except OSError as e:
            if e.errno == errno.ENOSPC:
                raise DiskSpaceError(f"Disk full, cannot store: {bucket}/{key}") from e
            raise StorageError(f"Failed to upload {bucket}/{key}: {e}") from e

        logger.debug(f"Uploaded blob: {bucket}/{key}")

    @staticmethod
    def _atomic_write(file_path: Path, data: bytes) -> None:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=file_path.parent, prefix=".upload-")
        try:
            with os.fdopen(fd, "wb") as tmp:
                tmp.write(data)
            os.replace(tmp_name, file_path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def download(self, bucket: str, key: str) -> bytes:
        """
        Read a blob fully into memory.

        Raises:
            BlobNotFoundError: If the blob doesn't exist.
            StorageError: If reading fails.
        """
        file_path = self.path_for(bucket, key)
        logger.debug(f"Downloading blob: {bucket}/{key}")

        try:
            return file_path.read_bytes()
        except FileNotFoundError as e:
            raise BlobNotFoundError(f"Blob not found: {bucket}/{key}") from e
        except OSError as e:
            raise StorageError(f"Failed to download {bucket}/{key}: {e}") from e

    def delete(self, bucket: str, key: str) -> bool:
        """
        Delete a blob.

        Returns:
            True if the blob was deleted, False if it didn't exist.

        Raises:
            StorageError: If deletion fails (permissions, etc.)
        """
        file_path = self.path_for(bucket, key)

        if not file_path.exists():
            logger.warning(f"Blob not found for deletion: {bucket}/{key}")
            return False

        try:
            file_path.unlink()
            self._content_type_path(bucket, key).unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to delete {bucket}/{key}: {e}") from e

        logger.info(f"Deleted blob: {bucket}/{key}")
        return True

    def content_type(self, bucket: str, key: str) -> str:
        """Content type recorded at upload, or ``application/octet-stream``."""
        self.path_for(bucket, key)
        try:
            return self._content_type_path(bucket, key).read_text("utf-8")
        except OSError:
            return "application/octet-stream"

    # -------------------------------------------------------------------------
    # Presigned URLs
    # -------------------------------------------------------------------------

    def presign(self, bucket: str, key: str, ttl: Union[int, timedelta]) -> str:
        """
        Build a time-limited URL granting read access to one blob.

        Args:
            bucket: Bucket name.
            key: Blob key.
            ttl: Lifetime in seconds or as a timedelta.

        Returns:
            Signed URL under ``base_url``.

        Raises:
            StorageError: If the key is invalid or the TTL is not positive.
        """
        self.path_for(bucket, key)
        seconds = int(ttl.total_seconds()) if isinstance(ttl, timedelta) else int(ttl)
        if seconds <= 0:
            raise StorageError(f"Presign TTL must be positive, got {seconds}")

        expires = int(time.time()) + seconds
        signature = self._sign(bucket, key, expires).hex()
        query = urlencode({"expires": expires, "signature": signature})
        return f"{self.base_url}/{quote(bucket)}/{quote(key)}?{query}"

    def verify_presigned(
        self,
        bucket: str,
        key: str,
        expires: int,
        signature: str,
    ) -> bool:
        """Check a presigned URL's signature and expiry."""
        if expires < time.time():
            return False
        try:
            expected = bytes.fromhex(signature)
        except ValueError:
            return False

        h = hmac.HMAC(self._secret, hashes.SHA256())
        h.update(self._signing_payload(bucket, key, expires))
        try:
            h.verify(expected)
        except InvalidSignature:
            return False
        return True

    def _sign(self, bucket: str, key: str, expires: int) -> bytes:
        h = hmac.HMAC(self._secret, hashes.SHA256())
        h.update(self._signing_payload(bucket, key, expires))
        return h.finalize()

    @staticmethod
    def _signing_payload(bucket: str, key: str, expires: int) -> bytes:
        return f"{bucket}\n{key}\n{expires}".encode("utf-8")
