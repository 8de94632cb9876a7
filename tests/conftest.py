"""
Pytest conftest.py - Shared fixtures and configuration

Fixtures here build the pipeline bottom-up on temporary storage:

- ``blob_store``: LocalBlobStore under ``tmp_path``
- ``directory``: PhotoDirectory on a file-backed SQLite database
- ``worker`` / ``registrar``: wired to a ``RecordingQueue`` so tests decide
  when derivation jobs run
- ``pipeline``: the full PhotoPipeline with a real thread pool

Image payloads are generated with Pillow; EXIF blocks are built with piexif.
"""

import io
import uuid
import zipfile
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import piexif
import pytest
from PIL import Image

from photobook.core.config import Settings
from photobook.models import ThumbnailSize
from photobook.services.database import make_engine, make_session_factory
from photobook.services.image_processor import ImageProcessor
from photobook.services.photo_directory import PhotoDirectory
from photobook.services.photo_upload import PhotoRegistrar
from photobook.services.pipeline import PhotoPipeline
from photobook.services.storage_manager import LocalBlobStore
from photobook.services.thumbnail_worker import (
    DerivedAssetWorker,
    QueueFullError,
    ThumbnailJobQueue,
)

TEST_SECRET = "test-presign-secret"
TEST_BASE_URL = "http://testserver/blobs"
ALLOWED_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "gif", "webp", "heic", "heif"})


# =============================================================================
# PYTEST HOOKS
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow tests")


# =============================================================================
# QUEUE DOUBLES
# =============================================================================

class RecordingQueue:
    """Job queue that records submissions and runs them on demand."""

    def __init__(self) -> None:
        self.jobs: List[Tuple[Callable[..., Any], Tuple[Any, ...]]] = []

    def submit(self, fn: Callable[..., Any], *args: Any) -> None:
        self.jobs.append((fn, args))

    def run_all(self) -> List[Any]:
        jobs, self.jobs = self.jobs, []
        return [fn(*args) for fn, args in jobs]


class FullQueue:
    """Job queue that is always saturated."""

    def submit(self, fn: Callable[..., Any], *args: Any) -> None:
        raise QueueFullError("queue full")


# =============================================================================
# CONFIGURATION
# =============================================================================

@pytest.fixture
def thumbnail_sizes() -> Dict[ThumbnailSize, int]:
    return {
        ThumbnailSize.SMALL: 50,
        ThumbnailSize.MEDIUM: 100,
        ThumbnailSize.LARGE: 200,
    }


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings pointing at temporary storage and database."""
    return Settings(
        APP_ENV="testing",
        DATABASE_URL=f"sqlite:///{tmp_path / 'photobook.sqlite'}",
        STORAGE_ROOT=str(tmp_path / "storage"),
        PRESIGN_SECRET=TEST_SECRET,
        PRESIGN_BASE_URL=TEST_BASE_URL,
        THUMBNAIL_SMALL=50,
        THUMBNAIL_MEDIUM=100,
        THUMBNAIL_LARGE=200,
        WORKER_MAX_THREADS=2,
        WORKER_QUEUE_SIZE=10,
        WORKER_SUBMIT_TIMEOUT=1.0,
    )


# =============================================================================
# SERVICE FIXTURES
# =============================================================================

@pytest.fixture
def blob_store(tmp_path) -> LocalBlobStore:
    store = LocalBlobStore(tmp_path / "storage", secret=TEST_SECRET, base_url=TEST_BASE_URL)
    store.ensure_buckets(["originals", "thumbnails"])
    return store


@pytest.fixture
def directory(tmp_path):
    """PhotoDirectory on a fresh SQLite file, shared safely across threads."""
    engine = make_engine(f"sqlite:///{tmp_path / 'photobook.sqlite'}")
    photo_directory = PhotoDirectory(engine, make_session_factory(engine))
    photo_directory.create_schema()
    yield photo_directory
    engine.dispose()


@pytest.fixture
def processor() -> ImageProcessor:
    return ImageProcessor(quality=0.85)


@pytest.fixture
def recording_queue() -> RecordingQueue:
    return RecordingQueue()


@pytest.fixture
def worker(directory, blob_store, processor, thumbnail_sizes) -> DerivedAssetWorker:
    return DerivedAssetWorker(
        directory=directory,
        blob_store=blob_store,
        processor=processor,
        thumbnail_sizes=thumbnail_sizes,
        originals_bucket="originals",
        thumbnails_bucket="thumbnails",
    )


@pytest.fixture
def registrar(blob_store, directory, recording_queue, worker) -> PhotoRegistrar:
    return PhotoRegistrar(
        blob_store=blob_store,
        directory=directory,
        job_queue=recording_queue,
        derive=worker.generate,
        originals_bucket="originals",
    )


@pytest.fixture
def pipeline(blob_store, directory, processor, thumbnail_sizes):
    """Full pipeline with a real two-thread job queue."""
    photo_pipeline = PhotoPipeline(
        blob_store=blob_store,
        directory=directory,
        job_queue=ThumbnailJobQueue(max_workers=2, queue_size=10, submit_timeout=1.0),
        processor=processor,
        thumbnail_sizes=thumbnail_sizes,
        allowed_extensions=ALLOWED_EXTENSIONS,
        max_upload_bytes=5 * 1024 * 1024,
    )
    yield photo_pipeline
    photo_pipeline.shutdown(wait=True)


@pytest.fixture
def owner_id() -> uuid.UUID:
    return uuid.uuid4()


# =============================================================================
# IMAGE FIXTURES
# =============================================================================

def _encode(image: Image.Image, fmt: str, **save_kwargs: Any) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format=fmt, **save_kwargs)
    return buffer.getvalue()


@pytest.fixture
def make_image() -> Callable[..., bytes]:
    """
    Factory for encoded test images.

    Usage:
        data = make_image(200, 100)                       # JPEG
        data = make_image(100, 100, fmt="PNG", mode="RGBA")
    """
    def _make(
        width: int,
        height: int,
        fmt: str = "JPEG",
        mode: str = "RGB",
        color: Any = "red",
        **save_kwargs: Any,
    ) -> bytes:
        return _encode(Image.new(mode, (width, height), color=color), fmt, **save_kwargs)

    return _make


@pytest.fixture
def exif_jpeg(make_image) -> bytes:
    """120x80 JPEG carrying the EXIF block a camera would write."""
    exif_dict = {
        "0th": {
            piexif.ImageIFD.Make: b"TestCamera",
            piexif.ImageIFD.Model: b"TestModel X100",
            piexif.ImageIFD.Orientation: 1,
            piexif.ImageIFD.DateTime: b"2024:01:16 09:00:00",
        },
        "Exif": {
            piexif.ExifIFD.DateTimeOriginal: b"2024:01:15 14:30:00",
            piexif.ExifIFD.ExposureTime: (1, 125),
            piexif.ExifIFD.FNumber: (28, 10),
            piexif.ExifIFD.ISOSpeedRatings: 200,
            piexif.ExifIFD.FocalLength: (50, 1),
        },
        "GPS": {},
        "1st": {},
        "thumbnail": None,
    }
    return make_image(120, 80, color="blue", exif=piexif.dump(exif_dict))


@pytest.fixture
def make_zip() -> Callable[..., bytes]:
    """
    Factory for in-memory zip archives.

    Usage:
        data = make_zip({"a.jpg": jpeg_bytes, "notes.txt": b"hi"}, dirs=["sub/"])
    """
    def _make(
        entries: Dict[str, bytes],
        dirs: Optional[Iterable[str]] = None,
        compression: int = zipfile.ZIP_DEFLATED,
    ) -> bytes:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", compression=compression) as archive:
            for name in dirs or []:
                archive.writestr(zipfile.ZipInfo(name), b"")
            for name, data in entries.items():
                archive.writestr(name, data)
        return buffer.getvalue()

    return _make


def stored_files(store: LocalBlobStore, bucket: str) -> List[str]:
    """Keys of all blobs currently in a bucket."""
    root = store.base_path / bucket
    return sorted(
        path.relative_to(root).as_posix()
        for path in root.rglob("*")
        if path.is_file() and not path.name.startswith(".upload-")
    )
