"""
Filename and Content-Type Utilities
===================================

Helpers shared by the ingest dispatcher and the photo registrar for
classifying uploads by extension and resolving content types.

Extension checks are case-insensitive and look only at the text after the
last dot of the filename's final path component:

```python
get_file_extension("Holiday/IMG_001.JPG")   # "jpg"
get_file_extension("archive.tar.gz")        # "gz"
get_file_extension(".hidden")               # ""
filename_from_path("trip\\day1\\a.png")     # "a.png"
```
"""

import logging
from typing import AbstractSet

logger = logging.getLogger(__name__)

ARCHIVE_EXTENSION = "zip"

# Content types for the extensions the pipeline knows how to decode
CONTENT_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "heic": "image/heic",
    "heif": "image/heif",
}

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def get_file_extension(filename: str) -> str:
    """
    Lower-cased extension without the dot, or "" when there is none.

    A leading dot (``.hidden``) or a trailing dot (``name.``) does not
    count as an extension.
    """
    last_dot = filename.rfind(".")
    if 0 < last_dot < len(filename) - 1:
        return filename[last_dot + 1:].lower()
    return ""


def filename_from_path(path: str) -> str:
    """Last component of an archive entry path (``/`` or ``\\`` separated)."""
    last_sep = max(path.rfind("/"), path.rfind("\\"))
    if 0 <= last_sep < len(path) - 1:
        return path[last_sep + 1:]
    return path


def is_archive(filename: str) -> bool:
    return get_file_extension(filename) == ARCHIVE_EXTENSION


def is_allowed_image(filename: str, allowed_extensions: AbstractSet[str]) -> bool:
    """True if the filename's extension is in the allow-list."""
    extension = get_file_extension(filename)
    return bool(extension) and extension in allowed_extensions


def guess_content_type(filename: str) -> str:
    """Infer an image content type from the filename extension."""
    return CONTENT_TYPES.get(get_file_extension(filename), DEFAULT_CONTENT_TYPE)
