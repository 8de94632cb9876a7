"""
Image Processor - Decoding, EXIF Metadata and Renditions
========================================================

This module holds the image work done by the derived-asset worker for
every stored original:

1. Decode the original bytes (JPEG, PNG, GIF, WebP, HEIC/HEIF, ...)
2. Read camera metadata from the EXIF block, best effort
3. Render JPEG thumbnails at a fixed maximum dimension

Sizing Rule:
-----------
The larger side of the original maps to exactly ``max_dimension`` and the
other side keeps the aspect ratio, rounded to the nearest pixel. Smaller
originals are scaled up so every size class has its nominal dimension.

Examples (max_dimension=50):
- 200x100 → 50x25  (landscape)
- 100x200 → 25x50  (portrait)
- 100x100 → 50x50  (square)

EXIF Fields Read:
----------------
- IFD0: Make, Model, Orientation
- Exif sub-IFD: DateTimeOriginal, ExposureTime, FNumber,
  ISOSpeedRatings, FocalLength

A missing or malformed EXIF block never fails processing; the affected
fields are simply left empty.

Example Usage:
-------------
```python
from photobook.services.image_processor import ImageProcessor

processor = ImageProcessor(quality=0.85)

image = processor.decode_image(original_bytes)
metadata = processor.extract_metadata(image)
small = processor.render_thumbnail(image, max_dimension=300)
print(small.width, small.height, len(small.data))
```
"""

import io
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from PIL import ExifTags, Image
from pillow_heif import register_heif_opener

from photobook.models import PhotoMetadata

# Let Pillow open HEIC/HEIF originals
register_heif_opener()

logger = logging.getLogger(__name__)


class ImageProcessingError(Exception):
    """Base exception for image processing errors."""
    pass


class ImageDecodeError(ImageProcessingError):
    """Raised when original bytes are not a decodable image."""
    pass


class MetadataExtractionError(ImageProcessingError):
    """Raised when EXIF metadata extraction fails."""
    pass


@dataclass(frozen=True)
class Rendition:
    """An encoded JPEG thumbnail."""
    data: bytes
    width: int
    height: int


def compute_target_size(width: int, height: int, max_dimension: int) -> Tuple[int, int]:
    """
    Target dimensions for a rendition preserving aspect ratio.

    Args:
        width: Original width in pixels.
        height: Original height in pixels.
        max_dimension: Size of the larger target side.

    Returns:
        (target_width, target_height), each at least 1.

    Raises:
        ValueError: If any argument is not positive.
    """
    if width <= 0 or height <= 0 or max_dimension <= 0:
        raise ValueError(
            f"Invalid dimensions: {width}x{height} at max {max_dimension}"
        )

    if width > height:
        return max_dimension, max(1, round(height / width * max_dimension))
    return max(1, round(width / height * max_dimension)), max_dimension


class ImageProcessor:
    """
    Image operations used to derive assets from an original.

    Instances hold no per-image state and can be shared by worker threads.

    Attributes:
        quality: JPEG quality as a fraction in (0, 1].
    """

    EXIF_DATETIME_FORMATS = ("%Y:%m:%d %H:%M:%S", "%Y-%m-%d %H:%M:%S", "%Y-%m-%dT%H:%M:%S")

    def __init__(self, quality: float = 0.85) -> None:
        if not 0 < quality <= 1:
            raise ValueError(f"JPEG quality must be in (0, 1], got {quality}")
        self.quality = quality

    @property
    def jpeg_quality(self) -> int:
        """Quality on Pillow's 1-100 scale."""
        return max(1, min(100, round(self.quality * 100)))

    # -------------------------------------------------------------------------
    # Decoding
    # -------------------------------------------------------------------------

    def decode_image(self, data: bytes) -> Image.Image:
        """
        Decode original bytes into a fully loaded Pillow image.

        Raises:
            ImageDecodeError: If the bytes are corrupt, truncated or in an
                unrecognized format.
        """
        try:
            image = Image.open(io.BytesIO(data))
            image.load()
        except Exception as e:
            raise ImageDecodeError(f"Could not decode image: {e}") from e

        width, height = image.size
        if width <= 0 or height <= 0:
            raise ImageDecodeError(f"Image has no pixels: {width}x{height}")

        logger.debug(f"Decoded {image.format} image: {width}x{height} ({image.mode})")
        return image

    # -------------------------------------------------------------------------
    # Metadata
    # -------------------------------------------------------------------------

    def extract_metadata(self, image: Image.Image) -> PhotoMetadata:
        """
        Read camera metadata from an image, best effort.

        Never raises: a missing or unreadable EXIF block yields
        ``PhotoMetadata()``, and each field that cannot be converted is
        left as None.
        """
        try:
            raw = self._read_exif(image)
        except MetadataExtractionError as e:
            logger.warning(f"Failed to extract EXIF data: {e}")
            return PhotoMetadata()

        if not raw:
            logger.debug("No EXIF data found in image")
            return PhotoMetadata()

        metadata = PhotoMetadata(
            make=_convert(_clean_string, raw.get("make")),
            model=_convert(_clean_string, raw.get("model")),
            orientation=_convert(_first_int, raw.get("orientation")),
            taken_at=_convert(self._parse_exif_datetime, raw.get("taken_at")),
            exposure_time=_convert(_format_exposure, raw.get("exposure_time")),
            f_number=_convert(_rational_to_float, raw.get("f_number")),
            iso=_convert(_first_int, raw.get("iso")),
            focal_length=_convert(_rational_to_float, raw.get("focal_length")),
        )
        logger.debug(f"Extracted EXIF: {metadata.to_dict()}")
        return metadata

    def _read_exif(self, image: Image.Image) -> Dict[str, Any]:
        """Collect the raw EXIF values of interest, keyed by field name."""
        try:
            exif = image.getexif()
            if not exif:
                return {}
            sub_ifd = exif.get_ifd(ExifTags.IFD.Exif)
        except Exception as e:
            raise MetadataExtractionError(str(e)) from e

        taken_at = sub_ifd.get(ExifTags.Base.DateTimeOriginal) or exif.get(ExifTags.Base.DateTime)
        raw = {
            "make": exif.get(ExifTags.Base.Make),
            "model": exif.get(ExifTags.Base.Model),
            "orientation": exif.get(ExifTags.Base.Orientation),
            "taken_at": taken_at,
            "exposure_time": sub_ifd.get(ExifTags.Base.ExposureTime),
            "f_number": sub_ifd.get(ExifTags.Base.FNumber),
            "iso": sub_ifd.get(ExifTags.Base.ISOSpeedRatings),
            "focal_length": sub_ifd.get(ExifTags.Base.FocalLength),
        }
        return {key: value for key, value in raw.items() if value is not None}

    def _parse_exif_datetime(self, value: Any) -> Optional[datetime]:
        """
        Parse an EXIF datetime string ("YYYY:MM:DD HH:MM:SS").

        Returns:
            Naive datetime in camera-local time, or None if unparseable.
        """
        text = _clean_string(value)
        if not text:
            return None
        for fmt in self.EXIF_DATETIME_FORMATS:
            try:
                return datetime.strptime(text, fmt)
            except ValueError:
                continue
        return None

    # -------------------------------------------------------------------------
    # Renditions
    # -------------------------------------------------------------------------

    def render_thumbnail(self, image: Image.Image, max_dimension: int) -> Rendition:
        """
        Resize and re-encode an image as JPEG.

        Transparent pixels are flattened onto white since JPEG has no
        alpha channel. LANCZOS resampling is used for both down- and
        upscaling.

        Args:
            image: Decoded original.
            max_dimension: Target size of the larger side.

        Returns:
            Encoded rendition with its actual dimensions.
        """
        target_width, target_height = compute_target_size(
            image.width, image.height, max_dimension
        )

        resized = _to_rgb(image).resize(
            (target_width, target_height),
            Image.Resampling.LANCZOS,
        )

        buffer = io.BytesIO()
        resized.save(
            buffer,
            format="JPEG",
            quality=self.jpeg_quality,
            optimize=True,
            progressive=True,
        )

        logger.debug(
            f"Rendered thumbnail: {image.width}x{image.height} → "
            f"{target_width}x{target_height} ({buffer.tell()} bytes)"
        )
        return Rendition(data=buffer.getvalue(), width=target_width, height=target_height)


# =============================================================================
# HELPERS
# =============================================================================

def _to_rgb(image: Image.Image) -> Image.Image:
    """Convert any mode to RGB, compositing transparency onto white."""
    if image.mode == "RGB":
        return image
    if image.mode in ("RGBA", "LA", "PA") or (
        image.mode == "P" and "transparency" in image.info
    ):
        rgba = image.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.split()[3])
        return background
    return image.convert("RGB")


def _convert(converter, value: Any) -> Any:
    if value is None:
        return None
    try:
        return converter(value)
    except Exception as e:
        logger.debug(f"Ignoring unreadable EXIF value {value!r}: {e}")
        return None


def _clean_string(value: Any) -> Optional[str]:
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="ignore")
    text = str(value).replace("\x00", "").strip()
    return text or None


def _first_int(value: Any) -> int:
    if isinstance(value, (tuple, list)):
        value = value[0]
    return int(value)


def _to_float(value: Any) -> float:
    if isinstance(value, tuple) and len(value) == 2:
        return value[0] / value[1]
    return float(value)


def _rational_to_float(value: Any) -> float:
    number = _to_float(value)
    if not math.isfinite(number):
        raise ValueError(f"Non-finite rational: {value!r}")
    return round(number, 4)


def _format_exposure(value: Any) -> str:
    """Exposure in seconds as shown by cameras: "1/125", "1/2", "2"."""
    seconds = _to_float(value)
    if seconds <= 0:
        raise ValueError(f"Non-positive exposure time: {seconds}")
    if seconds < 1:
        return f"1/{round(1 / seconds)}"
    return f"{seconds:g}"
