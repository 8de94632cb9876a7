"""
Tests for the image processor: sizing, decoding, EXIF and renditions.

Run with:
```bash
pytest tests/test_image_processor.py -v
```
"""

import io
from datetime import datetime

import pytest
from PIL import Image

from photobook.models import PhotoMetadata
from photobook.services.image_processor import (
    ImageDecodeError,
    ImageProcessor,
    _format_exposure,
    compute_target_size,
)

pytestmark = pytest.mark.unit


# =============================================================================
# SIZING
# =============================================================================

class TestComputeTargetSize:
    """The larger side maps to max_dimension, the other keeps the ratio."""

    @pytest.mark.parametrize(
        "width, height, max_dimension, expected",
        [
            (200, 100, 50, (50, 25)),      # landscape
            (100, 200, 50, (25, 50)),      # portrait
            (100, 100, 50, (50, 50)),      # square maps both sides
            (2000, 1500, 300, (300, 225)),
            (3, 2, 100, (100, 67)),        # rounds to nearest
            (10, 5, 50, (50, 25)),         # upscales small originals
            (1000, 1, 50, (50, 1)),        # never rounds to zero
        ],
    )
    def test_target_size(self, width, height, max_dimension, expected):
        assert compute_target_size(width, height, max_dimension) == expected

    @pytest.mark.parametrize("args", [(0, 10, 50), (10, -1, 50), (10, 10, 0)])
    def test_rejects_non_positive(self, args):
        with pytest.raises(ValueError):
            compute_target_size(*args)


# =============================================================================
# DECODING
# =============================================================================

class TestDecodeImage:

    def test_decodes_jpeg(self, processor, make_image):
        image = processor.decode_image(make_image(64, 48))
        assert image.size == (64, 48)

    @pytest.mark.parametrize("fmt", ["PNG", "GIF", "WEBP"])
    def test_decodes_other_formats(self, processor, make_image, fmt):
        image = processor.decode_image(make_image(30, 20, fmt=fmt))
        assert image.size == (30, 20)

    @pytest.mark.parametrize("data", [b"", b"definitely not an image", b"\xff\xd8\xff\xe0" + b"\x00" * 20])
    def test_garbage_raises_decode_error(self, processor, data):
        with pytest.raises(ImageDecodeError):
            processor.decode_image(data)

    def test_truncated_jpeg_raises_decode_error(self, processor, make_image):
        data = make_image(200, 200)
        with pytest.raises(ImageDecodeError):
            processor.decode_image(data[: len(data) // 3])


# =============================================================================
# METADATA
# =============================================================================

class TestExtractMetadata:

    def test_reads_camera_fields(self, processor, exif_jpeg):
        metadata = processor.extract_metadata(processor.decode_image(exif_jpeg))

        assert metadata.make == "TestCamera"
        assert metadata.model == "TestModel X100"
        assert metadata.orientation == 1
        assert metadata.taken_at == datetime(2024, 1, 15, 14, 30, 0)
        assert metadata.exposure_time == "1/125"
        assert metadata.f_number == pytest.approx(2.8)
        assert metadata.iso == 200
        assert metadata.focal_length == pytest.approx(50.0)

    def test_metadata_serializes_present_fields_only(self, processor, exif_jpeg):
        data = processor.extract_metadata(processor.decode_image(exif_jpeg)).to_dict()

        assert data["taken_at"] == "2024-01-15T14:30:00"
        assert data["exposure_time"] == "1/125"
        assert None not in data.values()
        assert PhotoMetadata.from_dict(data).taken_at == datetime(2024, 1, 15, 14, 30, 0)

    def test_no_exif_yields_empty_metadata(self, processor, make_image):
        metadata = processor.extract_metadata(processor.decode_image(make_image(20, 20, fmt="PNG")))

        assert metadata == PhotoMetadata()
        assert metadata.is_empty()
        assert metadata.to_dict() == {}

    def test_unreadable_exif_does_not_raise(self, processor, make_image, monkeypatch):
        image = processor.decode_image(make_image(20, 20))

        def broken_exif():
            raise SyntaxError("corrupt EXIF")

        monkeypatch.setattr(image, "getexif", broken_exif)
        assert processor.extract_metadata(image) == PhotoMetadata()

    @pytest.mark.parametrize(
        "value, expected",
        [
            ((1, 125), "1/125"),
            ((1, 8000), "1/8000"),
            ((1, 2), "1/2"),
            ((2, 1), "2"),
            ((5, 2), "2.5"),
        ],
    )
    def test_exposure_formatting(self, value, expected):
        assert _format_exposure(value) == expected


# =============================================================================
# RENDITIONS
# =============================================================================

class TestRenderThumbnail:

    def test_renders_jpeg_at_target_size(self, processor, make_image):
        image = processor.decode_image(make_image(200, 100))

        rendition = processor.render_thumbnail(image, 50)

        assert (rendition.width, rendition.height) == (50, 25)
        with Image.open(io.BytesIO(rendition.data)) as encoded:
            assert encoded.format == "JPEG"
            assert encoded.size == (50, 25)

    def test_upscales_small_original(self, processor, make_image):
        rendition = processor.render_thumbnail(processor.decode_image(make_image(20, 10)), 200)
        assert (rendition.width, rendition.height) == (200, 100)

    def test_transparency_flattened_onto_white(self, processor, make_image):
        data = make_image(40, 40, fmt="PNG", mode="RGBA", color=(0, 0, 0, 0))

        rendition = processor.render_thumbnail(processor.decode_image(data), 20)

        with Image.open(io.BytesIO(rendition.data)) as encoded:
            assert encoded.mode == "RGB"
            assert all(channel > 240 for channel in encoded.getpixel((10, 10)))

    def test_palette_gif_renders(self, processor, make_image):
        data = make_image(60, 30, fmt="GIF", mode="P", color=3)
        rendition = processor.render_thumbnail(processor.decode_image(data), 30)
        assert (rendition.width, rendition.height) == (30, 15)


class TestQuality:

    def test_fraction_maps_to_pillow_scale(self):
        assert ImageProcessor(quality=0.85).jpeg_quality == 85
        assert ImageProcessor(quality=1.0).jpeg_quality == 100
        assert ImageProcessor(quality=0.001).jpeg_quality == 1

    @pytest.mark.parametrize("quality", [0, -0.5, 1.5])
    def test_out_of_range_quality_rejected(self, quality):
        with pytest.raises(ValueError):
            ImageProcessor(quality=quality)
