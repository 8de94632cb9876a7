"""Tests for environment-driven settings."""

import pytest
from pydantic import ValidationError

from photobook.core.config import Settings

pytestmark = pytest.mark.unit


def test_defaults():
    settings = Settings()

    assert settings.API_PREFIX == "/api/v1"
    assert settings.allowed_extensions == frozenset({"jpg", "jpeg", "png", "gif", "webp", "heic", "heif"})
    assert settings.thumbnail_sizes == {"SMALL": 300, "MEDIUM": 800, "LARGE": 1600}


def test_reads_environment(monkeypatch):
    monkeypatch.setenv("THUMBNAIL_SMALL", "120")
    monkeypatch.setenv("ALLOWED_EXTENSIONS", " JPG, .png ,,webp")
    monkeypatch.setenv("CORS_ORIGINS", "https://a.example, https://b.example")

    settings = Settings()

    assert settings.THUMBNAIL_SMALL == 120
    assert settings.allowed_extensions == frozenset({"jpg", "png", "webp"})
    assert settings.cors_origins_list == ["https://a.example", "https://b.example"]


@pytest.mark.parametrize(
    "field, value",
    [
        ("THUMBNAIL_SMALL", 0),
        ("THUMBNAIL_LARGE", -1),
        ("THUMBNAIL_QUALITY", 0),
        ("THUMBNAIL_QUALITY", 1.2),
        ("WORKER_MAX_THREADS", 0),
        ("WORKER_QUEUE_SIZE", -1),
        ("PRESIGN_TTL_SECONDS", 0),
    ],
)
def test_rejects_invalid_values(field, value):
    with pytest.raises(ValidationError):
        Settings(**{field: value})
