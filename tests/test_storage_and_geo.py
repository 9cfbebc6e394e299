from __future__ import annotations

import base64
import logging

import pytest
import requests

from app.core.errors import ProviderError, ValidationError
from app.services import storage
from app.services.geo import haversine_km

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def test_haversine_same_point_is_zero() -> None:
    assert haversine_km(12.9716, 77.5946, 12.9716, 77.5946) == 0


def test_haversine_known_distance() -> None:
    # one degree of latitude on a 6371 km sphere
    assert haversine_km(0, 0, 1, 0) == pytest.approx(111.195, abs=0.01)
    assert haversine_km(0, 0, 0, 180) == pytest.approx(20015.09, abs=0.1)


@pytest.mark.parametrize(
    "content_type,filename",
    [("image/png", "photo.png"), ("image/jpeg", "photo.JPG"), ("image/webp", "x.webp"), ("image/gif", "a.gif")],
)
def test_validate_image_accepts_allowed_types(content_type, filename) -> None:
    storage.validate_image(PNG, content_type, filename)


@pytest.mark.parametrize(
    "data,content_type,filename",
    [
        (b"", "image/png", "photo.png"),
        (PNG, "application/pdf", "photo.png"),
        (PNG, "image/png", "photo.bmp"),
        (PNG, "image/png", "photo"),
        (PNG, None, "photo.png"),
    ],
)
def test_validate_image_rejects(data, content_type, filename) -> None:
    with pytest.raises(ValidationError):
        storage.validate_image(data, content_type, filename)


def test_validate_image_rejects_oversized(monkeypatch) -> None:
    monkeypatch.setattr(storage.settings, "max_image_bytes", 10)
    with pytest.raises(ValidationError):
        storage.validate_image(PNG, "image/png", "photo.png")


def test_store_image_inlines_without_object_storage() -> None:
    url = storage.store_image(PNG, "image/png", "photo.png", "issues/u1")
    assert url == "data:image/png;base64," + base64.b64encode(PNG).decode()


def test_object_key_keeps_extension() -> None:
    key = storage.make_object_key("issues/u1", "Photo.PNG")
    assert key.startswith("issues/u1/")
    assert key.endswith(".png")


def test_upload_failure_is_provider_error(monkeypatch) -> None:
    monkeypatch.setattr(storage, "SUPABASE_URL", "https://example.supabase.co")
    monkeypatch.setattr(storage, "SUPABASE_SERVICE_ROLE", "service-key")

    def boom(*args, **kwargs):
        raise requests.ConnectionError("down")

    monkeypatch.setattr(storage.requests, "post", boom)
    with pytest.raises(ProviderError):
        storage.upload_image(PNG, "image/png", "issues/u1/a.png")


def test_store_image_warns_when_inlining(caplog) -> None:
    with caplog.at_level(logging.WARNING, logger=storage.__name__):
        storage.store_image(PNG, "image/png", "photo.png", "issues/u1")
    assert any(r.levelno == logging.WARNING and "data: URL" in r.getMessage() for r in caplog.records)


class _Stream:
    def __init__(self, data: bytes) -> None:
        self.data = data
        self.requested: list[int] = []

    def read(self, size: int = -1) -> bytes:
        self.requested.append(size)
        return self.data if size < 0 else self.data[:size]


def test_read_upload_stops_one_byte_past_the_limit(monkeypatch) -> None:
    monkeypatch.setattr(storage.settings, "max_image_bytes", 16)
    stream = _Stream(b"x" * 1000)

    data = storage.read_upload(stream)

    assert stream.requested == [17]
    assert len(data) == 17
    with pytest.raises(ValidationError):
        storage.validate_image(data, "image/png", "photo.png")


def test_read_upload_returns_small_files_whole() -> None:
    assert storage.read_upload(_Stream(PNG)) == PNG
