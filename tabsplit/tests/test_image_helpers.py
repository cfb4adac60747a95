"""Tests for upload type checks and image downscaling."""

import io

import pytest
from PIL import Image
from tabsplit.receipt.image_helpers import is_accepted_content_type, shrink_image_bytes


def _png(width: int, height: int) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), "white").save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.mark.parametrize(
    ("content_type", "accepted"),
    [
        ("image/jpeg", True),
        ("image/png; charset=binary", True),
        ("application/pdf", True),
        ("text/plain", False),
        ("application/octet-stream", False),
        ("", False),
        (None, False),
    ],
)
def test_is_accepted_content_type(content_type: str | None, accepted: bool) -> None:
    assert is_accepted_content_type(content_type) is accepted


def test_large_image_is_downscaled() -> None:
    shrunk = shrink_image_bytes(_png(4000, 1000), "image/png", max_dimension=1000)

    img = Image.open(io.BytesIO(shrunk))
    assert img.format == "JPEG"
    assert img.size == (1000, 250)


def test_small_image_and_pdf_pass_through() -> None:
    small = _png(300, 400)
    pdf = b"%PDF-1.4 fake"

    assert shrink_image_bytes(small, "image/png", max_dimension=1000) == small
    assert shrink_image_bytes(pdf, "application/pdf") == pdf
    assert shrink_image_bytes(b"garbage", "image/jpeg") == b"garbage"


def test_decompression_bomb_is_passed_through_unchanged(monkeypatch: pytest.MonkeyPatch) -> None:
    bomb = _png(100, 100)
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)

    assert shrink_image_bytes(bomb, "image/png", max_dimension=50) == bomb
