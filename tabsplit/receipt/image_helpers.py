"""Pure helpers for preparing uploaded receipt files."""

import io
import mimetypes
import uuid
from pathlib import PurePath

MAX_IMAGE_DIMENSION = 2048  # Vision models downscale anything larger anyway
PDF_CONTENT_TYPE = "application/pdf"


def is_accepted_content_type(content_type: str | None) -> bool:
    """Return True for ``image/*`` and ``application/pdf`` uploads."""
    if not content_type:
        return False
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type.startswith("image/") or media_type == PDF_CONTENT_TYPE


def generate_object_name(filename: str | None, content_type: str | None = None) -> str:
    """
    Generate a unique storage name, preserving the original extension.

    Falls back to an extension guessed from ``content_type`` when the
    filename has none.
    """
    suffix = PurePath(filename).suffix.lower() if filename else ""
    if not suffix and content_type:
        suffix = mimetypes.guess_extension(content_type.split(";", 1)[0].strip()) or ""
    return f"{uuid.uuid4()}{suffix}"


def shrink_image_bytes(
    image_bytes: bytes, content_type: str | None, max_dimension: int = MAX_IMAGE_DIMENSION
) -> bytes:
    """
    Downscale an image so neither side exceeds ``max_dimension``.

    PDFs, unreadable images, oversized (decompression bomb) images and images
    already within bounds are returned unchanged. Resized images are
    re-encoded as JPEG.
    """
    if not content_type or not content_type.lower().startswith("image/"):
        return image_bytes

    from PIL import Image, ImageOps, UnidentifiedImageError

    try:
        img = Image.open(io.BytesIO(image_bytes))
        # Apply EXIF orientation so the model sees the receipt upright
        img = ImageOps.exif_transpose(img)

        width, height = img.size
        if width <= max_dimension and height <= max_dimension:
            return image_bytes

        if width > height:
            new_width = max_dimension
            new_height = int(height * (max_dimension / width))
        else:
            new_height = max_dimension
            new_width = int(width * (max_dimension / height))

        resized = img.resize((new_width, new_height), Image.Resampling.LANCZOS)
        buffer = io.BytesIO()
        resized.convert("RGB").save(buffer, format="JPEG", quality=90)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError):
        return image_bytes
    return buffer.getvalue()
