import io
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError

from visionbatch.core.errors import DecodeError, EncodeError
from visionbatch.models.schemas import DownscaleConfig


LOSSY_FORMATS = {"JPEG", "WEBP"}


def _open(blob: bytes) -> Image.Image:
    if not blob:
        raise DecodeError("Empty image data")
    try:
        image = Image.open(io.BytesIO(blob))
        image.load()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise DecodeError(f"Cannot decode image: {e}") from e
    return image


def image_size(blob: bytes) -> Tuple[int, int]:
    with _open(blob) as image:
        return image.size


def detect_mime_type(blob: bytes) -> str:
    """MIME type of the decoded image, e.g. image/png."""
    with _open(blob) as image:
        mime = Image.MIME.get(image.format or "")
    if not mime:
        raise DecodeError("Cannot tell the image type")
    return mime


def _target_format(image: Image.Image, mime_type: Optional[str]) -> str:
    mime = (mime_type or "").lower()
    if image.format and (not mime or Image.MIME.get(image.format) == mime):
        return image.format

    # Image.MIME is only complete once every plugin is registered
    Image.init()
    for fmt, known in Image.MIME.items():
        if known == mime and fmt in Image.SAVE:
            return fmt

    if image.format:
        return image.format
    raise EncodeError("Unknown image format, cannot re-encode")


def downscale(
    blob: bytes,
    max_width_px: int,
    quality: float = 0.9,
    mime_type: Optional[str] = None,
) -> bytes:
    """
    Shrink an image to max_width_px wide, keeping its aspect ratio.

    Images already narrow enough come back as the very same bytes object,
    so nothing is re-encoded and no quality is lost. Larger ones are
    resized in one bicubic pass and re-encoded in their original format.
    """
    with _open(blob) as image:
        width, height = image.size

        if width <= max_width_px:
            return blob

        scale = max_width_px / width
        target_height = max(1, round(height * scale))
        fmt = _target_format(image, mime_type)

        resized = image.resize((max_width_px, target_height), Image.BICUBIC)

    save_kwargs = {}
    if fmt in LOSSY_FORMATS:
        save_kwargs["quality"] = int(round(quality * 100))
    if fmt == "JPEG" and resized.mode not in ("RGB", "L", "CMYK"):
        resized = resized.convert("RGB")

    buf = io.BytesIO()
    try:
        resized.save(buf, format=fmt, **save_kwargs)
    except (OSError, ValueError, KeyError) as e:
        raise EncodeError(f"Cannot encode image as {fmt}: {e}") from e

    data = buf.getvalue()
    if not data:
        raise EncodeError(f"Encoding as {fmt} produced no output")
    return data


def downscale_with_config(blob: bytes, config: DownscaleConfig, mime_type: Optional[str] = None) -> bytes:
    return downscale(blob, config.max_width_px, config.quality, mime_type=mime_type)
