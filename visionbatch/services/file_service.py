import re
import uuid
from pathlib import Path
from typing import Optional

from visionbatch.core.config import settings
from visionbatch.models.schemas import ImageItem


IMAGE_MIME_BY_EXT = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
    "gif": "image/gif",
    "bmp": "image/bmp",
    "tif": "image/tiff",
    "tiff": "image/tiff",
}

DEFAULT_MIME = "application/octet-stream"


def sanitize_filename(filename: str) -> str:
    """
    Keep filenames safe for display:
    - strip folders
    - remove dangerous chars
    """
    name = Path(filename).name
    name = re.sub(r"[^a-zA-Z0-9._ -]+", "_", name).strip()
    return name or "image"


def resolve_mime_type(filename: str, content_type: Optional[str]) -> str:
    """Trust an image/* content type, otherwise guess from the extension."""
    if content_type and content_type.lower().startswith("image/"):
        return content_type.lower()
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    return IMAGE_MIME_BY_EXT.get(ext, content_type or DEFAULT_MIME)


def check_size(file_bytes: bytes) -> Optional[str]:
    """Return a reason when the upload can't enter the pipeline, else None."""
    if not file_bytes:
        return "Empty file"
    if len(file_bytes) > settings.MAX_FILE_SIZE_MB * 1024 * 1024:
        return f"File exceeds max size of {settings.MAX_FILE_SIZE_MB} MB"
    return None


def build_item(file_bytes: bytes, filename: Optional[str], content_type: Optional[str]) -> ImageItem:
    safe = sanitize_filename(filename or "image")
    return ImageItem(
        id=str(uuid.uuid4()),
        raw_blob=file_bytes,
        mime_type=resolve_mime_type(safe, content_type),
        filename=safe,
    )
