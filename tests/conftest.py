import io

import pytest
from PIL import Image

from visionbatch.core.errors import ConfigError
from visionbatch.models.schemas import ImageItem, Mode


def make_image_bytes(width: int, height: int, fmt: str = "PNG", mode: str = "RGB") -> bytes:
    color = (200, 30, 30, 255) if mode == "RGBA" else (200, 30, 30)
    image = Image.new(mode, (width, height), color)
    buf = io.BytesIO()
    image.save(buf, format=fmt)
    return buf.getvalue()


def make_item(item_id: str, width: int = 100, height: int = 50, fmt: str = "PNG") -> ImageItem:
    mime = {"PNG": "image/png", "JPEG": "image/jpeg"}[fmt]
    return ImageItem(
        id=item_id,
        raw_blob=make_image_bytes(width, height, fmt),
        mime_type=mime,
        filename=f"{item_id}.{fmt.lower()}",
    )


class FakeDispatcher:
    """
    Stands in for the remote services.
    responses maps filename -> text to return, or an exception to raise.
    """

    def __init__(self, responses=None, missing_credentials=False):
        self.responses = responses or {}
        self.missing_credentials = missing_credentials
        self.requests = []

    def preflight(self, mode):
        if self.missing_credentials:
            raise ConfigError(f"credentials missing for {Mode(mode).value}")

    async def dispatch(self, request):
        self.requests.append(request)
        outcome = self.responses.get(request.filename, f"text for {request.filename}")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def fake_dispatcher():
    return FakeDispatcher()
