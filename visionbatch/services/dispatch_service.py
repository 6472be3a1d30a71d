import base64
from typing import Any, Optional

import httpx
import openai
from openai import AsyncOpenAI

from visionbatch.core.config import Settings, is_placeholder, settings as default_settings
from visionbatch.core.errors import ConfigError, RemoteError
from visionbatch.core.logger import get_logger
from visionbatch.models.schemas import Mode, OperationRequest


logger = get_logger(__name__)

DESCRIBE_INSTRUCTION = "Describe in detail what is visible in this image."


# ---------------------------------------------------------
# OCR service (OCR.space style multipart API)
# ---------------------------------------------------------

def _json_or_none(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return None


def _service_errors(payload: Any) -> str:
    """Join the service's ErrorMessage field (a list or a single string)."""
    if not isinstance(payload, dict):
        return ""
    errors = payload.get("ErrorMessage") or []
    if isinstance(errors, str):
        errors = [errors]
    return " ".join(str(e) for e in errors if e).strip()


class OcrSpaceClient:
    def __init__(
        self,
        api_key: Optional[str],
        endpoint: str,
        language: str,
        *,
        timeout: float = 60.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.endpoint = endpoint
        self.language = language
        self.timeout = timeout
        self._http_client = http_client

    def check_credentials(self) -> None:
        if is_placeholder(self.api_key):
            raise ConfigError("OCR_API_KEY is not configured")

    async def _post(self, files: dict, data: dict) -> httpx.Response:
        if self._http_client is not None:
            return await self._http_client.post(self.endpoint, files=files, data=data)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.post(self.endpoint, files=files, data=data)

    async def extract_text(self, image_bytes: bytes, filename: str, mime_type: str) -> str:
        """
        Upload one image and return the parsed text verbatim.
        Pages (ParsedResults entries) are joined with a line break.
        """
        self.check_credentials()

        files = {"file": (filename, image_bytes, mime_type)}
        data = {"apikey": self.api_key, "language": self.language}

        try:
            resp = await self._post(files, data)
        except httpx.HTTPError as e:
            raise RemoteError(None, f"OCR service unreachable: {e}") from e

        if not resp.is_success:
            message = (
                _service_errors(_json_or_none(resp))
                or resp.text.strip()
                or resp.reason_phrase
                or "OCR service error"
            )
            raise RemoteError(resp.status_code, message)

        try:
            payload = resp.json()
        except ValueError as e:
            raise RemoteError(resp.status_code, "Malformed response from OCR service") from e
        if not isinstance(payload, dict):
            raise RemoteError(resp.status_code, "Malformed response from OCR service")

        if payload.get("IsErroredOnProcessing"):
            message = _service_errors(payload) or "OCR processing failed"
            raise RemoteError(resp.status_code, message)

        parsed = payload.get("ParsedResults") or []
        return "\n".join((r or {}).get("ParsedText") or "" for r in parsed)


# ---------------------------------------------------------
# Conversational vision service (OpenAI-compatible chat)
# ---------------------------------------------------------

class VisionChatClient:
    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        *,
        base_url: Optional[str] = None,
        timeout: float = 60.0,
        client: Any = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.timeout = timeout
        self._client = client

    def check_credentials(self) -> None:
        if self._client is None and is_placeholder(self.api_key):
            raise ConfigError("VISION_API_KEY is not configured")

    @property
    def client(self):
        if self._client is None:
            self.check_credentials()
            # single-shot: retry policy belongs to the caller
            self._client = AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and hasattr(self._client, "close"):
            await self._client.close()
        self._client = None

    @staticmethod
    def build_messages(instruction: str, image_bytes: bytes, mime_type: str) -> list:
        image_b64 = base64.b64encode(image_bytes).decode("utf-8")
        return [{
            "role": "user",
            "content": [
                {"type": "text", "text": instruction},
                {
                    "type": "image_url",
                    "image_url": {"url": f"data:{mime_type};base64,{image_b64}"},
                },
            ],
        }]

    async def complete(self, instruction: str, image_bytes: bytes, mime_type: str) -> str:
        messages = self.build_messages(instruction, image_bytes, mime_type)

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
            )
        except openai.APIStatusError as e:
            body = e.body if isinstance(e.body, dict) else None
            raise RemoteError(e.status_code, e.message, error=body) from e
        except openai.APIError as e:
            raise RemoteError(None, e.message) from e

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""


# ---------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------

class Dispatcher:
    """Runs exactly one remote operation for one image, picked by mode."""

    def __init__(self, ocr_client: OcrSpaceClient, vision_client: VisionChatClient):
        self.ocr_client = ocr_client
        self.vision_client = vision_client

    def preflight(self, mode: Mode) -> None:
        """Raise ConfigError when the credential this mode needs is missing."""
        if mode == Mode.OCR:
            self.ocr_client.check_credentials()
        else:
            self.vision_client.check_credentials()

    async def aclose(self) -> None:
        await self.vision_client.aclose()

    async def dispatch(self, request: OperationRequest) -> str:
        logger.debug("Dispatching %s for %s", request.mode.value, request.filename)

        if request.mode == Mode.OCR:
            return await self.ocr_client.extract_text(
                request.image_blob, request.filename, request.mime_type
            )

        if request.mode == Mode.DESCRIBE:
            instruction = DESCRIBE_INSTRUCTION
        else:
            instruction = (request.instruction_text or "").strip()
            if not instruction:
                raise ConfigError("A custom instruction is required for custom mode")

        return await self.vision_client.complete(instruction, request.image_blob, request.mime_type)


def build_dispatcher(settings: Settings = default_settings) -> Dispatcher:
    ocr = OcrSpaceClient(
        settings.OCR_API_KEY,
        settings.OCR_API_URL,
        settings.OCR_LANGUAGE,
        timeout=settings.REQUEST_TIMEOUT_S,
    )
    vision = VisionChatClient(
        settings.VISION_API_KEY,
        settings.VISION_MODEL,
        base_url=settings.VISION_BASE_URL,
        timeout=settings.REQUEST_TIMEOUT_S,
    )
    return Dispatcher(ocr, vision)
