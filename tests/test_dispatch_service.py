import asyncio
import base64
from types import SimpleNamespace

import httpx
import openai
import pytest

from visionbatch.core.errors import ConfigError, RemoteError
from visionbatch.models.schemas import Mode, OperationRequest
from visionbatch.services.dispatch_service import (
    DESCRIBE_INSTRUCTION,
    Dispatcher,
    OcrSpaceClient,
    VisionChatClient,
)
from visionbatch.services.error_service import classify


OCR_URL = "https://ocr.test/parse/image"


def ocr_client(handler, api_key="secret-key"):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OcrSpaceClient(api_key, OCR_URL, "spa", http_client=http)


class FakeCompletions:
    def __init__(self, content="a red square", error=None):
        self.content = content
        self.error = error
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def vision_client(completions):
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return VisionChatClient(None, "vision-model", client=client)


# -----------------------------
# OCR
# -----------------------------

def test_ocr_sends_multipart_fields_and_joins_pages():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["body"] = request.content
        return httpx.Response(200, json={
            "IsErroredOnProcessing": False,
            "ParsedResults": [{"ParsedText": "first-\npage"}, {"ParsedText": "second"}],
        })

    text = asyncio.run(ocr_client(handler).extract_text(b"IMG", "scan.png", "image/png"))

    assert text == "first-\npage\nsecond"
    assert seen["url"] == OCR_URL
    assert b'name="apikey"' in seen["body"]
    assert b"secret-key" in seen["body"]
    assert b'name="language"' in seen["body"]
    assert b'name="file"; filename="scan.png"' in seen["body"]


def test_ocr_service_reported_error():
    def handler(request):
        return httpx.Response(200, json={
            "IsErroredOnProcessing": True,
            "ErrorMessage": ["File failed validation.", "Unsupported format."],
        })

    with pytest.raises(RemoteError) as exc_info:
        asyncio.run(ocr_client(handler).extract_text(b"IMG", "a.png", "image/png"))

    assert exc_info.value.status == 200
    assert classify(exc_info.value) == "File failed validation. Unsupported format."


def test_ocr_error_message_as_plain_string():
    def handler(request):
        return httpx.Response(200, json={"IsErroredOnProcessing": True, "ErrorMessage": "Timed out"})

    with pytest.raises(RemoteError, match="Timed out"):
        asyncio.run(ocr_client(handler).extract_text(b"IMG", "a.png", "image/png"))


def test_ocr_non_2xx_response():
    def handler(request):
        return httpx.Response(403, text="The API key is invalid")

    with pytest.raises(RemoteError) as exc_info:
        asyncio.run(ocr_client(handler).extract_text(b"IMG", "a.png", "image/png"))

    assert exc_info.value.status == 403
    assert exc_info.value.message == "The API key is invalid"


def test_ocr_non_2xx_with_service_error_list():
    def handler(request):
        return httpx.Response(403, json={
            "IsErroredOnProcessing": True,
            "ErrorMessage": ["The API key is invalid", "Request rejected"],
        })

    with pytest.raises(RemoteError) as exc_info:
        asyncio.run(ocr_client(handler).extract_text(b"IMG", "a.png", "image/png"))

    assert exc_info.value.status == 403
    assert classify(exc_info.value) == "The API key is invalid Request rejected"


def test_ocr_non_2xx_json_without_error_list_keeps_body():
    def handler(request):
        return httpx.Response(500, json={"detail": "down"})

    with pytest.raises(RemoteError) as exc_info:
        asyncio.run(ocr_client(handler).extract_text(b"IMG", "a.png", "image/png"))

    assert "down" in exc_info.value.message


def test_ocr_malformed_json():
    def handler(request):
        return httpx.Response(200, text="<html>oops</html>")

    with pytest.raises(RemoteError, match="Malformed response"):
        asyncio.run(ocr_client(handler).extract_text(b"IMG", "a.png", "image/png"))


def test_ocr_transport_failure():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(RemoteError) as exc_info:
        asyncio.run(ocr_client(handler).extract_text(b"IMG", "a.png", "image/png"))

    assert exc_info.value.status is None


@pytest.mark.parametrize("key", [None, "", "  ", "YOUR_API_KEY", "<ocr-key>"])
def test_ocr_placeholder_key_is_config_error(key):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={})

    client = ocr_client(handler, api_key=key)
    with pytest.raises(ConfigError):
        client.check_credentials()
    with pytest.raises(ConfigError):
        asyncio.run(client.extract_text(b"IMG", "a.png", "image/png"))
    assert calls == []


# -----------------------------
# Vision chat
# -----------------------------

def test_chat_message_puts_instruction_before_image():
    completions = FakeCompletions()
    text = asyncio.run(vision_client(completions).complete("What is this?", b"IMG", "image/png"))

    assert text == "a red square"
    call = completions.calls[0]
    assert call["model"] == "vision-model"
    parts = call["messages"][0]["content"]
    assert [p["type"] for p in parts] == ["text", "image_url"]
    assert parts[0]["text"] == "What is this?"
    assert parts[1]["image_url"]["url"] == "data:image/png;base64," + base64.b64encode(b"IMG").decode()


def test_chat_empty_reply_is_empty_text():
    assert asyncio.run(vision_client(FakeCompletions(content=None)).complete("x", b"IMG", "image/png")) == ""


def test_chat_status_error_keeps_service_message():
    response = httpx.Response(500, request=httpx.Request("POST", "https://vision.test/chat/completions"))
    error = openai.InternalServerError("Error code: 500", response=response, body={"message": "model overloaded"})

    with pytest.raises(RemoteError) as exc_info:
        asyncio.run(vision_client(FakeCompletions(error=error)).complete("x", b"IMG", "image/png"))

    assert exc_info.value.status == 500
    assert classify(exc_info.value) == "model overloaded"


def test_chat_connection_error():
    request = httpx.Request("POST", "https://vision.test/chat/completions")
    error = openai.APIConnectionError(message="Connection error.", request=request)

    with pytest.raises(RemoteError) as exc_info:
        asyncio.run(vision_client(FakeCompletions(error=error)).complete("x", b"IMG", "image/png"))

    assert exc_info.value.status is None
    assert classify(exc_info.value) == "Connection error."


def test_vision_without_key_is_config_error():
    client = VisionChatClient("changeme", "vision-model")
    with pytest.raises(ConfigError):
        client.check_credentials()


# -----------------------------
# Dispatcher
# -----------------------------

def make_dispatcher(completions, ocr_handler=None):
    handler = ocr_handler or (lambda request: httpx.Response(200, json={
        "IsErroredOnProcessing": False,
        "ParsedResults": [{"ParsedText": "raw  ocr\ntext"}],
    }))
    return Dispatcher(ocr_client(handler), vision_client(completions))


def test_dispatch_ocr_returns_raw_text():
    completions = FakeCompletions()
    request = OperationRequest(mode=Mode.OCR, image_blob=b"IMG")
    assert asyncio.run(make_dispatcher(completions).dispatch(request)) == "raw  ocr\ntext"
    assert completions.calls == []


def test_dispatch_describe_uses_fixed_instruction():
    completions = FakeCompletions()
    request = OperationRequest(mode=Mode.DESCRIBE, image_blob=b"IMG", instruction_text="ignored")
    asyncio.run(make_dispatcher(completions).dispatch(request))
    assert completions.calls[0]["messages"][0]["content"][0]["text"] == DESCRIBE_INSTRUCTION


def test_dispatch_custom_uses_caller_instruction():
    completions = FakeCompletions(content="three")
    request = OperationRequest(mode=Mode.CUSTOM, image_blob=b"IMG", instruction_text="Count the cats")
    assert asyncio.run(make_dispatcher(completions).dispatch(request)) == "three"
    assert completions.calls[0]["messages"][0]["content"][0]["text"] == "Count the cats"


def test_custom_request_without_instruction_is_rejected():
    with pytest.raises(ConfigError):
        OperationRequest(mode=Mode.CUSTOM, image_blob=b"IMG", instruction_text="  ")


def test_preflight_checks_the_credential_of_the_mode():
    dispatcher = Dispatcher(
        OcrSpaceClient(None, OCR_URL, "spa"),
        VisionChatClient("real-key", "vision-model"),
    )
    with pytest.raises(ConfigError):
        dispatcher.preflight(Mode.OCR)
    dispatcher.preflight(Mode.DESCRIBE)
    dispatcher.preflight(Mode.CUSTOM)


def test_dispatcher_aclose_closes_the_vision_client():
    closed = []

    async def close():
        closed.append(True)

    client = SimpleNamespace(chat=SimpleNamespace(completions=FakeCompletions()), close=close)
    dispatcher = Dispatcher(
        OcrSpaceClient("key", OCR_URL, "spa"),
        VisionChatClient(None, "vision-model", client=client),
    )

    asyncio.run(dispatcher.aclose())
    asyncio.run(dispatcher.aclose())

    assert closed == [True]
