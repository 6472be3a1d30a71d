from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from visionbatch.core.errors import ConfigError


class Mode(str, Enum):
    OCR = "ocr"
    DESCRIBE = "describe"
    CUSTOM = "custom"


class ItemState(str, Enum):
    PENDING = "pending"
    RESIZING = "resizing"
    DISPATCHING = "dispatching"
    NORMALIZING = "normalizing"
    DONE = "done"
    FAILED = "failed"


# -----------------------------
# Pipeline models
# -----------------------------

class ImageItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    raw_blob: bytes
    mime_type: str
    filename: str


class DownscaleConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_width_px: int = Field(1500, gt=0)
    quality: float = Field(0.9, gt=0, le=1)


class OperationRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    mode: Mode
    image_blob: bytes
    mime_type: str = "image/jpeg"
    filename: str = "image"
    instruction_text: Optional[str] = None

    @model_validator(mode="after")
    def _instruction_matches_mode(self):
        # Raised as-is (not a ValueError) so pydantic doesn't wrap it
        if self.mode == Mode.CUSTOM and not (self.instruction_text or "").strip():
            raise ConfigError("A custom instruction is required for custom mode")
        return self


class OperationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    item_id: str
    filename: str
    success: bool
    text: Optional[str] = None
    error_message: Optional[str] = None

    @model_validator(mode="after")
    def _one_outcome(self):
        if self.success and (self.text is None or self.error_message is not None):
            raise ValueError("successful result must carry text and no error_message")
        if not self.success and (self.error_message is None or self.text is not None):
            raise ValueError("failed result must carry error_message and no text")
        return self

    @classmethod
    def ok(cls, item: ImageItem, text: str) -> "OperationResult":
        return cls(item_id=item.id, filename=item.filename, success=True, text=text)

    @classmethod
    def failed(cls, item: ImageItem, message: str) -> "OperationResult":
        return cls(item_id=item.id, filename=item.filename, success=False, error_message=message)


# -----------------------------
# HTTP response models
# -----------------------------

class ResultCard(BaseModel):
    item_id: str
    filename: str
    success: bool
    text: Optional[str] = None
    error_message: Optional[str] = None
    display_text: str
    copyable: bool = False


class BatchResponse(BaseModel):
    status: str
    mode: Mode
    max_docs_allowed: int
    results: List[ResultCard]
