import os
from typing import List, Optional

from dotenv import load_dotenv


# Pick up credentials from a local .env when present
load_dotenv()


PLACEHOLDER_VALUES = {"", "changeme", "your_api_key", "your-api-key", "xxx", "none", "null"}


def is_placeholder(value: Optional[str]) -> bool:
    """
    True for credentials that are missing or obviously not real:
    - empty / whitespace
    - common placeholders (changeme, YOUR_API_KEY, ...)
    - template markers like <api-key>
    """
    if value is None:
        return True
    v = value.strip()
    if v.lower() in PLACEHOLDER_VALUES:
        return True
    return v.startswith("<") and v.endswith(">")


class Settings:
    PROJECT_NAME: str = "Vision Batch Service"
    API_V1_STR: str = "/api/v1"

    # CORS – allow all origins in dev. Tighten in prod.
    BACKEND_CORS_ORIGINS: List[str] = ["*"]

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # -----------------------------
    # Batch controls
    # -----------------------------
    MAX_DOCS_PER_BATCH: int = int(os.getenv("MAX_DOCS_PER_BATCH", "20"))

    # Max size per file in MB (protects RAM)
    MAX_FILE_SIZE_MB: int = int(os.getenv("MAX_FILE_SIZE_MB", "20"))

    # 1 = strictly sequential
    BATCH_CONCURRENCY: int = int(os.getenv("BATCH_CONCURRENCY", "1"))

    # -----------------------------
    # Downscaling before upload
    # -----------------------------
    DOWNSCALE_MAX_WIDTH: int = int(os.getenv("DOWNSCALE_MAX_WIDTH", "1500"))
    DOWNSCALE_QUALITY: float = float(os.getenv("DOWNSCALE_QUALITY", "0.9"))

    # -----------------------------
    # Remote services
    # -----------------------------
    OCR_API_URL: str = os.getenv("OCR_API_URL", "https://api.ocr.space/parse/image")
    OCR_API_KEY: Optional[str] = os.getenv("OCR_API_KEY")
    OCR_LANGUAGE: str = os.getenv("OCR_LANGUAGE", "spa")

    VISION_API_KEY: Optional[str] = os.getenv("VISION_API_KEY")
    # None -> the default OpenAI endpoint
    VISION_BASE_URL: Optional[str] = os.getenv("VISION_BASE_URL") or None
    VISION_MODEL: str = os.getenv("VISION_MODEL", "gpt-4o-mini")

    REQUEST_TIMEOUT_S: float = float(os.getenv("REQUEST_TIMEOUT_S", "60"))


settings = Settings()
