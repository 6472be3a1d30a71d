import logging
import sys

from visionbatch.core.config import settings


NOISY_LOGGERS = ["httpx", "httpcore", "openai", "uvicorn", "uvicorn.access", "uvicorn.error"]


def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)

    # don't stack handlers when a module is imported twice
    if not any(isinstance(h, logging.StreamHandler) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.setLevel(settings.LOG_LEVEL.upper())
    logger.propagate = False

    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return logger
