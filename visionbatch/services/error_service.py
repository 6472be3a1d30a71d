import json
from collections.abc import Mapping
from typing import Any


UNKNOWN_ERROR = "unknown error"

_MISSING = object()


def _field(value: Any, name: str) -> Any:
    if isinstance(value, Mapping):
        return value.get(name, _MISSING)
    return getattr(value, name, _MISSING)


def _text(value: Any) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return ""


def classify(error: Any) -> str:
    """
    Reduce any failure to a human-readable message.

    Looks for a nested service message (error.error.message) first, then a
    plain message field, then falls back to the error's own representation.
    Never raises.
    """
    if error is None:
        return UNKNOWN_ERROR
    if isinstance(error, str):
        return _text(error) or UNKNOWN_ERROR

    try:
        nested = _field(error, "error")
        if nested is not _MISSING and nested is not None:
            msg = _text(_field(nested, "message"))
            if msg:
                return msg

        msg = _text(_field(error, "message"))
        if msg:
            return msg

        if isinstance(error, BaseException):
            return _text(str(error)) or type(error).__name__

        try:
            return _text(json.dumps(error, default=str)) or UNKNOWN_ERROR
        except (TypeError, ValueError):
            return _text(repr(error)) or UNKNOWN_ERROR
    except Exception:
        # error objects with hostile __getattr__/__str__
        return UNKNOWN_ERROR
