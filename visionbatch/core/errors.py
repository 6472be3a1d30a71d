from typing import Any, Optional


class VisionBatchError(Exception):
    """Base class for every error raised by the pipeline."""


class ConfigError(VisionBatchError):
    """A required credential or instruction is missing. Fatal to the whole batch."""


class DecodeError(VisionBatchError):
    """The blob is not a decodable image."""


class EncodeError(VisionBatchError):
    """Re-encoding the downscaled image produced no output."""


class RemoteError(VisionBatchError):
    """
    Network or service-side failure of a remote operation.

    status is the HTTP status when one was received, None for transport
    failures. error holds the service's own error payload when it sent one.
    """

    def __init__(self, status: Optional[int], message: str, error: Any = None):
        super().__init__(message)
        self.status = status
        self.message = message
        self.error = error

    def __repr__(self) -> str:
        return f"RemoteError(status={self.status!r}, message={self.message!r})"


class ValidationSkip(VisionBatchError):
    """A single item cannot be processed as requested and is skipped without a result."""
