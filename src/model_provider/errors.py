"""Exception classes raised by model_provider."""

from __future__ import annotations

import enum


class ModelProviderError(Exception):
    """Base class for all model_provider errors."""

    def __init__(self, message: str) -> None:
        super().__init__(f"[ModelProvider] {message}")


class ErrorCode(enum.Enum):
    """User-facing codes for rejected conversation input."""

    FUNCTION_CALL_UNSUPPORTED = "function_call_unsupported"
    FUNCTION_RESPONSE_UNSUPPORTED = "function_response_unsupported"
    MISSING_CHILDREN = "missing_children"


class UnsupportedInputError(ModelProviderError):
    """The conversation uses a feature these providers do not support."""

    def __init__(self, code: ErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code


class DecodeError(ModelProviderError):
    """A stream segment could not be decoded."""

    def __init__(self, segment: str, reason: str = "Invalid JSON") -> None:
        super().__init__(f"{reason}: {segment[:200]!r}")
        self.segment = segment
        self.reason = reason


class ConfigurationError(ModelProviderError):
    """A required capability was not supplied."""

    def __init__(self, capability: str) -> None:
        super().__init__(f"function {capability} is not defined")
        self.capability = capability


class TransportError(ModelProviderError):
    """Non-streaming HTTP call failed."""

    def __init__(self, status_code: int | None, body: str = "") -> None:
        super().__init__(f"HTTP {status_code}: {body[:200]}")
        self.status_code = status_code
        self.body = body
