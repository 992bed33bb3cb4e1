from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ParseErrorCode(str, Enum):
    INVALID_JSON = "INVALID_JSON"
    INVALID_FORMAT = "INVALID_FORMAT"
    EMPTY_FILE = "EMPTY_FILE"
    FILE_TOO_LARGE = "FILE_TOO_LARGE"
    INVALID_FILE_TYPE = "INVALID_FILE_TYPE"
    READ_ERROR = "READ_ERROR"


class ApiErrorCode(str, Enum):
    RATE_LIMIT = "RATE_LIMIT"
    AUTH_ERROR = "AUTH_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    SERVER_ERROR = "SERVER_ERROR"
    UNKNOWN = "UNKNOWN"


RETRYABLE_CODES = frozenset(
    {
        ApiErrorCode.RATE_LIMIT,
        ApiErrorCode.TIMEOUT,
        ApiErrorCode.SERVER_ERROR,
        ApiErrorCode.NETWORK_ERROR,
    }
)


class ExportParseError(Exception):
    """Raised when an export cannot be turned into conversations."""

    def __init__(self, code: ParseErrorCode, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class ProviderError(Exception):
    """A classified failure from the generative provider."""

    def __init__(self, code: ApiErrorCode, message: str, *, retry_after: Optional[float] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.retry_after = retry_after

    @property
    def retryable(self) -> bool:
        return self.code in RETRYABLE_CODES

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class RequestAborted(ProviderError):
    """The caller aborted an in-flight provider request."""

    def __init__(self, message: str = "Request aborted"):
        super().__init__(ApiErrorCode.TIMEOUT, message)

    @property
    def retryable(self) -> bool:
        return False
