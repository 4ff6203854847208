"""
Custom exceptions for the ModNote content core.

This module defines the exception taxonomy used by the acquisition and
retrieval layers, plus helpers that classify provider failures into the
retryable / terminal families the orchestrator understands.
"""

import asyncio
from enum import Enum
from typing import Any, Optional

import httpx
import openai


class ErrorKind(str, Enum):
    """Failure families used by the acquisition retry policy."""

    NETWORK_OR_TIMEOUT = "network_or_timeout"
    QUOTA_OR_AUTH = "quota_or_auth"
    MALFORMED_INPUT = "malformed_input"
    EMPTY_RESULT = "empty_result"
    CANCELLED = "cancelled"


class ModNoteException(Exception):
    """Base exception for all ModNote-specific errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        """
        Initialize the exception.

        Args:
            message: Error message
            details: Optional dictionary with additional error details
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# =============================================================================
# Extraction Exceptions
# =============================================================================


class ExtractionError(ModNoteException):
    """Base exception for extraction strategy failures."""

    kind: ErrorKind = ErrorKind.NETWORK_OR_TIMEOUT
    retryable: bool = True

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        retryable: Optional[bool] = None,
    ) -> None:
        super().__init__(message, details)
        # Instance override for failures that are deterministic despite their family
        if retryable is not None:
            self.retryable = retryable


class NetworkOrTimeoutError(ExtractionError):
    """Transient network failure or provider timeout."""

    kind = ErrorKind.NETWORK_OR_TIMEOUT
    retryable = True


class QuotaOrAuthError(ExtractionError):
    """Provider rejected the call for quota, billing or credential reasons."""

    kind = ErrorKind.QUOTA_OR_AUTH
    retryable = False


class MalformedInputError(ExtractionError):
    """Input the strategy cannot handle; retrying will not help."""

    kind = ErrorKind.MALFORMED_INPUT
    retryable = False


class EmptyResultError(ExtractionError):
    """Provider answered successfully but returned no usable text."""

    kind = ErrorKind.EMPTY_RESULT
    retryable = True


class AcquisitionCancelledError(ExtractionError):
    """Acquisition was cancelled or ran past its deadline."""

    kind = ErrorKind.CANCELLED
    retryable = False


_ERROR_TYPES: dict[ErrorKind, type[ExtractionError]] = {
    ErrorKind.NETWORK_OR_TIMEOUT: NetworkOrTimeoutError,
    ErrorKind.QUOTA_OR_AUTH: QuotaOrAuthError,
    ErrorKind.MALFORMED_INPUT: MalformedInputError,
    ErrorKind.EMPTY_RESULT: EmptyResultError,
    ErrorKind.CANCELLED: AcquisitionCancelledError,
}


def error_for_kind(kind: ErrorKind, message: str, **details: Any) -> ExtractionError:
    """Build the exception class matching an error kind."""
    return _ERROR_TYPES[kind](message, details or None)


# =============================================================================
# Retrieval Exceptions
# =============================================================================


class RetrievalError(ModNoteException):
    """Base exception for retrieval and context assembly errors."""

    pass


class ChunkingError(RetrievalError):
    """Error during text chunking."""

    pass


# =============================================================================
# Classification helpers
# =============================================================================

_QUOTA_OR_AUTH_STATUSES = {401, 402, 403, 429}
_MALFORMED_STATUSES = {400, 404, 410, 415, 422}


def classify_http_status(status_code: int) -> ErrorKind:
    """Map an HTTP status code from a provider onto an error kind."""
    if status_code in _QUOTA_OR_AUTH_STATUSES:
        return ErrorKind.QUOTA_OR_AUTH
    if status_code in _MALFORMED_STATUSES:
        return ErrorKind.MALFORMED_INPUT
    return ErrorKind.NETWORK_OR_TIMEOUT


def classify_exception(error: BaseException) -> Optional[ErrorKind]:
    """
    Map a provider/client exception onto an error kind.

    Returns None for exceptions that are not a known provider failure; those
    are treated as unexpected and propagate to the caller.
    """
    if isinstance(error, ExtractionError):
        return error.kind
    if isinstance(error, httpx.HTTPStatusError):
        return classify_http_status(error.response.status_code)
    if isinstance(error, (httpx.TimeoutException, httpx.TransportError, asyncio.TimeoutError)):
        return ErrorKind.NETWORK_OR_TIMEOUT
    if isinstance(
        error,
        (openai.AuthenticationError, openai.PermissionDeniedError, openai.RateLimitError),
    ):
        return ErrorKind.QUOTA_OR_AUTH
    if isinstance(error, (openai.BadRequestError, openai.NotFoundError)):
        return ErrorKind.MALFORMED_INPUT
    if isinstance(
        error,
        (openai.APIConnectionError, openai.APITimeoutError, openai.InternalServerError),
    ):
        return ErrorKind.NETWORK_OR_TIMEOUT
    return None


def raise_for_provider_status(response: httpx.Response, provider: str) -> None:
    """Raise the typed extraction error matching a failed provider response."""
    if response.is_success:
        return
    kind = classify_http_status(response.status_code)
    raise error_for_kind(
        kind,
        f"{provider} returned HTTP {response.status_code}",
        status_code=response.status_code,
        provider=provider,
    )
