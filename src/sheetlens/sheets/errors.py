"""Error taxonomy for remote spreadsheet access.

Remote failures are classified once, at the transport boundary, into one of
a few kinds. Only transient failures are retryable and may be queued for a
later replay; everything else is surfaced to the caller.
"""

import json
from enum import Enum
from typing import Optional

import httplib2
import httpx
from google.auth.exceptions import TransportError as GoogleTransportError
from googleapiclient.errors import HttpError


class ErrorKind(str, Enum):
    """Kinds of failure a caller has to react to."""

    RATE_LIMITED = "rate_limited"
    PERMISSION_DENIED = "permission_denied"
    CONFLICT = "conflict"
    TRANSIENT = "transient"  # network, timeout, 408 or 5xx - retryable, may be queued
    FATAL = "fatal"  # other 4xx and unexpected errors - never queued
    CACHE_UNAVAILABLE = "cache_unavailable"  # offline with no cached snapshot


class SheetsError(Exception):
    """Base error carrying a kind and a user-facing message."""

    kind: ErrorKind = ErrorKind.FATAL
    default_message = "Something went wrong"

    def __init__(
        self,
        user_message: Optional[str] = None,
        status: Optional[int] = None,
        raw_message: Optional[str] = None,
    ):
        self.user_message = user_message or self.default_message
        self.status = status
        self.raw_message = raw_message
        super().__init__(self.user_message)

    @property
    def is_transient(self) -> bool:
        return self.kind == ErrorKind.TRANSIENT


class RateLimitedError(SheetsError):
    """429 Too Many Requests."""

    kind = ErrorKind.RATE_LIMITED
    default_message = "Too many requests. Please wait a moment and try again."


class PermissionDeniedError(SheetsError):
    """403 Forbidden."""

    kind = ErrorKind.PERMISSION_DENIED
    default_message = (
        "Access denied. Re-run authentication, make sure the Sheets and Drive APIs "
        "are enabled, or ask the sheet owner to share it with you."
    )


class TransientError(SheetsError):
    """Connectivity failure, timeout, 408 or 5xx."""

    kind = ErrorKind.TRANSIENT
    default_message = "Network error. Check your connection and try again."


class FatalError(SheetsError):
    """Non-retryable failure."""

    kind = ErrorKind.FATAL


class CacheUnavailableError(SheetsError):
    """Offline and nothing cached for the requested sheet."""

    kind = ErrorKind.CACHE_UNAVAILABLE
    default_message = "You're offline. No cached data available."


CONNECTIVITY_ERRORS = (
    OSError,  # ConnectionError, TimeoutError, socket.timeout, socket.gaierror
    httplib2.HttpLib2Error,
    GoogleTransportError,
    httpx.TransportError,
)


def parse_error_message(content: Optional[bytes]) -> Optional[str]:
    """Extract ``error.message`` from a Google API JSON error body."""
    if not content:
        return None
    try:
        body = json.loads(content)
    except (ValueError, UnicodeDecodeError):
        return None
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and isinstance(error.get("message"), str):
        return error["message"]
    return None


def http_status(error: HttpError) -> int:
    status = getattr(error, "status_code", None)
    if status is None:
        status = error.resp.status
    return int(status)


def classify_error(exc: BaseException) -> SheetsError:
    """Map any exception raised by the transport onto the error taxonomy."""
    if isinstance(exc, SheetsError):
        return exc

    if isinstance(exc, HttpError):
        status = http_status(exc)
        raw = parse_error_message(exc.content)
        if status == 429:
            return RateLimitedError(status=status, raw_message=raw)
        if status == 403:
            return PermissionDeniedError(status=status, raw_message=raw)
        if status == 408 or status >= 500:
            return TransientError(
                f"The spreadsheet service is unavailable ({status}). Your change will be retried.",
                status=status,
                raw_message=raw,
            )
        return FatalError(raw or f"Request failed ({status})", status=status, raw_message=raw)

    if isinstance(exc, FileNotFoundError):
        # Missing credentials file is a setup problem, not a network one
        return FatalError(str(exc), raw_message=str(exc))

    if isinstance(exc, CONNECTIVITY_ERRORS):
        return TransientError(raw_message=str(exc) or type(exc).__name__)

    return FatalError(str(exc) or "Something went wrong", raw_message=str(exc))
