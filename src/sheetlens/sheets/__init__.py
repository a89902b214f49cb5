"""Google Sheets API integration."""

from .client import GoogleSheetsClient
from .errors import (
    CacheUnavailableError,
    ErrorKind,
    FatalError,
    PermissionDeniedError,
    RateLimitedError,
    SheetsError,
    TransientError,
    classify_error,
)
from .models import (
    CheckboxValidation,
    DropdownValidation,
    SheetMetadata,
    SheetTab,
    SpreadsheetInfo,
    ValidationRule,
    WriteResult,
)

__all__ = [
    "GoogleSheetsClient",
    "CacheUnavailableError",
    "ErrorKind",
    "FatalError",
    "PermissionDeniedError",
    "RateLimitedError",
    "SheetsError",
    "TransientError",
    "classify_error",
    "CheckboxValidation",
    "DropdownValidation",
    "SheetMetadata",
    "SheetTab",
    "SpreadsheetInfo",
    "ValidationRule",
    "WriteResult",
]
