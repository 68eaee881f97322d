"""
SmartNotes Backend - Custom Exception Hierarchy
================================================

What:  Application-specific exceptions for each failure channel.
How:   Each exception carries a user-facing message and an optional context
       dict. Global handlers (registered in main.py) turn them into JSON
       error responses with the right HTTP status code.
Who:   Raised by services; caught by the pipeline (stage degradation), the
       batch importer (per-file failure) or the global handlers.

Exception Hierarchy:
    SmartNotesError (base)
    ├── ValidationError          → 400 Bad Request
    ├── AuthenticationError      → 401 Unauthorized
    ├── NotFoundError            → 404 Not Found
    ├── ExtractionError          → 422 Unprocessable Entity (per file)
    │   ├── UnsupportedTypeError
    │   ├── CorruptFileError
    │   ├── EmptyResultError
    │   └── OCRFailedError
    ├── GatewayError             → 502 Bad Gateway (per LLM call)
    │   ├── MissingCredentialError   (503)
    │   ├── NetworkFailureError
    │   ├── APIError
    │   ├── SafetyBlockedError
    │   └── MalformedResponseError
    └── PersistenceError         → 500 Internal Server Error

Response parsing never raises: malformed LLM output degrades to fallback
values inside response_parser. Tag reconciliation problems are collected as
ReconciliationWarning records (see services/tag_reconciliation.py).
"""

from typing import Any, Dict, Optional


class SmartNotesError(Exception):
    """
    Base exception for all SmartNotes application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(SmartNotesError):
    """
    Raised when client input fails validation.

    When:    Oversized upload, blank tag name, delete without confirmation.
    HTTP:    400 Bad Request
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class AuthenticationError(SmartNotesError):
    """
    Raised when a note or tag operation runs without a resolved user.

    Every persistence call requires an authenticated identity; absence is a
    hard precondition failure, never an empty result.
    HTTP:    401 Unauthorized
    """

    def __init__(
        self,
        message: str = "User not authenticated",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(SmartNotesError):
    """
    Raised when a requested resource does not exist for the current user.

    HTTP:    404 Not Found
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


# ══════════════════════════════════════════════════════════════════════════
# Text Extraction
# ══════════════════════════════════════════════════════════════════════════

class ExtractionError(SmartNotesError):
    """
    Raised when an imported file cannot be turned into plain text.

    Non-fatal to a batch import: the importer records the failure against
    the file name and moves on to the next file.
    HTTP:    422 Unprocessable Entity
    """

    kind = "extraction_error"

    def __init__(
        self,
        message: str = "Could not extract text from the file",
        filename: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if filename:
            ctx["filename"] = filename
        super().__init__(message=message, context=ctx)
        self.filename = filename


class UnsupportedTypeError(ExtractionError):
    kind = "unsupported_type"


class CorruptFileError(ExtractionError):
    kind = "corrupt_file"


class EmptyResultError(ExtractionError):
    kind = "empty_result"


class OCRFailedError(ExtractionError):
    """The OCR boundary answered with a payload-level `error` field."""

    kind = "ocr_failed"


# ══════════════════════════════════════════════════════════════════════════
# LLM Gateway
# ══════════════════════════════════════════════════════════════════════════

class GatewayError(SmartNotesError):
    """
    Raised when a single LLM generation call fails.

    The gateway never retries; the processing pipeline decides whether a
    failed call degrades a stage or is retried (see services/ai_pipeline.py).
    HTTP:    502 Bad Gateway
    """

    kind = "gateway_error"

    def __init__(
        self,
        message: str = "The AI service request failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class MissingCredentialError(GatewayError):
    """No API key configured. HTTP 503 (server misconfiguration)."""

    kind = "missing_credential"

    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            message="Gemini API key is not configured.",
            context=context,
        )


class NetworkFailureError(GatewayError):
    """Transport-level failure: DNS, connection reset, timeout."""

    kind = "network_failure"


class APIError(GatewayError):
    """
    The endpoint answered with a non-success HTTP status.

    Attributes:
        status_code:  HTTP status returned by the endpoint
        detail:       Best-effort decoded error body
    """

    kind = "api_error"

    def __init__(
        self,
        status_code: int,
        detail: str = "",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["status_code"] = status_code
        message = f"Gemini API error: {status_code}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message=message, context=ctx)
        self.status_code = status_code
        self.detail = detail

    @property
    def is_server_error(self) -> bool:
        return self.status_code >= 500


class SafetyBlockedError(GatewayError):
    """The model stopped with finishReason=SAFETY instead of producing text."""

    kind = "safety_blocked"

    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=(
                "Content generation blocked by AI safety policies. "
                "Please review the input text."
            ),
            context=context,
        )


class MalformedResponseError(GatewayError):
    """
    A success response did not contain the expected text path.

    Attributes:
        field_path:  The missing path, e.g. "candidates[0].content.parts"
    """

    kind = "malformed_response"

    def __init__(self, field_path: str, context: Optional[Dict[str, Any]] = None):
        ctx = context or {}
        ctx["field_path"] = field_path
        super().__init__(
            message=(
                "Failed to extract text from Gemini response due to unexpected "
                f"structure. Missing: {field_path}"
            ),
            context=ctx,
        )
        self.field_path = field_path


# ══════════════════════════════════════════════════════════════════════════
# Persistence
# ══════════════════════════════════════════════════════════════════════════

class PersistenceError(SmartNotesError):
    """
    Raised when a store operation fails unexpectedly.

    The message returned to the client is generic; details are logged
    server-side only. No automatic retry.
    HTTP:    500 Internal Server Error
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
