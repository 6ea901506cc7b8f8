"""
Error taxonomy for the processing pipeline.

Collaborator failures are raised as ``AgentError`` carrying a closed
``ErrorKind``. Before anything reaches a caller, fatal and unexpected errors
are translated through ``USER_FRIENDLY_ERRORS`` into a title/message pair
that is safe to display, while the technical message is kept for diagnostics.
"""

from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel


class ErrorKind(str, Enum):
    """Machine-readable error kinds shared by agents, pipeline and API host"""
    AUTHENTICATION = "authentication_error"
    API_KEY_MISSING = "api_key_missing"
    RATE_LIMIT = "rate_limit_error"
    INSUFFICIENT_CREDITS = "insufficient_credits"
    NETWORK = "network_error"
    TIMEOUT = "timeout"
    SERVER = "server_error"
    INVALID_RESPONSE = "invalid_response"
    EXTRACTION = "extraction_error"
    SCORING = "scoring_error"
    UNSUPPORTED_DOCUMENT = "unsupported_document"
    LOW_QUALITY = "low_quality"
    FILE_TOO_LARGE = "file_too_large"
    INVALID_FILE_TYPE = "invalid_file_type"
    CANCELED = "canceled"
    INTERNAL = "internal_error"


class AgentError(Exception):
    """
    Failure reported by an external collaborator (extraction or scoring agent).

    Args:
        kind: Error classification
        message: Technical message (logged, never shown to end users as-is)
        status_code: HTTP status returned by the upstream service, if any
        context: Structured details for diagnostics
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        status_code: Optional[int] = None,
        context: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.kind = ErrorKind(kind)
        self.message = message
        self.status_code = status_code
        self.context = context or {}

    def __repr__(self) -> str:
        return f"AgentError(kind={self.kind.value!r}, message={self.message!r}, status_code={self.status_code!r})"


class BudgetExceededError(AgentError):
    """Daily cost ceiling reached; the collaborator was not invoked."""

    def __init__(self, daily_limit: float, current_usage: float):
        super().__init__(
            ErrorKind.RATE_LIMIT,
            "Daily API cost limit reached",
            status_code=429,
            context={"daily_limit": daily_limit, "current_usage": current_usage},
        )
        self.daily_limit = daily_limit
        self.current_usage = current_usage


class PipelineStateSealedError(RuntimeError):
    """Raised when a terminal PipelineState is mutated."""


class FriendlyError(BaseModel):
    """User-facing rendering of an error"""
    title: str
    message: str
    action: str


USER_FRIENDLY_ERRORS: dict[str, FriendlyError] = {
    # API errors
    "API_KEY_INVALID": FriendlyError(
        title="API Key Issue",
        message="The document service rejected our credentials. Please check the configured API key.",
        action="Verify API Key",
    ),
    "API_KEY_MISSING": FriendlyError(
        title="API Key Missing",
        message="No API key is configured for the document service.",
        action="Add API Key",
    ),
    "API_RATE_LIMIT": FriendlyError(
        title="Rate Limit Exceeded",
        message="Too many requests. Please wait a moment before trying again.",
        action="Try Again Later",
    ),
    "API_INSUFFICIENT_CREDITS": FriendlyError(
        title="Insufficient Credits",
        message="The document service account has insufficient credits.",
        action="Add Credits",
    ),
    # Network errors
    "NETWORK_ERROR": FriendlyError(
        title="Connection Issue",
        message="Unable to connect to the document service. Please check your connection.",
        action="Retry",
    ),
    "TIMEOUT": FriendlyError(
        title="Request Timeout",
        message="The request took too long. Please try again.",
        action="Retry",
    ),
    "SERVICE_UNAVAILABLE": FriendlyError(
        title="Service Unavailable",
        message="The document service is temporarily unavailable. Please try again shortly.",
        action="Retry",
    ),
    # File errors
    "FILE_TOO_LARGE": FriendlyError(
        title="File Too Large",
        message="The document image is too large. Please use a file under 5MB.",
        action="Choose Smaller File",
    ),
    "INVALID_FILE_TYPE": FriendlyError(
        title="Invalid File Type",
        message="Please upload a valid image file (JPG, PNG, GIF, WEBP) or a PDF.",
        action="Choose Different File",
    ),
    # Processing errors
    "EXTRACTION_FAILED": FriendlyError(
        title="Extraction Failed",
        message="Unable to extract data from the document. The image may be unclear or not a financial document.",
        action="Try Different Image",
    ),
    "UNSUPPORTED_DOCUMENT": FriendlyError(
        title="Unrecognized Document",
        message="This doesn't look like an invoice, receipt, bill, statement or order confirmation.",
        action="Upload Financial Document",
    ),
    "LOW_QUALITY_IMAGE": FriendlyError(
        title="Poor Image Quality",
        message="The image quality is low, so some values may be unreliable. Please double-check them or upload a clearer image.",
        action="Upload Better Image",
    ),
    "CANCELED": FriendlyError(
        title="Processing Canceled",
        message="Processing was stopped before it finished. Please try again.",
        action="Try Again",
    ),
    # Generic
    "UNKNOWN_ERROR": FriendlyError(
        title="Something Went Wrong",
        message="An unexpected error occurred. Please try again or contact support if the issue persists.",
        action="Try Again",
    ),
}

_KIND_TO_FRIENDLY = {
    ErrorKind.AUTHENTICATION: "API_KEY_INVALID",
    ErrorKind.API_KEY_MISSING: "API_KEY_MISSING",
    ErrorKind.RATE_LIMIT: "API_RATE_LIMIT",
    ErrorKind.INSUFFICIENT_CREDITS: "API_INSUFFICIENT_CREDITS",
    ErrorKind.NETWORK: "NETWORK_ERROR",
    ErrorKind.TIMEOUT: "TIMEOUT",
    ErrorKind.SERVER: "SERVICE_UNAVAILABLE",
    ErrorKind.INVALID_RESPONSE: "EXTRACTION_FAILED",
    ErrorKind.EXTRACTION: "EXTRACTION_FAILED",
    ErrorKind.UNSUPPORTED_DOCUMENT: "UNSUPPORTED_DOCUMENT",
    ErrorKind.LOW_QUALITY: "LOW_QUALITY_IMAGE",
    ErrorKind.FILE_TOO_LARGE: "FILE_TOO_LARGE",
    ErrorKind.INVALID_FILE_TYPE: "INVALID_FILE_TYPE",
    ErrorKind.CANCELED: "CANCELED",
}

ACCEPTED_DOCUMENT_TYPES = ("invoice", "receipt", "bill", "statement", "order_confirmation")


def get_user_friendly_error(
    error: Optional[BaseException] = None,
    *,
    kind: Optional[ErrorKind] = None,
    document_type: Optional[str] = None,
    extraction_quality: Optional[str] = None,
) -> FriendlyError:
    """
    Convert a technical error (or pipeline context) into a user-friendly error.

    Resolution order:
    1. Explicit ``kind`` argument, then ``error.kind`` for AgentError
    2. Keywords in the technical message (auth, api key, rate limit,
       credits/billing, network, timeout)
    3. Context: unsupported document type, low extraction quality
    4. UNKNOWN_ERROR

    Args:
        error: Exception raised somewhere in the pipeline (optional)
        kind: Known error kind, overrides classification of ``error``
        document_type: Detected document type (for unsupported documents)
        extraction_quality: Extraction quality metadata ("low" triggers warning text)

    Returns:
        FriendlyError with title, message and suggested action
    """
    if kind is None and isinstance(error, AgentError):
        kind = error.kind

    if kind is not None and ErrorKind(kind) in _KIND_TO_FRIENDLY:
        return USER_FRIENDLY_ERRORS[_KIND_TO_FRIENDLY[ErrorKind(kind)]]

    message = str(error).lower() if error is not None else ""
    status_code = getattr(error, "status_code", None)

    if message:
        if "authentication_error" in message or "invalid x-api-key" in message:
            return USER_FRIENDLY_ERRORS["API_KEY_INVALID"]
        if "api_key" in message or "apikey" in message or "api key" in message:
            return USER_FRIENDLY_ERRORS["API_KEY_MISSING"]
    if status_code == 429 or "rate_limit" in message or "rate limit" in message:
        return USER_FRIENDLY_ERRORS["API_RATE_LIMIT"]
    if message:
        if "insufficient_quota" in message or "billing" in message or "credit balance" in message:
            return USER_FRIENDLY_ERRORS["API_INSUFFICIENT_CREDITS"]
        if "network" in message or "connection" in message or "fetch failed" in message:
            return USER_FRIENDLY_ERRORS["NETWORK_ERROR"]
        if "timeout" in message or "timed out" in message:
            return USER_FRIENDLY_ERRORS["TIMEOUT"]

    if document_type is not None and document_type not in ACCEPTED_DOCUMENT_TYPES:
        return USER_FRIENDLY_ERRORS["UNSUPPORTED_DOCUMENT"]

    if extraction_quality == "low":
        return USER_FRIENDLY_ERRORS["LOW_QUALITY_IMAGE"]

    return USER_FRIENDLY_ERRORS["UNKNOWN_ERROR"]
