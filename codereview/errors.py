"""
errors.py — CodeReview error taxonomy.

Every failure the core can surface is a CodeReviewError subclass carrying the
HTTP status and semantic error code used by main.py to build the standard
{error: {code, message, details}} envelope. Business logic never raises
HTTPException; routes and services raise these instead.

Degradation policy:
  StoreUnavailable  — swallowed to "cache miss" in the review cache only
  StorageFailure    — session flows; fatal (no alternate persistence)
  everything else   — surfaced to the caller, never retried automatically
"""


class CodeReviewError(Exception):
    """Base class for all typed failures returned to the orchestration layer."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str = "", details: list[dict] | None = None) -> None:
        # Fall back to the class docstring as the user-facing message
        self.message = message or (self.__class__.__doc__ or self.code).strip()
        self.details = details or []
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# Store / session
# ---------------------------------------------------------------------------

class StoreUnavailable(CodeReviewError):
    """The backing cache store could not be reached."""

    status_code = 503
    code = "STORE_UNAVAILABLE"


class StorageFailure(CodeReviewError):
    """Session storage is unavailable; project context cannot be stored or read."""

    status_code = 503
    code = "STORAGE_FAILURE"


class ContextNotFound(CodeReviewError):
    """Project context not found or expired. Please upload the codebase again."""

    status_code = 404
    code = "CONTEXT_NOT_FOUND"


# ---------------------------------------------------------------------------
# User input
# ---------------------------------------------------------------------------

class ExtractError(CodeReviewError):
    """The uploaded archive could not be read."""

    status_code = 400
    code = "EXTRACT_ERROR"


class ArchiveTooLarge(ExtractError):
    """The uploaded archive exceeds the maximum allowed size."""

    status_code = 413
    code = "FILE_TOO_LARGE"


class InvalidChanges(CodeReviewError):
    """No valid changes found in the uploaded file."""

    status_code = 400
    code = "INVALID_CHANGES"


# ---------------------------------------------------------------------------
# Analysis gateway
# ---------------------------------------------------------------------------

class GatewayError(CodeReviewError):
    """The analysis model call failed."""

    status_code = 502
    code = "GATEWAY_ERROR"


class GatewayTimeout(GatewayError):
    """The analysis model did not answer within the allowed time."""

    status_code = 504
    code = "GATEWAY_TIMEOUT"


class MalformedAnalysisResult(CodeReviewError):
    """The analysis model returned output that does not match the review schema."""

    status_code = 502
    code = "MALFORMED_ANALYSIS_RESULT"


__all__ = [
    "ArchiveTooLarge",
    "CodeReviewError",
    "ContextNotFound",
    "ExtractError",
    "GatewayError",
    "GatewayTimeout",
    "InvalidChanges",
    "MalformedAnalysisResult",
    "StorageFailure",
    "StoreUnavailable",
]
