"""
Failure classification for the resolution engine.

Not-found is never an exception: sources return None or leave a search
unresolved. The exceptions here cover real failures only:

- FetchError: transient network/timeout failure for a single request
- PaginationIntegrityError: a paged fetch disagreed with its declared total
- AuthenticationError: bearer token missing, rejected or issued to someone else
- SearchRateLimitExceededError: a client exceeded its lookup quota

Per-item failures are logged and dropped by the connector that hit them.
They never reach the user verbatim.
"""

from enum import Enum

from pydantic import BaseModel, Field


class FailureKind(str, Enum):
    """Classification of failure types."""

    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"

    EXTERNAL_API_ERROR = "external_api_error"
    DATA_INTEGRITY = "data_integrity"
    AUTHENTICATION = "authentication"

    UNKNOWN = "unknown"


class FailureDetail(BaseModel):
    """Detailed information about a failure."""

    kind: FailureKind = Field(
        ...,
        description="Classification of the failure",
    )
    message: str = Field(
        ...,
        description="User-appropriate explanation of what went wrong",
    )
    detail: str | None = Field(
        default=None,
        description="Additional technical detail (optional)",
    )
    suggestion: str | None = Field(
        default=None,
        description="Suggested action for the user",
    )


class KnownError(Exception):
    """
    Base class for exceptions that represent known, explainable failures.

    Subclass this for errors where the system knows exactly what went wrong.
    """

    def __init__(
        self,
        kind: FailureKind,
        message: str,
        detail: str | None = None,
        suggestion: str | None = None,
        status_code: int = 400,
    ):
        self.kind = kind
        self.message = message
        self.detail = detail
        self.suggestion = suggestion
        self.status_code = status_code
        super().__init__(message)

    def to_detail(self) -> FailureDetail:
        """Convert to a FailureDetail."""
        return FailureDetail(
            kind=self.kind,
            message=self.message,
            detail=self.detail,
            suggestion=self.suggestion,
        )


class FetchError(KnownError):
    """Raised when a request to an external source fails."""

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(
            kind=FailureKind.EXTERNAL_API_ERROR,
            message=message,
            detail=detail,
            status_code=502,
        )


class PaginationIntegrityError(KnownError):
    """
    Raised when a paged fetch returns a different item count than declared.

    Indicates an upstream contract violation. Aborts only that fetch.
    """

    def __init__(self, expected: int, received: int, requests_sent: int):
        self.expected = expected
        self.received = received
        self.requests_sent = requests_sent
        super().__init__(
            kind=FailureKind.DATA_INTEGRITY,
            message="Paged result count disagrees with the declared total.",
            detail=f"expected {expected} items, received {received} in {requests_sent} requests",
            status_code=502,
        )


class AuthenticationError(KnownError):
    """Raised when a bearer token cannot be acquired or is not ours."""

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(
            kind=FailureKind.AUTHENTICATION,
            message=message,
            detail=detail,
            suggestion="Check the configured API credentials.",
            status_code=502,
        )


class SearchRateLimitExceededError(KnownError):
    """
    Raised when a client sends too many lookups in the sliding window.

    Returns HTTP 429.
    """

    def __init__(self, client_id: str, limit: int):
        self.client_id = client_id
        self.limit = limit
        super().__init__(
            kind=FailureKind.RATE_LIMITED,
            message=(
                f"You've sent more than {limit} lookups in the last minute. "
                "Please wait a moment before searching again."
            ),
            detail=f"Search rate limit: {limit}/minute",
            suggestion="The window slides, so older lookups expire continuously.",
            status_code=429,
        )
