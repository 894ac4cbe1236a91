"""Custom exception hierarchy for SonarCWE.

Client errors describe what went wrong talking to a remote service.
Analysis errors describe which part of report generation could not
proceed. Callers that only care about "something in SonarCWE failed"
can catch SonarCweError.
"""


class SonarCweError(Exception):
    """Base exception for all SonarCWE errors."""
    pass


# =============================================================================
# Client Errors (API/Network)
# =============================================================================

class ClientError(SonarCweError):
    """Base exception for API client errors."""
    pass


class NetworkError(ClientError):
    """Network connectivity or request error."""
    pass


class APIError(ClientError):
    """Error returned by an external API."""

    def __init__(self, message: str, status_code: int | None = None, response_body: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class RateLimitError(APIError):
    """API rate limit exceeded."""

    def __init__(self, message: str, retry_after: float | None = None):
        super().__init__(message, status_code=429)
        self.retry_after = retry_after


class AuthenticationError(APIError):
    """API authentication failed (invalid/missing token)."""
    pass


class TimeoutError(ClientError):
    """API request timed out."""
    pass


# =============================================================================
# Analysis Errors
# =============================================================================

class AnalysisError(SonarCweError):
    """Base exception for report generation errors."""
    pass


class PrimaryFetchError(AnalysisError):
    """The issue list or rule catalog could not be fetched.

    Raised after the bounded retry is exhausted. Nothing can be
    classified without this data, so the report is aborted.
    """

    def __init__(self, message: str, resource: str):
        super().__init__(message)
        self.resource = resource


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(SonarCweError):
    """Base exception for configuration errors."""
    pass


class InvalidConfigError(ConfigurationError):
    """Configuration value is invalid or malformed."""
    pass


class MissingConfigError(ConfigurationError):
    """Required configuration is missing."""
    pass


# =============================================================================
# Validation Errors
# =============================================================================

class ValidationError(SonarCweError):
    """Base exception for input validation errors."""
    pass


class InvalidInputError(ValidationError):
    """Invalid input provided to a function or tool."""
    pass


# Transient failures worth one more attempt
RETRYABLE_ERRORS = (NetworkError, TimeoutError, RateLimitError)
