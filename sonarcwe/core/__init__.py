"""Core utilities for caching, rate limiting, logging, and errors."""

from .cache import RuleCache
from .exceptions import (
    AnalysisError,
    APIError,
    AuthenticationError,
    ClientError,
    ConfigurationError,
    InvalidConfigError,
    InvalidInputError,
    MissingConfigError,
    NetworkError,
    PrimaryFetchError,
    RateLimitError,
    SonarCweError,
    TimeoutError,
    ValidationError,
)
from .logging_config import configure_logging, get_events_logger
from .rate_limiter import APIRateLimiters, RateLimiter, get_nvd_rate_limiter

__all__ = [
    # Cache
    "RuleCache",
    # Rate limiting
    "get_nvd_rate_limiter",
    "RateLimiter",
    "APIRateLimiters",
    # Logging
    "configure_logging",
    "get_events_logger",
    # Exceptions
    "SonarCweError",
    "ClientError",
    "NetworkError",
    "APIError",
    "RateLimitError",
    "AuthenticationError",
    "TimeoutError",
    "AnalysisError",
    "PrimaryFetchError",
    "ConfigurationError",
    "InvalidConfigError",
    "MissingConfigError",
    "ValidationError",
    "InvalidInputError",
]
