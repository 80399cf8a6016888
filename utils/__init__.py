"""
Utilities package for the Twitch soundbot.
Provides common utilities for logging, errors, rate limiting, and API helpers.
"""
from .logger import setup_logger, configure_logging, ColoredFormatter, TokenRedactingFilter
from .rate_limiter import RateLimiter
from .api_utils import APIError, compute_backoff, retry_call, validate_response

__all__ = [
    'setup_logger',
    'configure_logging',
    'ColoredFormatter',
    'TokenRedactingFilter',
    'RateLimiter',
    'APIError',
    'compute_backoff',
    'retry_call',
    'validate_response'
]
