"""
API Utilities Module

Single Responsibility: Provide retry logic and error handling
- Retry failed calls with exponential backoff
- Compute capped, jittered backoff delays for reconnect loops
- Parse and validate Twitch API responses

This module contains helper functions for robust API communication.
"""

import random
import time
from typing import Callable, Any, Optional

import requests

from .logger import setup_logger


logger = setup_logger(__name__)


class APIError(Exception):
    """Raised when API requests fail after retries."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def compute_backoff(
    attempt: int,
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
    random_fn: Callable[[], float] = random.random
) -> float:
    """
    Exponential backoff delay for a zero-based attempt number.

    Args:
        attempt: Attempt counter (0 = first retry)
        initial_delay: Delay for the first retry in seconds
        max_delay: Upper bound before jitter
        random_fn: Source of jitter in [0, 1)

    Returns:
        Delay in seconds (base plus up to 25% jitter)
    """
    base = min(max_delay, initial_delay * (2.0 ** max(0, attempt)))
    jitter = random_fn() * 0.25 * base
    return max(0.05, base + jitter)


def retry_call(
    func: Callable[..., Any],
    *args: Any,
    max_retries: int = 3,
    backoff_factor: float = 2.0,
    initial_delay: float = 1.0,
    exceptions: tuple = (requests.exceptions.RequestException,),
    sleep: Callable[[float], None] = time.sleep,
    **kwargs: Any
) -> Any:
    """
    Call `func` and retry it with exponential backoff on the given exceptions.

    Args:
        func: Callable to invoke
        max_retries: Retries after the first attempt
        backoff_factor: Multiplier for delay between retries
        initial_delay: Initial delay in seconds
        exceptions: Exceptions to catch and retry on
        sleep: Sleep function (injectable for tests)

    Returns:
        Whatever `func` returns

    Raises:
        APIError: If every attempt failed
    """
    delay = initial_delay
    last_exception: Optional[BaseException] = None

    for attempt in range(max_retries + 1):
        try:
            return func(*args, **kwargs)
        except exceptions as e:
            last_exception = e
            if attempt < max_retries:
                logger.warning(f"⚠️  {e} - retrying in {delay:.1f}s (attempt {attempt + 1}/{max_retries})...")
                sleep(delay)
                delay *= backoff_factor

    raise APIError(f"Max retries exceeded: {last_exception}") from last_exception


def error_message(response: requests.Response) -> str:
    """Best-effort error text from a Twitch JSON error body."""
    try:
        error_data = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(error_data, dict):
        return str(error_data.get('message') or error_data.get('error') or error_data)
    return str(error_data)


def validate_response(response: requests.Response) -> dict:
    """
    Validate and parse API response.

    Args:
        response: requests.Response object

    Returns:
        Parsed JSON response ({} for 204 No Content)

    Raises:
        APIError: If response is invalid (non-2xx or bad JSON)
    """
    if response.status_code >= 400:
        raise APIError(
            f"API request failed ({response.status_code}): {error_message(response)}",
            status_code=response.status_code
        )

    if response.status_code == 204 or not response.content:
        return {}

    try:
        data = response.json()
    except ValueError as e:
        raise APIError(f"Invalid JSON response: {e}", status_code=response.status_code)

    return data
