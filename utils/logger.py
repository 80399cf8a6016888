"""
Logging utilities for the soundbot.
Provides console logging with consistent formatting and token redaction.
"""
import logging
import re
import sys
from typing import Optional


_DEFAULT_LEVEL = 'INFO'
_run_level: Optional[str] = None


class ColoredFormatter(logging.Formatter):
    """Custom formatter with colors for console output."""

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
    }
    RESET = '\033[0m'

    def format(self, record):
        # Copy so other handlers don't see the escape codes
        record = logging.makeLogRecord(record.__dict__)
        if record.levelname in self.COLORS:
            record.levelname = f"{self.COLORS[record.levelname]}{record.levelname}{self.RESET}"
        return super().format(record)


class TokenRedactingFilter(logging.Filter):
    """Masks bearer tokens and token-looking query/body fields in log messages."""

    PATTERNS = [
        re.compile(r'(Bearer\s+|OAuth\s+|oauth:)[A-Za-z0-9_\-\.]+', re.IGNORECASE),
        re.compile(r'(\b(?:access_token|refresh_token|client_secret)["\']?\s*[=:]\s*["\']?)[^"\'&\s,}]+',
                   re.IGNORECASE),
        re.compile(r'([?&]code=)[^&\s]+'),
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = message
        for pattern in self.PATTERNS:
            redacted = pattern.sub(r'\1<redacted>', redacted)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def setup_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """
    Setup a logger with consistent formatting.

    Args:
        name: Logger name (typically __name__)
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Avoid duplicate handlers
    if logger.handlers:
        return logger

    level = (level or _run_level or _DEFAULT_LEVEL).upper()
    logger.setLevel(getattr(logging, level))
    logger.propagate = False

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG)
    console_handler.addFilter(TokenRedactingFilter())

    formatter = ColoredFormatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    console_handler.setFormatter(formatter)

    logger.addHandler(console_handler)

    return logger


def configure_logging(level: str) -> None:
    """
    Apply a run-wide level to every logger created by setup_logger.

    Loggers created after this call pick the level up as their default.
    """
    global _run_level
    _run_level = level.upper()
    numeric = getattr(logging, _run_level)
    for logger in list(logging.Logger.manager.loggerDict.values()):
        if isinstance(logger, logging.Logger) and any(
            isinstance(f, TokenRedactingFilter) for h in logger.handlers for f in h.filters
        ):
            logger.setLevel(numeric)
