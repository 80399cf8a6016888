"""
First-run interactive setup.
Prompts for the bot settings and writes them to the per-user .env file.
"""
import secrets
import string
from pathlib import Path
from typing import Callable, Dict, Optional

from .settings import DEFAULT_BIND_ADDRESS, DEFAULT_REDIRECT_URI, default_env_path
from utils import setup_logger


logger = setup_logger(__name__)

SECRET_ALPHABET = string.ascii_letters + string.digits
SECRET_LENGTH = 32


def generate_feed_secret(length: int = SECRET_LENGTH) -> str:
    """Random alphanumeric secret for the EventSub transport."""
    return ''.join(secrets.choice(SECRET_ALPHABET) for _ in range(length))


def run_setup(
    path: Optional[Path] = None,
    prompt: Callable[[str], str] = input
) -> Path:
    """
    Ask for every setting and write the .env file.

    Args:
        path: Target file (defaults to ~/.config/twitch-soundbot/.env)
        prompt: Input function, replaced in tests

    Returns:
        Path the configuration was written to
    """
    path = Path(path) if path else default_env_path()
    print("No config found. Let's set it up.")

    def ask(label: str) -> str:
        return prompt(f"{label}: ").strip()

    values: Dict[str, str] = {
        'CLIENT_ID': ask("CLIENT_ID"),
        'CLIENT_SECRET': ask("CLIENT_SECRET"),
        'REDIRECT_URI': ask(f"REDIRECT_URI (default {DEFAULT_REDIRECT_URI})") or DEFAULT_REDIRECT_URI,
        'BROADCASTER_ID': ask("BROADCASTER_ID (login name or numeric id)"),
        'BIND_ADDRESS': ask(f"BIND_ADDRESS (default {DEFAULT_BIND_ADDRESS})") or DEFAULT_BIND_ADDRESS,
        'EVENTSUB_SECRET': generate_feed_secret(),
    }

    missing = [key for key in ('CLIENT_ID', 'CLIENT_SECRET', 'BROADCASTER_ID') if not values[key]]
    if missing:
        raise ValueError(f"Setup aborted, missing values: {', '.join(missing)}")

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(''.join(f"{key}={value}\n" for key, value in values.items()), encoding='utf-8')
    try:
        path.chmod(0o600)
    except OSError:
        logger.debug(f"Could not restrict permissions on {path}")

    logger.info(f"✅ Config written to {path}")
    return path
