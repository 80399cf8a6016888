"""
Centralized configuration from environment variables.
Loads all secrets and settings without hardcoding.
"""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv


APP_DIR_NAME = "twitch-soundbot"
DEFAULT_REDIRECT_URI = "http://localhost/"
DEFAULT_BIND_ADDRESS = "127.0.0.1:17564"
DEFAULT_EVENTSUB_URL = "wss://eventsub.wss.twitch.tv/ws"


def config_dir() -> Path:
    """Per-user configuration directory (~/.config/twitch-soundbot)."""
    override = os.getenv('SOUNDBOT_CONFIG_DIR')
    if override:
        return Path(override).expanduser()
    base = os.getenv('XDG_CONFIG_HOME') or str(Path.home() / '.config')
    return Path(base) / APP_DIR_NAME


def default_env_path() -> Path:
    return config_dir() / '.env'


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, '').strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def _env_int(name: str, default: int) -> int:
    return int(_env_float(name, float(default)))


@dataclass(repr=False)
class TwitchConfig:
    """Twitch application credentials and token storage."""
    client_id: str
    client_secret: str = field(repr=False)
    redirect_uri: str
    token_storage_path: Path
    scopes: str = "channel:read:redemptions"
    refresh_margin_seconds: float = 60.0
    max_refresh_attempts: int = 4

    def __repr__(self) -> str:
        return (
            "TwitchConfig("
            f"client_id={self.client_id!r}, "
            "client_secret=<redacted>, "
            f"redirect_uri={self.redirect_uri!r}, "
            f"token_storage_path={str(self.token_storage_path)!r}, "
            f"scopes={self.scopes!r}"
            ")"
        )

    @classmethod
    def from_env(cls) -> 'TwitchConfig':
        """Load from environment variables."""
        token_path = os.getenv('TOKEN_PATH')
        return cls(
            client_id=os.getenv('CLIENT_ID', '').strip(),
            client_secret=os.getenv('CLIENT_SECRET', '').strip(),
            redirect_uri=os.getenv('REDIRECT_URI', '').strip() or DEFAULT_REDIRECT_URI,
            token_storage_path=Path(token_path).expanduser() if token_path else config_dir() / 'token.json',
            scopes=os.getenv('TWITCH_SCOPES', 'channel:read:redemptions'),
            refresh_margin_seconds=max(60.0, _env_float('REFRESH_MARGIN_SECONDS', 60.0)),
            max_refresh_attempts=_env_int('MAX_REFRESH_ATTEMPTS', 4)
        )

    def validate(self) -> None:
        """Validate required fields are present."""
        if not self.client_id:
            raise ValueError("CLIENT_ID environment variable is required")
        if not self.client_secret:
            raise ValueError("CLIENT_SECRET environment variable is required")
        if not self.redirect_uri:
            raise ValueError("REDIRECT_URI environment variable is required")


@dataclass(repr=False)
class BotConfig:
    """Monitored channel, feed connection and sound settings."""
    target_id: str
    bind_address: str
    feed_secret: str = field(repr=False)
    sounds_dir: Path = Path('sounds')
    eventsub_url: str = DEFAULT_EVENTSUB_URL
    keepalive_timeout_seconds: Optional[int] = None
    grace_factor: float = 1.5
    connect_timeout: float = 10.0
    max_reconnect_attempts: int = 5
    playback_workers: int = 16

    def __repr__(self) -> str:
        return (
            "BotConfig("
            f"target_id={self.target_id!r}, "
            f"bind_address={self.bind_address!r}, "
            "feed_secret=<redacted>, "
            f"sounds_dir={str(self.sounds_dir)!r}, "
            f"eventsub_url={self.eventsub_url!r}"
            ")"
        )

    @classmethod
    def from_env(cls) -> 'BotConfig':
        """Load from environment with defaults."""
        keepalive = os.getenv('KEEPALIVE_TIMEOUT_SECONDS', '').strip()
        return cls(
            target_id=os.getenv('BROADCASTER_ID', '').strip(),
            bind_address=os.getenv('BIND_ADDRESS', '').strip() or DEFAULT_BIND_ADDRESS,
            feed_secret=os.getenv('EVENTSUB_SECRET', '').strip(),
            sounds_dir=Path(os.getenv('SOUNDS_DIR', 'sounds')).expanduser(),
            eventsub_url=os.getenv('EVENTSUB_URL', '').strip() or DEFAULT_EVENTSUB_URL,
            keepalive_timeout_seconds=int(keepalive) if keepalive else None,
            grace_factor=_env_float('KEEPALIVE_GRACE_FACTOR', 1.5),
            connect_timeout=_env_float('CONNECT_TIMEOUT_SECONDS', 10.0),
            max_reconnect_attempts=_env_int('MAX_RECONNECT_ATTEMPTS', 5),
            playback_workers=_env_int('PLAYBACK_WORKERS', 16)
        )

    def validate(self) -> None:
        if not self.target_id:
            raise ValueError("BROADCASTER_ID environment variable is required")
        if not self.bind_address:
            raise ValueError("BIND_ADDRESS environment variable is required")
        if not self.feed_secret:
            raise ValueError("EVENTSUB_SECRET environment variable is required")
        if not 1.0 <= self.grace_factor <= 3.0:
            raise ValueError("KEEPALIVE_GRACE_FACTOR must be between 1.0 and 3.0")
        if self.keepalive_timeout_seconds is not None and not 10 <= self.keepalive_timeout_seconds <= 600:
            raise ValueError("KEEPALIVE_TIMEOUT_SECONDS must be between 10 and 600")


@dataclass
class AppConfig:
    """Application-wide configuration."""
    twitch: TwitchConfig
    bot: BotConfig
    log_level: str = "INFO"
    max_retries: int = 3
    retry_delay: float = 1.0
    env_file: Optional[Path] = None

    @classmethod
    def load(cls, env_file: Optional[str] = None) -> 'AppConfig':
        """
        Load all configuration.

        Args:
            env_file: Path to .env file (optional; falls back to the per-user
                config file, then to a .env found from the working directory)
        """
        loaded_from: Optional[Path] = None
        if env_file:
            loaded_from = Path(env_file).expanduser()
            if not loaded_from.exists():
                raise ValueError(f"Config file not found: {loaded_from}")
            load_dotenv(loaded_from)
        elif default_env_path().exists():
            loaded_from = default_env_path()
            load_dotenv(loaded_from)
        else:
            load_dotenv()  # Searches parent directories

        config = cls(
            twitch=TwitchConfig.from_env(),
            bot=BotConfig.from_env(),
            log_level=os.getenv('LOG_LEVEL', 'INFO'),
            max_retries=_env_int('MAX_RETRIES', 3),
            retry_delay=_env_float('RETRY_DELAY', 1.0),
            env_file=loaded_from
        )

        # Validate critical settings
        config.validate()

        return config

    def validate(self) -> None:
        self.twitch.validate()
        self.bot.validate()


# Singleton instance
_config: Optional[AppConfig] = None


def get_config(env_file: Optional[str] = None) -> AppConfig:
    """Get or create configuration singleton."""
    global _config
    if _config is None:
        _config = AppConfig.load(env_file)
    return _config


def reset_config() -> None:
    """Reset configuration (useful for testing)."""
    global _config
    _config = None
