"""
Configuration package for the Twitch soundbot.
Centralized configuration management using environment variables.
"""
from .settings import (
    TwitchConfig,
    BotConfig,
    AppConfig,
    config_dir,
    default_env_path,
    get_config,
    reset_config
)

__all__ = [
    'TwitchConfig',
    'BotConfig',
    'AppConfig',
    'config_dir',
    'default_env_path',
    'get_config',
    'reset_config'
]
