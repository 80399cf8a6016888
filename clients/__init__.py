"""
API clients package.
Handles authentication and communication with the Twitch API.
"""
from .twitch_api import TwitchAPIClient
from .subscription_registrar import EnsureResult, SubscriptionRegistrar

__all__ = [
    'TwitchAPIClient',
    'EnsureResult',
    'SubscriptionRegistrar'
]
