"""
Domain models package.
Defines the data structures shared by auth, feed session and playback.
"""
from .models import (
    Credential,
    EventType,
    PlaybackTask,
    RedemptionEvent,
    SessionHandle,
    Subscription,
    SubscriptionStatus,
    subscription_key,
    utc_now
)

__all__ = [
    'Credential',
    'EventType',
    'PlaybackTask',
    'RedemptionEvent',
    'SessionHandle',
    'Subscription',
    'SubscriptionStatus',
    'subscription_key',
    'utc_now'
]
