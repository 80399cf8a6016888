"""
EventSub feed package.
Parses WebSocket frames and runs the feed session state machine.
"""
from .messages import (
    FeedMessage,
    Keepalive,
    Notification,
    Reconnect,
    Revocation,
    Welcome,
    parse_message
)
from .session import FeedSession, SessionState

__all__ = [
    'FeedMessage',
    'Keepalive',
    'Notification',
    'Reconnect',
    'Revocation',
    'Welcome',
    'parse_message',
    'FeedSession',
    'SessionState'
]
