"""
EventSub WebSocket message parsing.
Every frame from the feed becomes one variant of FeedMessage.
"""
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union


@dataclass(frozen=True)
class Welcome:
    session_id: str
    keepalive_interval: float
    message_id: str = ''


@dataclass(frozen=True)
class Keepalive:
    message_id: str = ''


@dataclass(frozen=True)
class Notification:
    subscription_type: str
    payload: Dict[str, Any] = field(repr=False)
    message_id: str = ''


@dataclass(frozen=True)
class Reconnect:
    reconnect_url: str
    message_id: str = ''


@dataclass(frozen=True)
class Revocation:
    subscription_type: str
    status: str
    condition: Dict[str, str] = field(default_factory=dict)
    message_id: str = ''


FeedMessage = Union[Welcome, Keepalive, Notification, Reconnect, Revocation]

# Revocation reasons that mean the user credential itself is gone
CREDENTIAL_REVOCATIONS = frozenset({'authorization_revoked', 'user_removed'})


def _dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def parse_message(raw: Union[str, bytes]) -> Optional[FeedMessage]:
    """
    Decode one text frame.

    Args:
        raw: JSON text of the frame

    Returns:
        The message variant, or None for message types this client ignores

    Raises:
        ValueError: Frame is not valid JSON or lacks required fields
    """
    if isinstance(raw, bytes):
        raw = raw.decode('utf-8')
    message = json.loads(raw)
    if not isinstance(message, dict):
        raise ValueError("EventSub frame is not a JSON object")

    metadata = _dict(message.get('metadata'))
    payload = _dict(message.get('payload'))
    message_type = str(metadata.get('message_type', '')).strip().lower()
    message_id = str(metadata.get('message_id', '')).strip()

    if message_type == 'session_welcome':
        session = _dict(payload.get('session'))
        session_id = str(session.get('id') or '').strip()
        if not session_id:
            raise ValueError("session_welcome without session id")
        keepalive = session.get('keepalive_timeout_seconds')
        try:
            keepalive_interval = float(keepalive)
        except (TypeError, ValueError):
            raise ValueError(f"session_welcome with bad keepalive_timeout_seconds: {keepalive!r}")
        return Welcome(session_id=session_id, keepalive_interval=keepalive_interval, message_id=message_id)

    if message_type == 'session_keepalive':
        return Keepalive(message_id=message_id)

    if message_type == 'notification':
        subscription = _dict(payload.get('subscription'))
        return Notification(
            subscription_type=str(subscription.get('type', '')).strip(),
            payload=payload,
            message_id=message_id
        )

    if message_type == 'session_reconnect':
        session = _dict(payload.get('session'))
        reconnect_url = str(session.get('reconnect_url') or '').strip()
        if not reconnect_url:
            raise ValueError("session_reconnect without reconnect_url")
        return Reconnect(reconnect_url=reconnect_url, message_id=message_id)

    if message_type == 'revocation':
        subscription = _dict(payload.get('subscription'))
        condition = {k: str(v) for k, v in _dict(subscription.get('condition')).items() if v}
        return Revocation(
            subscription_type=str(subscription.get('type', '')).strip(),
            status=str(subscription.get('status', '')).strip(),
            condition=condition,
            message_id=message_id
        )

    return None
