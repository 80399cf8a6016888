"""
Domain models for the soundbot.
Credentials, feed session handles, subscriptions, redemptions and playback tasks.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Tuple


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


class EventType(str, Enum):
    """EventSub subscription types the bot knows how to subscribe to."""
    REDEMPTION_ADD = "channel.channel_points_custom_reward_redemption.add"

    @property
    def version(self) -> str:
        return _EVENT_VERSIONS[self]


_EVENT_VERSIONS = {
    EventType.REDEMPTION_ADD: "1",
}


class SubscriptionStatus(str, Enum):
    PENDING = "pending"
    ENABLED = "enabled"
    REVOKED = "revoked"

    @classmethod
    def from_remote(cls, status: str) -> 'SubscriptionStatus':
        """
        Collapse a Helix subscription status into the three local states.

        Args:
            status: Raw status string (e.g. 'enabled', 'authorization_revoked')

        Returns:
            Local subscription status
        """
        status = (status or '').strip().lower()
        if status == 'enabled':
            return cls.ENABLED
        if status.endswith('_pending'):
            return cls.PENDING
        return cls.REVOKED


@dataclass
class Credential:
    """
    Access/refresh token pair with an absolute expiry.

    A credential is valid while `expires_at` lies in the future and it has
    not been revoked. Refreshes replace the token fields in place.
    """
    access_token: str
    refresh_token: str
    expires_at: datetime

    def __repr__(self) -> str:
        return f"Credential(access_token=<redacted>, refresh_token=<redacted>, expires_at={self.expires_at.isoformat()})"

    def expires_within(self, margin: timedelta, now: Optional[datetime] = None) -> bool:
        """True if the credential expires before `now + margin`."""
        now = now or utc_now()
        return self.expires_at <= now + margin

    def seconds_remaining(self, now: Optional[datetime] = None) -> float:
        now = now or utc_now()
        return (self.expires_at - now).total_seconds()

    def replace_with(self, other: 'Credential') -> None:
        self.access_token = other.access_token
        self.refresh_token = other.refresh_token
        self.expires_at = other.expires_at

    @classmethod
    def from_token_response(cls, tokens: Dict[str, Any], now: Optional[datetime] = None,
                            fallback_refresh_token: Optional[str] = None) -> 'Credential':
        """
        Build a credential from an OAuth token endpoint response.

        Args:
            tokens: Parsed JSON body (access_token, refresh_token, expires_in)
            now: Reference time for the relative expiry
            fallback_refresh_token: Used when the response omits a refresh token

        Returns:
            New credential
        """
        now = now or utc_now()
        expires_in = int(tokens.get('expires_in') or 0)
        refresh_token = tokens.get('refresh_token') or fallback_refresh_token
        if not tokens.get('access_token') or not refresh_token:
            raise ValueError("Token response is missing access_token or refresh_token")
        return cls(
            access_token=tokens['access_token'],
            refresh_token=refresh_token,
            expires_at=now + timedelta(seconds=expires_in)
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            'access_token': self.access_token,
            'refresh_token': self.refresh_token,
            'expires_at': self.expires_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Credential':
        # Token files written without an expiry are treated as already expired
        raw_expiry = data.get('expires_at')
        if raw_expiry:
            expires_at = datetime.fromisoformat(raw_expiry)
            if expires_at.tzinfo is None:
                expires_at = expires_at.replace(tzinfo=timezone.utc)
        else:
            expires_at = datetime.fromtimestamp(0, timezone.utc)
        return cls(
            access_token=data['access_token'],
            refresh_token=data['refresh_token'],
            expires_at=expires_at
        )


@dataclass(frozen=True)
class SessionHandle:
    """Identity of one open feed connection. Replaced wholesale on reconnect."""
    session_id: str
    keepalive_interval: float
    established_at: datetime = field(default_factory=utc_now)


@dataclass
class Subscription:
    type: EventType
    condition: Dict[str, str]
    status: SubscriptionStatus = SubscriptionStatus.PENDING
    id: Optional[str] = None
    session_id: Optional[str] = None

    @property
    def key(self) -> Tuple[str, Tuple[Tuple[str, str], ...]]:
        return subscription_key(self.type, self.condition)


def subscription_key(event_type: EventType, condition: Dict[str, str]) -> Tuple[str, Tuple[Tuple[str, str], ...]]:
    """Uniqueness key of a subscription: its type plus its condition."""
    return (EventType(event_type).value, tuple(sorted(condition.items())))


@dataclass(frozen=True)
class RedemptionEvent:
    """A channel-point redemption. Never persisted."""
    reward_title: str
    user: str
    redeemed_at: datetime
    raw_payload: Dict[str, Any] = field(repr=False, compare=False)


@dataclass
class PlaybackTask:
    sound_path: Path
    started_at: datetime = field(default_factory=utc_now)
    reward_title: str = ''
