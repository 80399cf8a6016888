"""
EventSub subscription registrar.
Keeps exactly one enabled subscription per (type, condition) for the
current feed session.
"""
import threading
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from schemas import EventType, Subscription, SubscriptionStatus, subscription_key
from utils import setup_logger
from utils.errors import QuotaExceeded
from .twitch_api import TwitchAPIClient


logger = setup_logger(__name__)


def condition_for(event_type: EventType, target_id: str) -> Dict[str, str]:
    """Subscription condition targeting one broadcaster."""
    return {'broadcaster_user_id': target_id}


@dataclass
class EnsureResult:
    """Outcome of one ensure() call, per event type."""
    created: List[EventType] = field(default_factory=list)
    existing: List[EventType] = field(default_factory=list)
    skipped: List[EventType] = field(default_factory=list)

    @property
    def enabled(self) -> List[EventType]:
        return self.created + self.existing


class SubscriptionRegistrar:
    """
    Creates missing subscriptions and leaves existing ones alone.

    Websocket subscriptions belong to a feed session, so the registrar is
    bound to the current session id; binding a new id forgets everything
    known about the previous session.
    """

    def __init__(self, api: TwitchAPIClient):
        """
        Initialize registrar.

        Args:
            api: Helix client used for list/create calls
        """
        self.api = api
        self._lock = threading.Lock()
        self._session_id: Optional[str] = None
        self._subscriptions: Dict[Tuple, Subscription] = {}
        self._remote_checked = False

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    def bind_session(self, session_id: str) -> None:
        """Attach the registrar to a feed session."""
        with self._lock:
            if session_id == self._session_id:
                return
            self._session_id = session_id
            self._subscriptions = {}
            self._remote_checked = False
        logger.debug(f"Registrar bound to session {session_id}")

    def subscriptions(self) -> List[Subscription]:
        with self._lock:
            return list(self._subscriptions.values())

    def has_enabled(self) -> bool:
        with self._lock:
            return any(s.status == SubscriptionStatus.ENABLED for s in self._subscriptions.values())

    def mark_revoked(self, event_type: str, condition: Optional[Dict[str, str]] = None) -> None:
        """
        Record a revocation reported by the feed.

        Args:
            event_type: Revoked subscription type
            condition: Its condition; None revokes every subscription of the type
        """
        with self._lock:
            for key, sub in self._subscriptions.items():
                if sub.type.value != event_type:
                    continue
                if condition is not None and key != subscription_key(sub.type, condition):
                    continue
                sub.status = SubscriptionStatus.REVOKED
                logger.warning(f"Subscription {event_type} revoked")

    def ensure(self, target_id: str, event_types: Iterable[EventType]) -> EnsureResult:
        """
        Make sure each event type has an enabled subscription for target_id.

        Args:
            target_id: Numeric broadcaster id
            event_types: Desired subscription types

        Returns:
            Which types were created, already present, or skipped

        Raises:
            Unauthorized: Bearer credential rejected; refresh and retry once
        """
        with self._lock:
            session_id = self._session_id
            if not session_id:
                raise RuntimeError("Registrar is not bound to a feed session")

            result = EnsureResult()
            for event_type in sorted({EventType(t) for t in event_types}, key=lambda t: t.value):
                condition = condition_for(event_type, target_id)
                key = subscription_key(event_type, condition)

                known = self._subscriptions.get(key)
                if known is None and not self._remote_checked:
                    self._sync_remote_locked(session_id)
                    known = self._subscriptions.get(key)

                if known is not None and known.status == SubscriptionStatus.ENABLED:
                    result.existing.append(event_type)
                    continue

                try:
                    created = self.api.create_subscription(
                        event_type.value, event_type.version, condition, session_id
                    )
                except QuotaExceeded as e:
                    logger.error(f"❌ {e} - skipping {event_type.value}")
                    result.skipped.append(event_type)
                    continue

                self._subscriptions[key] = Subscription(
                    type=event_type,
                    condition=condition,
                    status=SubscriptionStatus.from_remote(created.get('status', 'enabled')),
                    id=created.get('id'),
                    session_id=session_id
                )
                result.created.append(event_type)
                logger.info(f"✅ Subscribed to {event_type.value} for broadcaster {target_id}")

            return result

    def _sync_remote_locked(self, session_id: str) -> None:
        """Pick up enabled subscriptions that already exist for this session."""
        known_types = {t.value: t for t in EventType}
        for raw in self.api.list_subscriptions(status='enabled'):
            transport = raw.get('transport') or {}
            if transport.get('method') != 'websocket' or transport.get('session_id') != session_id:
                continue
            event_type = known_types.get(raw.get('type'))
            if event_type is None:
                continue
            condition = {k: str(v) for k, v in (raw.get('condition') or {}).items() if v}
            sub = Subscription(
                type=event_type,
                condition=condition,
                status=SubscriptionStatus.from_remote(raw.get('status', '')),
                id=raw.get('id'),
                session_id=session_id
            )
            self._subscriptions[sub.key] = sub
        self._remote_checked = True
