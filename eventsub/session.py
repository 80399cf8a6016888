"""
EventSub WebSocket session.
Drives the feed connection through handshake, keepalive tracking,
server-issued reconnects and revocation.
"""
import random
import threading
import time
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

import websocket

from clients import SubscriptionRegistrar
from clients.auth import AuthManager
from schemas import EventType, SessionHandle, utc_now
from utils import APIError, compute_backoff, setup_logger
from utils.errors import HandshakeFailed, RegistrarError, Terminated, Unauthorized
from .messages import (
    CREDENTIAL_REVOCATIONS,
    Keepalive,
    Notification,
    Reconnect,
    Revocation,
    Welcome,
    parse_message
)


logger = setup_logger(__name__)

DEFAULT_EVENTSUB_URL = "wss://eventsub.wss.twitch.tv/ws"

# TimeoutError is an OSError, so it has to be matched first
RECV_TIMEOUTS = (websocket.WebSocketTimeoutException, TimeoutError)
CONNECTION_LOST = (websocket.WebSocketException, ConnectionError, OSError)


class SessionState(str, Enum):
    CONNECTING = "connecting"
    WELCOMED = "welcomed"
    ACTIVE = "active"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


def create_connection(url: str, timeout: float) -> Any:
    """Open a WebSocket with websocket-client."""
    return websocket.create_connection(url, timeout=timeout)


class FeedSession:
    """
    Protocol state machine for one logical EventSub session.

    States: CONNECTING -> WELCOMED -> ACTIVE -> RECONNECTING -> ... -> CLOSED.

    run() blocks on the calling thread and performs all reads there.
    Notifications are handed to `on_notification` in arrival order; that
    callback must not block (the dispatcher only queues playback).
    """

    def __init__(
        self,
        *,
        auth: AuthManager,
        registrar: SubscriptionRegistrar,
        target_id: str,
        event_types: Iterable[EventType],
        on_notification: Callable[[Dict[str, Any]], None],
        ws_url: str = DEFAULT_EVENTSUB_URL,
        ws_factory: Optional[Callable[[str, float], Any]] = None,
        keepalive_timeout_seconds: Optional[int] = None,
        grace_factor: float = 1.5,
        connect_timeout: float = 10.0,
        max_reconnect_attempts: int = 5,
        backoff_initial: float = 1.0,
        backoff_max: float = 30.0,
        on_state: Optional[Callable[[SessionState], None]] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        random_fn: Callable[[], float] = random.random,
        dedupe_ttl: float = 600.0
    ):
        self._auth = auth
        self._registrar = registrar
        self._target_id = target_id
        self._event_types = frozenset(EventType(t) for t in event_types)
        self._on_notification = on_notification
        self._ws_url = ws_url or DEFAULT_EVENTSUB_URL
        self._ws_factory = ws_factory or create_connection
        self._keepalive_timeout_seconds = keepalive_timeout_seconds
        self._grace_factor = grace_factor
        self._connect_timeout = connect_timeout
        self._max_reconnect_attempts = max(1, max_reconnect_attempts)
        self._backoff_initial = backoff_initial
        self._backoff_max = backoff_max
        self._on_state = on_state
        self._clock = clock
        self._sleep = sleep
        self._random_fn = random_fn
        self._dedupe_ttl = dedupe_ttl

        self._state = SessionState.CLOSED
        self._handle: Optional[SessionHandle] = None
        self._stop = threading.Event()
        self._sockets_lock = threading.Lock()
        self._sockets: List[Any] = []
        self._seen_message_ids: Dict[str, float] = {}
        self.reconnect_count = 0

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def handle(self) -> Optional[SessionHandle]:
        return self._handle

    @property
    def event_types(self) -> frozenset:
        return self._event_types

    def stop(self) -> None:
        """Ask run() to return; closes any open socket."""
        self._stop.set()
        with self._sockets_lock:
            sockets = list(self._sockets)
        for ws in sockets:
            self._close_ws(ws)

    def run(self) -> None:
        """
        Connect and process feed messages until the session closes.

        Returns normally after stop().

        Raises:
            HandshakeFailed: First connection or welcome failed
            Terminated: All subscriptions revoked or reconnects exhausted
            AuthError: Credential could not be refreshed
        """
        self._stop.clear()
        try:
            ws = self._connect(self._initial_url())
            while ws is not None and not self._stop.is_set():
                reconnect_url = self._pump(ws)
                if self._stop.is_set():
                    break
                ws = self._reconnect(ws, reconnect_url)
        finally:
            with self._sockets_lock:
                sockets = list(self._sockets)
            for open_ws in sockets:
                self._close_ws(open_ws)
            self._handle = None
            self._set_state(SessionState.CLOSED)

    def _initial_url(self) -> str:
        if self._keepalive_timeout_seconds:
            separator = '&' if '?' in self._ws_url else '?'
            return f"{self._ws_url}{separator}keepalive_timeout_seconds={int(self._keepalive_timeout_seconds)}"
        return self._ws_url

    def _set_state(self, state: SessionState) -> None:
        if state == self._state:
            return
        logger.debug(f"Feed session {self._state.value} -> {state.value}")
        self._state = state
        if self._on_state is not None:
            try:
                self._on_state(state)
            except Exception:
                logger.exception("State listener failed")

    def _connect(self, url: str) -> Any:
        """CONNECTING -> WELCOMED -> ACTIVE. Returns the open socket."""
        self._set_state(SessionState.CONNECTING)
        logger.info(f"Connecting to EventSub at {url}")
        try:
            ws = self._ws_factory(url, self._connect_timeout)
        except Exception as e:
            raise HandshakeFailed(f"Could not connect to {url}: {e}") from e

        with self._sockets_lock:
            self._sockets.append(ws)

        try:
            welcome = self._await_welcome(ws)
            self._handle = SessionHandle(
                session_id=welcome.session_id,
                keepalive_interval=welcome.keepalive_interval,
                established_at=utc_now()
            )
            self._set_state(SessionState.WELCOMED)
            logger.info(f"✅ EventSub session {welcome.session_id} (keepalive {welcome.keepalive_interval:.0f}s)")
            self._ensure_subscriptions()
        except (RegistrarError, APIError) as e:
            self._close_ws(ws)
            raise HandshakeFailed(f"Subscription setup failed: {e}") from e
        except Exception:
            self._close_ws(ws)
            raise

        self._set_state(SessionState.ACTIVE)
        return ws

    def _await_welcome(self, ws: Any) -> Welcome:
        deadline = self._clock() + self._connect_timeout
        while True:
            remaining = deadline - self._clock()
            if remaining <= 0:
                raise HandshakeFailed(f"No session_welcome within {self._connect_timeout:.0f}s")
            try:
                ws.settimeout(remaining)
                raw = ws.recv()
            except RECV_TIMEOUTS:
                continue
            except CONNECTION_LOST as e:
                raise HandshakeFailed(f"Connection closed before welcome: {e}") from e
            if not raw:
                raise HandshakeFailed("Connection closed before welcome")

            try:
                message = parse_message(raw)
            except ValueError as e:
                logger.warning(f"Dropping malformed message during handshake: {e}")
                continue
            if isinstance(message, Welcome):
                return message
            logger.debug(f"Ignoring {type(message).__name__} before welcome")

    def _ensure_subscriptions(self) -> None:
        self._registrar.bind_session(self._handle.session_id)
        try:
            result = self._registrar.ensure(self._target_id, self._event_types)
        except Unauthorized as e:
            logger.warning("Subscription request unauthorized, refreshing token and retrying once")
            self._auth.force_refresh(e.credential or self._auth.current_credential())
            result = self._registrar.ensure(self._target_id, self._event_types)

        if not result.enabled:
            raise Terminated("No EventSub subscription could be enabled")

    def _pump(self, ws: Any) -> Optional[str]:
        """
        ACTIVE loop. Returns when the session must reconnect.

        Returns:
            Server-supplied reconnect URL, or None after a keepalive timeout
            or a lost connection
        """
        window = self._handle.keepalive_interval * self._grace_factor
        last_seen = self._clock()

        while not self._stop.is_set():
            remaining = last_seen + window - self._clock()
            if remaining <= 0:
                logger.warning(f"⏱️  No message for {window:.1f}s - connection presumed lost")
                self._set_state(SessionState.RECONNECTING)
                return None

            try:
                ws.settimeout(remaining)
                raw = ws.recv()
            except RECV_TIMEOUTS:
                continue
            except CONNECTION_LOST as e:
                if self._stop.is_set():
                    return None
                logger.warning(f"Feed connection lost: {e}")
                self._set_state(SessionState.RECONNECTING)
                return None

            if not raw:
                logger.warning("Feed connection closed by server")
                self._set_state(SessionState.RECONNECTING)
                return None

            last_seen = self._clock()
            reconnect_url = self._handle_frame(raw)
            if reconnect_url:
                self._set_state(SessionState.RECONNECTING)
                return reconnect_url

        return None

    def _handle_frame(self, raw: Any) -> Optional[str]:
        """Apply one frame. Returns a reconnect URL when the server asks for one."""
        try:
            message = parse_message(raw)
        except ValueError as e:
            logger.warning(f"Dropping malformed feed message: {e}")
            return None

        if isinstance(message, Keepalive):
            logger.debug("Keepalive")
        elif isinstance(message, Notification):
            self._deliver(message)
        elif isinstance(message, Reconnect):
            logger.info("Server requested reconnect")
            return message.reconnect_url
        elif isinstance(message, Revocation):
            self._handle_revocation(message)
        elif isinstance(message, Welcome):
            logger.debug("Ignoring duplicate session_welcome")
        return None

    def _deliver(self, message: Notification) -> None:
        if message.message_id and self._is_duplicate(message.message_id):
            logger.debug(f"Dropping duplicate notification {message.message_id}")
            return
        try:
            self._on_notification(message.payload)
        except Exception:
            logger.exception(f"Notification handler failed for {message.subscription_type}")

    def _is_duplicate(self, message_id: str) -> bool:
        now = self._clock()
        stale = [key for key, seen in self._seen_message_ids.items() if now - seen > self._dedupe_ttl]
        for key in stale:
            del self._seen_message_ids[key]
        if message_id in self._seen_message_ids:
            return True
        self._seen_message_ids[message_id] = now
        return False

    def _handle_revocation(self, message: Revocation) -> None:
        logger.warning(f"⚠️  Subscription {message.subscription_type} revoked ({message.status})")
        self._registrar.mark_revoked(message.subscription_type, message.condition or None)
        if message.status in CREDENTIAL_REVOCATIONS:
            self._auth.on_revocation_notice()
        if not self._registrar.has_enabled():
            raise Terminated(f"All subscriptions revoked ({message.status})")

    def _reconnect(self, old_ws: Any, reconnect_url: Optional[str]) -> Optional[Any]:
        """
        RECONNECTING -> CONNECTING with bounded exponential backoff.

        A server-issued reconnect keeps the old socket open until the new one
        is welcomed; after a timeout or lost connection it is closed first.
        """
        self._handle = None
        if reconnect_url is None:
            self._close_ws(old_ws)
            old_ws = None
        url = reconnect_url or self._initial_url()

        for attempt in range(self._max_reconnect_attempts):
            if self._stop.is_set():
                return None
            if attempt > 0:
                delay = compute_backoff(attempt - 1, self._backoff_initial, self._backoff_max, self._random_fn)
                logger.info(f"Reconnecting in {delay:.1f}s (attempt {attempt + 1}/{self._max_reconnect_attempts})")
                self._sleep(delay)
            try:
                ws = self._connect(url)
            except HandshakeFailed as e:
                logger.warning(f"Reconnect attempt {attempt + 1} failed: {e}")
                if old_ws is not None:
                    # The reconnect URL is single-use; fall back to a fresh session
                    self._close_ws(old_ws)
                    old_ws = None
                    url = self._initial_url()
                continue

            if old_ws is not None:
                self._close_ws(old_ws)
            self.reconnect_count += 1
            return ws

        raise Terminated(f"Gave up after {self._max_reconnect_attempts} reconnect attempts")

    def _close_ws(self, ws: Any) -> None:
        with self._sockets_lock:
            if ws in self._sockets:
                self._sockets.remove(ws)
        try:
            ws.close()
        except (websocket.WebSocketException, OSError) as e:
            logger.debug(f"Error closing feed socket: {e}")
