"""
Background scheduler for token upkeep.
Validates the access token hourly, as Twitch requires of long-running apps.
"""
import threading
from typing import Optional

import schedule

from clients.auth import AuthManager
from utils import setup_logger
from utils.errors import AuthError


logger = setup_logger(__name__)


class TokenValidationScheduler:
    """
    Runs periodic token validation on a daemon thread.

    A rejected token is marked stale inside AuthManager, so the next caller
    refreshes it; revocation is left for the session to surface.
    """

    def __init__(self, auth: AuthManager, interval_minutes: int = 60, poll_seconds: float = 30.0):
        self.auth = auth
        self.interval_minutes = interval_minutes
        self.poll_seconds = poll_seconds
        self.scheduler = schedule.Scheduler()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def validate_token(self) -> None:
        """Scheduled job: validate and refresh the token if needed."""
        try:
            info = self.auth.validate()
            if info is None:
                self.auth.current_credential()
            else:
                logger.debug(f"Token validated for {info.get('login')}")
        except AuthError as e:
            logger.warning(f"⚠️  Token validation failed: {e}")

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self.scheduler.clear()
        self.scheduler.every(self.interval_minutes).minutes.do(self.validate_token)
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name='token-validation', daemon=True)
        self._thread.start()
        logger.info(f"🕐 Token validation scheduled every {self.interval_minutes} minutes")

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=5.0)
        self.scheduler.clear()

    def _loop(self) -> None:
        while not self._stop.is_set():
            self.scheduler.run_pending()
            self._stop.wait(self.poll_seconds)
