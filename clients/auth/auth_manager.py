"""
Twitch OAuth credential lifecycle.
Handles the authorization-code exchange, proactive and reactive refresh,
revocation, and hourly token validation.
"""
import dataclasses
import secrets
import threading
import time
import urllib.parse
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

import requests

from config import TwitchConfig
from schemas import Credential, utc_now
from utils import APIError, retry_call, setup_logger
from utils.api_utils import error_message
from utils.errors import AuthError, RefreshFailed, RefreshRevoked, TransportFailure, UserDeclined
from .credential_store import CredentialStore
from .oauth_server import browser_prompt


logger = setup_logger(__name__)


class AuthManager:
    """
    Keeps one user access token valid for the lifetime of the process.

    Responsibilities:
    - Run the authorization-code flow when no usable credential is stored
    - Refresh the access token before it comes within the safety margin
    - Persist every new credential before handing it out
    - Forget the credential when the feed reports it revoked

    All access to the cached credential happens under one lock, so at most
    one exchange or refresh is in flight and every waiting caller receives
    its result.
    """

    AUTH_URL = "https://id.twitch.tv/oauth2/authorize"
    TOKEN_URL = "https://id.twitch.tv/oauth2/token"
    VALIDATE_URL = "https://id.twitch.tv/oauth2/validate"

    def __init__(
        self,
        config: TwitchConfig,
        store: Optional[CredentialStore] = None,
        session: Optional[requests.Session] = None,
        prompt: Optional[Callable[[str], Optional[str]]] = None,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], None] = time.sleep,
        retry_delay: float = 1.0
    ):
        """
        Initialize auth manager.

        Args:
            config: Twitch application configuration
            store: Durable token storage (defaults to config.token_storage_path)
            session: HTTP session for the token endpoints
            prompt: Interactive step; receives the authorize URL and returns
                the URL the browser was redirected to
            clock: Current UTC time
            sleep: Sleep function used between refresh retries
            retry_delay: First backoff delay for refresh retries
        """
        self.config = config
        self.store = store or CredentialStore(config.token_storage_path)
        self.session = session or requests.Session()
        self._prompt = prompt or browser_prompt(config.redirect_uri)
        self._clock = clock
        self._sleep = sleep
        self._retry_delay = retry_delay
        self._margin = timedelta(seconds=config.refresh_margin_seconds)

        self._lock = threading.Lock()
        self._credential: Optional[Credential] = None
        self._revoked = False
        self.exchange_count = 0
        self.refresh_count = 0

    @property
    def margin(self) -> timedelta:
        return self._margin

    def get_authorization_url(self, state: str, client_id: Optional[str] = None,
                              redirect_uri: Optional[str] = None) -> str:
        """
        Build the Twitch authorize URL.

        Args:
            state: CSRF token echoed back in the redirect
            client_id: Application client id (defaults to config)
            redirect_uri: Registered redirect URI (defaults to config)

        Returns:
            Authorization URL
        """
        params = {
            'client_id': client_id or self.config.client_id,
            'redirect_uri': redirect_uri or self.config.redirect_uri,
            'response_type': 'code',
            'scope': self.config.scopes,
            'state': state,
            'force_verify': 'true'
        }
        return f"{self.AUTH_URL}?{urllib.parse.urlencode(params)}"

    def authorize(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        redirect_uri: Optional[str] = None
    ) -> Credential:
        """
        Return a valid credential, running the code exchange only if needed.

        A usable stored credential (refreshed if close to expiry) is returned
        as is. The interactive exchange runs when storage is empty, the
        stored refresh token is rejected, or the feed reported a revocation.

        Raises:
            UserDeclined: Authorization was not granted
            TransportFailure: Token endpoint unreachable
        """
        with self._lock:
            if not self._revoked:
                existing = self._load_locked()
                if existing is not None:
                    try:
                        return self._valid_locked(existing)
                    except RefreshRevoked:
                        logger.warning("Stored refresh token was rejected, re-authorizing...")

            credential = self._exchange_code(
                client_id or self.config.client_id,
                client_secret or self.config.client_secret,
                redirect_uri or self.config.redirect_uri
            )
            self.store.save(credential)
            self._credential = credential
            self._revoked = False
            self.exchange_count += 1
            logger.info("✅ Tokens obtained and saved")
            return dataclasses.replace(credential)

    def current_credential(self) -> Credential:
        """
        Get a credential that stays valid for at least the safety margin.

        Returns:
            Snapshot of the cached credential

        Raises:
            RefreshRevoked: No credential, revoked credential or rejected
                refresh token; call authorize()
            RefreshFailed: Refresh kept failing on transport errors
        """
        with self._lock:
            if self._revoked:
                raise RefreshRevoked("Credential was revoked; authorization required")
            credential = self._load_locked()
            if credential is None:
                raise RefreshRevoked("No stored credential; authorization required")
            return self._valid_locked(credential)

    def force_refresh(self, stale: Credential) -> Credential:
        """
        Refresh after the API rejected `stale`.

        If another caller already replaced `stale`, the newer credential is
        returned without a second network exchange.
        """
        with self._lock:
            if self._revoked:
                raise RefreshRevoked("Credential was revoked; authorization required")
            credential = self._load_locked()
            if credential is None:
                raise RefreshRevoked("No stored credential; authorization required")
            if credential.access_token != stale.access_token and not credential.expires_within(self._margin, self._clock()):
                return dataclasses.replace(credential)
            return self._refresh_locked(credential)

    def on_revocation_notice(self) -> None:
        """Drop the credential so the next caller must re-authorize."""
        with self._lock:
            self._credential = None
            self._revoked = True
            self.store.clear()
        logger.warning("⚠️  Authorization revoked by Twitch - re-authorization required")

    @property
    def is_revoked(self) -> bool:
        return self._revoked

    def validate(self) -> Optional[Dict[str, Any]]:
        """
        Check the access token against the validate endpoint.

        Returns:
            Validation info (login, user_id, scopes, expires_in), or None if
            Twitch rejected the token. A rejected token is marked expired so
            the next current_credential() refreshes it.
        """
        credential = self.current_credential()
        try:
            response = self.session.get(
                self.VALIDATE_URL,
                headers={'Authorization': f'OAuth {credential.access_token}'},
                timeout=15
            )
        except requests.exceptions.RequestException as e:
            raise TransportFailure(f"Validate endpoint unreachable: {e}") from e

        if response.status_code == 401:
            logger.warning("Access token rejected by validate endpoint, will refresh")
            with self._lock:
                if self._credential is not None and self._credential.access_token == credential.access_token:
                    self._credential.expires_at = self._clock()
            return None

        if response.status_code >= 400:
            raise TransportFailure(f"Validate failed ({response.status_code}): {error_message(response)}")

        info = response.json()
        logger.debug(f"Token valid for {info.get('expires_in', '?')}s (login={info.get('login')})")
        return info

    def _load_locked(self) -> Optional[Credential]:
        if self._credential is None:
            self._credential = self.store.load()
        return self._credential

    def _valid_locked(self, credential: Credential) -> Credential:
        now = self._clock()
        if not credential.expires_within(self._margin, now):
            return dataclasses.replace(credential)
        logger.info("Token expires soon, refreshing...")
        return self._refresh_locked(credential)

    def _refresh_locked(self, credential: Credential) -> Credential:
        """Refresh in place, persisting first. Caller holds the lock."""
        data = {
            'grant_type': 'refresh_token',
            'refresh_token': credential.refresh_token,
            'client_id': self.config.client_id,
            'client_secret': self.config.client_secret
        }

        try:
            tokens = retry_call(
                self._post_token, data, True,
                max_retries=max(0, self.config.max_refresh_attempts - 1),
                initial_delay=self._retry_delay,
                exceptions=(TransportFailure,),
                sleep=self._sleep
            )
        except RefreshRevoked:
            logger.error("❌ Refresh token rejected - clearing stored credential")
            self._credential = None
            self.store.clear()
            raise
        except APIError as e:
            raise RefreshFailed(f"Token refresh failed: {e}") from e

        try:
            refreshed = Credential.from_token_response(
                tokens, now=self._clock(), fallback_refresh_token=credential.refresh_token
            )
        except ValueError as e:
            raise RefreshFailed(str(e)) from e
        if refreshed.expires_within(self._margin, self._clock()):
            raise RefreshFailed(f"Refreshed token expires in {refreshed.seconds_remaining(self._clock()):.0f}s, "
                                f"inside the {self._margin.total_seconds():.0f}s safety margin")

        self.store.save(refreshed)
        credential.replace_with(refreshed)
        self._credential = credential
        self.refresh_count += 1
        logger.info("✅ Access token refreshed")
        return dataclasses.replace(credential)

    def _post_token(self, data: Dict[str, str], refreshing: bool) -> Dict[str, Any]:
        try:
            response = self.session.post(self.TOKEN_URL, data=data, timeout=15)
        except requests.exceptions.RequestException as e:
            raise TransportFailure(f"Token endpoint unreachable: {e}") from e

        if response.status_code >= 500 or response.status_code == 429:
            raise TransportFailure(f"Token endpoint error ({response.status_code}): {error_message(response)}")
        if response.status_code >= 400:
            message = f"Token request rejected ({response.status_code}): {error_message(response)}"
            if refreshing:
                raise RefreshRevoked(message)
            raise UserDeclined(message)

        try:
            return response.json()
        except ValueError as e:
            raise TransportFailure(f"Invalid JSON from token endpoint: {e}") from e

    def _exchange_code(self, client_id: str, client_secret: str, redirect_uri: str) -> Credential:
        """Run the interactive authorization-code flow."""
        logger.info("Starting OAuth authentication...")
        state = secrets.token_urlsafe(16)
        auth_url = self.get_authorization_url(state, client_id, redirect_uri)

        redirected = self._prompt(auth_url)
        code = self._parse_callback(redirected, state)
        logger.info("✅ Authorization code received")

        logger.info("Exchanging authorization code for tokens...")
        tokens = self._post_token({
            'grant_type': 'authorization_code',
            'code': code,
            'redirect_uri': redirect_uri,
            'client_id': client_id,
            'client_secret': client_secret
        }, False)

        try:
            credential = Credential.from_token_response(tokens, now=self._clock())
        except ValueError as e:
            raise TransportFailure(str(e)) from e
        if credential.expires_within(self._margin, self._clock()):
            raise TransportFailure(f"Issued token expires in {credential.seconds_remaining(self._clock()):.0f}s, "
                                   f"inside the {self._margin.total_seconds():.0f}s safety margin")
        return credential

    @staticmethod
    def _parse_callback(redirected: Optional[str], expected_state: str) -> str:
        if not redirected:
            raise UserDeclined("No authorization redirect received")

        params = urllib.parse.parse_qs(urllib.parse.urlparse(redirected).query)
        if 'error' in params:
            reason = params.get('error_description', params['error'])[0]
            raise UserDeclined(f"Authorization declined: {reason}")

        state = params.get('state', [''])[0]
        if state != expected_state:
            raise AuthError("OAuth state mismatch - possible CSRF, refusing the code")

        code = params.get('code', [''])[0]
        if not code:
            raise UserDeclined("Redirect URL carries no authorization code")
        return code
