"""
Twitch Helix API client.
Looks up users and manages EventSub subscriptions.
"""
import time
from typing import Any, Callable, Dict, List, Optional

import requests

from config import TwitchConfig
from clients.auth import AuthManager
from schemas import Credential
from utils import APIError, RateLimiter, setup_logger, validate_response
from utils.api_utils import error_message
from utils.errors import QuotaExceeded, Unauthorized


logger = setup_logger(__name__)


class TwitchAPIClient:
    """
    Helix API client authenticated with the user access token.

    Responsibilities:
    - Resolve a login name to a numeric user id
    - List and create EventSub subscriptions
    - Retry transient failures with exponential backoff
    - Respect the Helix rate limit bucket
    """

    BASE_URL = "https://api.twitch.tv/helix"

    def __init__(
        self,
        config: TwitchConfig,
        auth: AuthManager,
        session: Optional[requests.Session] = None,
        rate_limiter: Optional[RateLimiter] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize API client.

        Args:
            config: Twitch configuration (client id)
            auth: Source of bearer credentials
            session: HTTP session
            rate_limiter: Helix bucket tracker
            max_retries: Attempts for transient failures
            retry_delay: Base delay between attempts
            sleep: Sleep function
        """
        self.config = config
        self.auth = auth
        self.session = session or requests.Session()
        self.rate_limiter = rate_limiter or RateLimiter()
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self._sleep = sleep

    def _make_request(
        self,
        endpoint: str,
        params: Optional[Dict] = None,
        method: str = 'GET',
        json_body: Optional[Dict] = None,
        credential: Optional[Credential] = None
    ) -> Dict:
        """
        Make authenticated API request with retry logic.

        Args:
            endpoint: API endpoint (e.g., '/eventsub/subscriptions')
            params: Query parameters
            method: HTTP method
            json_body: JSON request body
            credential: Bearer credential (defaults to the current one)

        Returns:
            Response JSON

        Raises:
            Unauthorized: Bearer token rejected (401)
            APIError: Non-retryable error or all retries failed
        """
        url = f"{self.BASE_URL}{endpoint}"

        for attempt in range(self.max_retries):
            used = credential or self.auth.current_credential()
            headers = {
                'Client-Id': self.config.client_id,
                'Authorization': f'Bearer {used.access_token}',
                'Content-Type': 'application/json'
            }

            self.rate_limiter.wait_if_needed()
            try:
                response = self.session.request(
                    method=method,
                    url=url,
                    headers=headers,
                    params=params,
                    json=json_body,
                    timeout=30
                )
            except requests.exceptions.RequestException as e:
                if attempt < self.max_retries - 1:
                    wait_time = self.retry_delay * (2 ** attempt)
                    logger.warning(f"Request failed: {e}. Retrying in {wait_time}s...")
                    self._sleep(wait_time)
                    continue
                raise APIError(f"API request failed after {self.max_retries} attempts: {e}")

            self.rate_limiter.update_from_headers(response.headers)

            if response.status_code == 401:
                raise Unauthorized(f"Bearer token rejected: {error_message(response)}", credential=used)

            # Bucket exhausted: wait for the reset and try again
            if response.status_code == 429 and response.headers.get('Ratelimit-Remaining') == '0':
                logger.warning("Rate limited by Helix, waiting for bucket reset...")
                continue

            if response.status_code >= 500 and attempt < self.max_retries - 1:
                wait_time = self.retry_delay * (2 ** attempt)
                logger.warning(f"API error {response.status_code}, retrying in {wait_time}s...")
                self._sleep(wait_time)
                continue

            return validate_response(response)

        raise APIError("Max retries exceeded")

    def get_user_id(self, login: str) -> str:
        """
        Look up the numeric user id for a login name.

        Args:
            login: Twitch login (case-insensitive)

        Returns:
            Numeric user id as a string
        """
        data = self._make_request('/users', params={'login': login.strip().lower()})
        users = data.get('data') or []
        if not users or not users[0].get('id'):
            raise APIError(f"No Twitch user found for login {login!r}")
        return str(users[0]['id'])

    def list_subscriptions(
        self,
        event_type: Optional[str] = None,
        status: Optional[str] = None,
        credential: Optional[Credential] = None
    ) -> List[Dict[str, Any]]:
        """
        List EventSub subscriptions owned by this client, following pagination.

        Args:
            event_type: Only subscriptions of this type
            status: Only subscriptions with this status
            credential: Bearer credential to use

        Returns:
            Raw subscription objects
        """
        params: Dict[str, str] = {}
        if event_type:
            params['type'] = event_type
        elif status:
            params['status'] = status

        subscriptions: List[Dict[str, Any]] = []
        while True:
            data = self._make_request('/eventsub/subscriptions', params=dict(params), credential=credential)
            page = data.get('data') or []
            if status:
                page = [sub for sub in page if sub.get('status') == status]
            subscriptions.extend(page)

            cursor = (data.get('pagination') or {}).get('cursor')
            if not cursor:
                break
            params['after'] = cursor

        logger.debug(f"Listed {len(subscriptions)} EventSub subscriptions")
        return subscriptions

    def create_subscription(
        self,
        event_type: str,
        version: str,
        condition: Dict[str, str],
        session_id: str,
        credential: Optional[Credential] = None
    ) -> Dict[str, Any]:
        """
        Create a websocket-transport EventSub subscription.

        Returns:
            The created subscription object

        Raises:
            Unauthorized: Bearer token rejected
            QuotaExceeded: Subscription limit reached
        """
        body = {
            'type': event_type,
            'version': version,
            'condition': condition,
            'transport': {'method': 'websocket', 'session_id': session_id}
        }
        try:
            data = self._make_request('/eventsub/subscriptions', method='POST', json_body=body, credential=credential)
        except Unauthorized as e:
            e.event_type = event_type
            raise
        except APIError as e:
            if e.status_code == 429:
                raise QuotaExceeded(f"Subscription limit reached for {event_type}: {e}", event_type) from e
            if e.status_code == 409:
                logger.debug(f"Subscription {event_type} already exists")
                return {'type': event_type, 'condition': condition, 'status': 'enabled',
                        'transport': body['transport']}
            raise

        created = (data.get('data') or [{}])[0]
        logger.debug(f"Created subscription {event_type} id={created.get('id')}")
        return created
