"""
Redemption notification mapper.
Transforms raw EventSub notification payloads into RedemptionEvent objects.
"""
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from schemas import EventType, RedemptionEvent, utc_now
from utils import setup_logger
from utils.errors import UnrecognizedPayload


logger = setup_logger(__name__)

# Twitch timestamps carry up to nanosecond precision; datetime takes microseconds
_FRACTION = re.compile(r'\.(\d{6})\d+')


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an RFC3339 timestamp as sent by Twitch.

    Returns:
        Aware UTC datetime, or None if the value is missing or invalid
    """
    if not isinstance(value, str) or not value.strip():
        return None
    text = _FRACTION.sub(r'.\1', value.strip()).replace('Z', '+00:00')
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class RedemptionMapper:
    """
    Maps notification payloads to redemption events.

    Responsibilities:
    - Check the subscription type
    - Extract reward title and user
    - Handle missing or malformed data
    """

    @staticmethod
    def to_event(payload: Dict[str, Any]) -> RedemptionEvent:
        """
        Map a notification payload ({subscription, event}) to a RedemptionEvent.

        Args:
            payload: The `payload` object of an EventSub notification

        Returns:
            Redemption event

        Raises:
            UnrecognizedPayload: Not a redemption, or required fields missing
        """
        if not isinstance(payload, dict):
            raise UnrecognizedPayload(f"Payload is not an object: {type(payload).__name__}")

        subscription = payload.get('subscription')
        sub_type = subscription.get('type') if isinstance(subscription, dict) else None
        if sub_type != EventType.REDEMPTION_ADD.value:
            raise UnrecognizedPayload(f"Unsupported notification type: {sub_type!r}")

        event = payload.get('event')
        if not isinstance(event, dict):
            raise UnrecognizedPayload("Notification has no event object")

        reward = event.get('reward')
        title = reward.get('title') if isinstance(reward, dict) else None
        if not isinstance(title, str) or not title.strip():
            raise UnrecognizedPayload("Redemption has no reward title")

        user = (
            str(event.get('user_name') or '').strip()
            or str(event.get('user_login') or '').strip()
            or 'unknown user'
        )

        redeemed_at = parse_timestamp(event.get('redeemed_at'))
        if redeemed_at is None:
            logger.debug("Redemption without a usable redeemed_at, using receive time")
            redeemed_at = utc_now()

        return RedemptionEvent(
            reward_title=title,
            user=user,
            redeemed_at=redeemed_at,
            raw_payload=payload
        )
