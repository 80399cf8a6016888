"""
Redemption dispatcher.
Decodes notification payloads and hands redemptions to the playback engine.
"""
from typing import Any, Dict

from mappers import RedemptionMapper
from playback import PlaybackEngine
from utils import setup_logger
from utils.errors import UnrecognizedPayload


logger = setup_logger(__name__)


class RedemptionDispatcher:
    """Feed notification callback; never raises and never waits on playback."""

    def __init__(self, engine: PlaybackEngine, mapper: RedemptionMapper = None):
        self.engine = engine
        self.mapper = mapper or RedemptionMapper()
        self.dispatched = 0
        self.dropped = 0

    def on_notification(self, raw_payload: Dict[str, Any]) -> None:
        try:
            event = self.mapper.to_event(raw_payload)
        except UnrecognizedPayload as e:
            self.dropped += 1
            logger.warning(f"Dropping notification: {e}")
            return

        self.dispatched += 1
        logger.info(f"🎁 {event.user} redeemed {event.reward_title}")
        self.engine.trigger(event)
