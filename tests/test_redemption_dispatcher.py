from datetime import datetime, timezone

import pytest

from handlers import RedemptionDispatcher
from mappers import RedemptionMapper, parse_timestamp
from utils.errors import UnrecognizedPayload

from fakes import redemption_payload


class RecordingEngine:
    def __init__(self):
        self.events = []

    def trigger(self, event):
        self.events.append(event)
        return None


def test_payload_maps_to_redemption_event():
    payload = redemption_payload("Air Horn", user_name="SomeViewer")

    event = RedemptionMapper.to_event(payload)

    assert event.reward_title == "Air Horn"
    assert event.user == "SomeViewer"
    assert event.redeemed_at == datetime(2026, 3, 1, 12, 0, 1, 171067, tzinfo=timezone.utc)
    assert event.raw_payload is payload


@pytest.mark.parametrize("user_name, user_login, expected", [
    ("Display", "login", "Display"),
    ("", "login", "login"),
    (None, None, "unknown user"),
])
def test_user_falls_back_to_login_then_placeholder(user_name, user_login, expected):
    payload = redemption_payload()
    payload["event"]["user_name"] = user_name
    payload["event"]["user_login"] = user_login

    assert RedemptionMapper.to_event(payload).user == expected


def test_missing_timestamp_uses_receive_time():
    payload = redemption_payload()
    del payload["event"]["redeemed_at"]

    assert RedemptionMapper.to_event(payload).redeemed_at.tzinfo is not None


@pytest.mark.parametrize("mutate", [
    lambda p: p["subscription"].update(type="channel.follow"),
    lambda p: p.pop("event"),
    lambda p: p["event"].pop("reward"),
    lambda p: p["event"]["reward"].update(title="   "),
])
def test_unrecognized_payloads_raise(mutate):
    payload = redemption_payload()
    mutate(payload)

    with pytest.raises(UnrecognizedPayload):
        RedemptionMapper.to_event(payload)


def test_parse_timestamp_variants():
    assert parse_timestamp("2026-03-01T12:00:00Z") == datetime(2026, 3, 1, 12, tzinfo=timezone.utc)
    assert parse_timestamp("2026-03-01T12:00:00.123456789Z").microsecond == 123456
    assert parse_timestamp("yesterday") is None
    assert parse_timestamp(None) is None


def test_dispatcher_drops_bad_payload_and_keeps_going():
    engine = RecordingEngine()
    dispatcher = RedemptionDispatcher(engine)
    broken = redemption_payload()
    del broken["event"]["reward"]

    dispatcher.on_notification(broken)
    dispatcher.on_notification("not even a dict")
    dispatcher.on_notification(redemption_payload("Horn"))

    assert [event.reward_title for event in engine.events] == ["Horn"]
    assert dispatcher.dropped == 2
    assert dispatcher.dispatched == 1
