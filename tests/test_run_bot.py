import pytest

import run_bot
from config import reset_config
from run_bot import Bot, resolve_target_id, run_forever
from scheduler import TokenValidationScheduler
from utils.errors import HandshakeFailed, RefreshFailed, RefreshRevoked, Terminated


class ScriptedSession:
    def __init__(self, outcome=None):
        self.outcome = outcome
        self.stopped = False

    def run(self):
        if self.outcome is not None:
            raise self.outcome

    def stop(self):
        self.stopped = True


class CountingAuth:
    def __init__(self, validate_result=None, fail_with=None):
        self.authorizations = 0
        self.validations = 0
        self.current_calls = 0
        self.validate_result = validate_result
        self.fail_with = fail_with

    def authorize(self):
        self.authorizations += 1

    def validate(self):
        self.validations += 1
        if self.fail_with is not None:
            raise self.fail_with
        return self.validate_result

    def current_credential(self):
        self.current_calls += 1


def _bot(outcomes, auth=None):
    sessions = iter([ScriptedSession(outcome) for outcome in outcomes])
    bot = Bot(config=None, auth=auth or CountingAuth(), api=None, registrar=None,
              engine=None, dispatcher=None, validator=None)
    bot.new_session = lambda: next(sessions)
    return bot


def test_session_failures_restart_with_growing_backoff():
    auth = CountingAuth()
    bot = _bot([HandshakeFailed("refused"), Terminated("gave up"), RefreshFailed("down"), None], auth=auth)
    sleeps = []

    assert run_forever(bot, sleep=sleeps.append, clock=lambda: 0.0) == 0

    assert len(sleeps) == 3
    assert 1.0 <= sleeps[0] <= 1.25
    assert 2.0 <= sleeps[1] <= 2.5
    assert 4.0 <= sleeps[2] <= 5.0
    assert auth.authorizations == 0


def test_revoked_credential_triggers_authorization_before_restart():
    auth = CountingAuth()
    bot = _bot([RefreshRevoked("revoked"), None], auth=auth)

    assert run_forever(bot, sleep=lambda _: None, clock=lambda: 0.0) == 0
    assert auth.authorizations == 1


def test_stable_session_resets_backoff():
    ticks = iter(range(0, 10000, 100))
    bot = _bot([Terminated("a"), Terminated("b"), None])
    sleeps = []

    run_forever(bot, sleep=sleeps.append, clock=lambda: float(next(ticks)))

    assert all(1.0 <= delay <= 1.25 for delay in sleeps)


def test_unexpected_errors_propagate():
    bot = _bot([KeyError("bug")])

    with pytest.raises(KeyError):
        run_forever(bot, sleep=lambda _: None, clock=lambda: 0.0)


def test_resolve_target_id():
    class API:
        def get_user_id(self, login):
            return {"streamer": "1337"}[login]

    assert resolve_target_id(API(), " 42 ") == "42"
    assert resolve_target_id(API(), "streamer") == "1337"


def test_main_reports_configuration_errors(tmp_path):
    reset_config()

    assert run_bot.main(["--env-file", str(tmp_path / "missing.env")]) == 2


def test_scheduler_refreshes_rejected_token():
    auth = CountingAuth(validate_result=None)

    TokenValidationScheduler(auth).validate_token()

    assert auth.validations == 1
    assert auth.current_calls == 1


def test_scheduler_swallows_auth_errors():
    auth = CountingAuth(fail_with=RefreshRevoked("revoked"))

    TokenValidationScheduler(auth).validate_token()

    assert auth.current_calls == 0


def test_scheduler_registers_hourly_job():
    auth = CountingAuth(validate_result={"login": "streamer"})
    scheduler = TokenValidationScheduler(auth, interval_minutes=60, poll_seconds=0.01)

    scheduler.start()
    try:
        assert len(scheduler.scheduler.get_jobs()) == 1
        assert scheduler.scheduler.get_jobs()[0].interval == 60
    finally:
        scheduler.stop()

    assert scheduler.scheduler.get_jobs() == []
