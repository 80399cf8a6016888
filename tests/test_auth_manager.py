import threading
import time
import urllib.parse
from datetime import timedelta

import pytest
import requests

from clients.auth import AuthManager, CredentialStore
from schemas import Credential
from utils.errors import AuthError, RefreshFailed, RefreshRevoked, TransportFailure, UserDeclined

from conftest import NOW
from fakes import FakeHTTPSession, FakeResponse, token_response


def _manager(config, store, session, prompt=None, sleeps=None):
    return AuthManager(
        config,
        store=store,
        session=session,
        prompt=prompt or _no_prompt,
        clock=lambda: NOW,
        sleep=(sleeps.append if sleeps is not None else (lambda _: None)),
        retry_delay=1.0,
    )


def _no_prompt(auth_url):
    raise AssertionError("interactive authorization was not expected")


def _approving_prompt(code="auth-code"):
    seen = []

    def prompt(auth_url):
        seen.append(auth_url)
        query = urllib.parse.parse_qs(urllib.parse.urlparse(auth_url).query)
        return f"http://localhost/?code={code}&scope=channel%3Aread%3Aredemptions&state={query['state'][0]}"

    prompt.seen = seen
    return prompt


def _stored(twitch_config, expires_in: timedelta) -> CredentialStore:
    store = CredentialStore(twitch_config.token_storage_path)
    store.save(Credential(access_token="a1", refresh_token="r1", expires_at=NOW + expires_in))
    return store


def test_valid_stored_credential_is_returned_without_network(twitch_config):
    store = _stored(twitch_config, timedelta(hours=2))
    session = FakeHTTPSession([])
    auth = _manager(twitch_config, store, session)

    credential = auth.current_credential()

    assert credential.access_token == "a1"
    assert session.calls == []
    assert auth.refresh_count == 0


@pytest.mark.parametrize("expires_in, refreshes", [
    (timedelta(hours=-1), True),
    (timedelta(seconds=0), True),
    (timedelta(seconds=59), True),
    (timedelta(seconds=60), True),
    (timedelta(seconds=61), False),
])
def test_never_hands_out_credential_inside_safety_margin(twitch_config, expires_in, refreshes):
    store = _stored(twitch_config, expires_in)
    session = FakeHTTPSession([token_response()])
    auth = _manager(twitch_config, store, session)

    credential = auth.current_credential()

    assert credential.expires_at > NOW + auth.margin
    assert (credential.access_token == "a2") is refreshes
    assert len(session.calls) == (1 if refreshes else 0)


@pytest.mark.parametrize("reply", [
    {"access_token": "a2", "refresh_token": "r2"},
    {"access_token": "a2", "refresh_token": "r2", "expires_in": 0},
    {"access_token": "a2", "refresh_token": "r2", "expires_in": 30},
])
def test_refresh_without_usable_lifetime_is_refused(twitch_config, reply):
    store = _stored(twitch_config, timedelta(seconds=10))
    auth = _manager(twitch_config, store, FakeHTTPSession([FakeResponse(200, reply)]))

    with pytest.raises(RefreshFailed):
        auth.current_credential()

    assert store.load().access_token == "a1"


def test_code_exchange_without_usable_lifetime_is_refused(twitch_config):
    store = CredentialStore(twitch_config.token_storage_path)
    session = FakeHTTPSession([FakeResponse(200, {"access_token": "a2", "refresh_token": "r2"})])
    auth = _manager(twitch_config, store, session, prompt=_approving_prompt())

    with pytest.raises(TransportFailure):
        auth.authorize()

    assert store.load() is None


def test_refresh_persists_new_tokens(twitch_config):
    store = _stored(twitch_config, timedelta(seconds=30))
    session = FakeHTTPSession([token_response(access="a2", refresh="r2", expires_in=14400)])
    auth = _manager(twitch_config, store, session)

    credential = auth.current_credential()

    assert credential.access_token == "a2"
    assert credential.refresh_token == "r2"
    assert credential.expires_at == NOW + timedelta(hours=4)
    assert store.load().access_token == "a2"
    sent = session.calls[0]["data"]
    assert sent["grant_type"] == "refresh_token"
    assert sent["refresh_token"] == "r1"
    assert sent["client_id"] == "cid"


def test_refresh_keeps_old_refresh_token_when_none_returned(twitch_config):
    store = _stored(twitch_config, timedelta(seconds=0))
    session = FakeHTTPSession([FakeResponse(200, {"access_token": "a2", "expires_in": 3600})])
    auth = _manager(twitch_config, store, session)

    assert auth.current_credential().refresh_token == "r1"


def test_concurrent_callers_share_a_single_refresh(twitch_config):
    store = _stored(twitch_config, timedelta(seconds=10))

    def slow_token_endpoint(method, url, **kwargs):
        time.sleep(0.1)
        return token_response()

    session = FakeHTTPSession(handler=slow_token_endpoint)
    auth = _manager(twitch_config, store, session)
    barrier = threading.Barrier(8)
    results = []

    def worker():
        barrier.wait()
        results.append(auth.current_credential())

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5)

    assert len(session.calls) == 1
    assert auth.refresh_count == 1
    assert len(results) == 8
    assert all(result == results[0] for result in results)
    assert results[0].access_token == "a2"


def test_rejected_refresh_token_is_revoked_without_retry(twitch_config):
    store = _stored(twitch_config, timedelta(seconds=0))
    session = FakeHTTPSession([FakeResponse(400, {"status": 400, "message": "Invalid refresh token"})])
    sleeps = []
    auth = _manager(twitch_config, store, session, sleeps=sleeps)

    with pytest.raises(RefreshRevoked):
        auth.current_credential()

    assert len(session.calls) == 1
    assert sleeps == []
    assert store.load() is None


def test_transport_failures_are_retried_then_reported(twitch_config):
    store = _stored(twitch_config, timedelta(seconds=0))
    session = FakeHTTPSession([
        requests.ConnectionError("network down"),
        FakeResponse(503, {"message": "unavailable"}),
        requests.Timeout("timed out"),
    ])
    sleeps = []
    auth = _manager(twitch_config, store, session, sleeps=sleeps)

    with pytest.raises(RefreshFailed):
        auth.current_credential()

    assert len(session.calls) == twitch_config.max_refresh_attempts
    assert sleeps == [1.0, 2.0]
    assert store.load() is not None


def test_transient_failure_then_success(twitch_config):
    store = _stored(twitch_config, timedelta(seconds=0))
    session = FakeHTTPSession([requests.ConnectionError("blip"), token_response()])
    sleeps = []
    auth = _manager(twitch_config, store, session, sleeps=sleeps)

    assert auth.current_credential().access_token == "a2"
    assert sleeps == [1.0]


def test_revocation_notice_forces_reauthorization(twitch_config):
    store = _stored(twitch_config, timedelta(hours=2))
    session = FakeHTTPSession([token_response(access="fresh", refresh="fresh-r")])
    prompt = _approving_prompt()
    auth = _manager(twitch_config, store, session, prompt=prompt)
    auth.current_credential()

    auth.on_revocation_notice()

    assert auth.is_revoked
    with pytest.raises(RefreshRevoked):
        auth.current_credential()
    assert session.calls == []
    assert store.load() is None

    credential = auth.authorize()

    assert credential.access_token == "fresh"
    assert auth.exchange_count == 1
    assert len(prompt.seen) == 1
    assert session.calls[0]["data"]["grant_type"] == "authorization_code"
    assert session.calls[0]["data"]["code"] == "auth-code"
    assert auth.current_credential().access_token == "fresh"
    assert store.load().access_token == "fresh"


def test_authorize_reuses_valid_stored_credential(twitch_config):
    store = _stored(twitch_config, timedelta(hours=2))
    session = FakeHTTPSession([])
    auth = _manager(twitch_config, store, session)

    assert auth.authorize().access_token == "a1"
    assert auth.exchange_count == 0


def test_authorize_without_storage_runs_code_exchange(twitch_config):
    store = CredentialStore(twitch_config.token_storage_path)
    session = FakeHTTPSession([token_response(access="first")])
    prompt = _approving_prompt()
    auth = _manager(twitch_config, store, session, prompt=prompt)

    credential = auth.authorize()

    assert credential.access_token == "first"
    query = urllib.parse.parse_qs(urllib.parse.urlparse(prompt.seen[0]).query)
    assert query["scope"] == ["channel:read:redemptions"]
    assert query["response_type"] == ["code"]
    assert query["redirect_uri"] == ["http://localhost/"]


def test_user_declining_consent_raises_user_declined(twitch_config):
    store = CredentialStore(twitch_config.token_storage_path)

    def decline(auth_url):
        return "http://localhost/?error=access_denied&error_description=The+user+denied+you+access&state=x"

    auth = _manager(twitch_config, store, FakeHTTPSession([]), prompt=decline)

    with pytest.raises(UserDeclined):
        auth.authorize()
    assert store.load() is None


def test_state_mismatch_is_refused(twitch_config):
    store = CredentialStore(twitch_config.token_storage_path)
    session = FakeHTTPSession([])
    auth = _manager(twitch_config, store, session, prompt=lambda url: "http://localhost/?code=abc&state=forged")

    with pytest.raises(AuthError) as excinfo:
        auth.authorize()

    assert not isinstance(excinfo.value, UserDeclined)
    assert session.calls == []


def test_rejected_code_exchange_is_user_declined(twitch_config):
    store = CredentialStore(twitch_config.token_storage_path)
    session = FakeHTTPSession([FakeResponse(400, {"status": 400, "message": "Invalid authorization code"})])
    auth = _manager(twitch_config, store, session, prompt=_approving_prompt())

    with pytest.raises(UserDeclined):
        auth.authorize()


def test_force_refresh_skips_network_when_already_replaced(twitch_config):
    store = _stored(twitch_config, timedelta(hours=2))
    session = FakeHTTPSession([token_response()])
    auth = _manager(twitch_config, store, session)
    stale = Credential(access_token="old", refresh_token="r0", expires_at=NOW)

    assert auth.force_refresh(stale).access_token == "a1"
    assert session.calls == []

    assert auth.force_refresh(auth.current_credential()).access_token == "a2"
    assert len(session.calls) == 1


def test_validate_rejection_marks_token_for_refresh(twitch_config):
    store = _stored(twitch_config, timedelta(hours=2))
    session = FakeHTTPSession([
        FakeResponse(401, {"status": 401, "message": "invalid access token"}),
        token_response(access="a2"),
    ])
    auth = _manager(twitch_config, store, session)

    assert auth.validate() is None
    assert session.calls[0]["headers"]["Authorization"] == "OAuth a1"
    assert auth.current_credential().access_token == "a2"


def test_validate_returns_token_info(twitch_config):
    store = _stored(twitch_config, timedelta(hours=2))
    info = {"client_id": "cid", "login": "streamer", "user_id": "1337", "expires_in": 7000, "scopes": []}
    auth = _manager(twitch_config, store, FakeHTTPSession([FakeResponse(200, info)]))

    assert auth.validate()["login"] == "streamer"
