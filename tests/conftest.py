import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

ROOT = str(Path(__file__).resolve().parents[1])
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from config import TwitchConfig  # noqa: E402
from schemas import Credential  # noqa: E402


NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _isolated_config_dir(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("SOUNDBOT_CONFIG_DIR", str(tmp_path / "user-config"))


@pytest.fixture
def twitch_config(tmp_path: Path) -> TwitchConfig:
    return TwitchConfig(
        client_id="cid",
        client_secret="csecret",
        redirect_uri="http://localhost/",
        token_storage_path=tmp_path / "token.json",
        max_refresh_attempts=3,
    )


@pytest.fixture
def valid_credential() -> Credential:
    return Credential(access_token="a1", refresh_token="r1", expires_at=NOW + timedelta(hours=2))
