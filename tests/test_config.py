import os
from pathlib import Path

import pytest

from config import AppConfig, TwitchConfig, get_config, reset_config
from config.setup_wizard import generate_feed_secret, run_setup

CONFIG_VARS = [
    "CLIENT_ID", "CLIENT_SECRET", "REDIRECT_URI", "BROADCASTER_ID", "BIND_ADDRESS",
    "EVENTSUB_SECRET", "SOUNDS_DIR", "TOKEN_PATH", "LOG_LEVEL", "KEEPALIVE_TIMEOUT_SECONDS",
    "KEEPALIVE_GRACE_FACTOR", "REFRESH_MARGIN_SECONDS", "EVENTSUB_URL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in CONFIG_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()
    # load_dotenv writes straight into os.environ
    for name in CONFIG_VARS:
        os.environ.pop(name, None)


def _write_env(path: Path, **values) -> Path:
    base = {
        "CLIENT_ID": "cid",
        "CLIENT_SECRET": "csecret",
        "BROADCASTER_ID": "streamer",
        "EVENTSUB_SECRET": "s" * 32,
    }
    base.update(values)
    path.write_text("".join(f"{k}={v}\n" for k, v in base.items() if v is not None))
    return path


def test_load_from_env_file_applies_defaults(tmp_path):
    env = _write_env(tmp_path / ".env", SOUNDS_DIR=str(tmp_path / "sounds"))

    config = AppConfig.load(str(env))

    assert config.twitch.client_id == "cid"
    assert config.twitch.redirect_uri == "http://localhost/"
    assert config.twitch.scopes == "channel:read:redemptions"
    assert config.twitch.refresh_margin_seconds == 60.0
    assert config.bot.target_id == "streamer"
    assert config.bot.bind_address == "127.0.0.1:17564"
    assert config.bot.sounds_dir == tmp_path / "sounds"
    assert config.env_file == env


def test_missing_required_value_is_rejected(tmp_path):
    env = _write_env(tmp_path / ".env", BROADCASTER_ID=None)

    with pytest.raises(ValueError, match="BROADCASTER_ID"):
        AppConfig.load(str(env))


def test_missing_env_file_is_rejected(tmp_path):
    with pytest.raises(ValueError):
        AppConfig.load(str(tmp_path / "nope.env"))


def test_refresh_margin_never_drops_below_a_minute(tmp_path):
    env = _write_env(tmp_path / ".env", REFRESH_MARGIN_SECONDS="5")

    assert AppConfig.load(str(env)).twitch.refresh_margin_seconds == 60.0


def test_grace_factor_out_of_range(tmp_path):
    env = _write_env(tmp_path / ".env", KEEPALIVE_GRACE_FACTOR="5")

    with pytest.raises(ValueError):
        AppConfig.load(str(env))


def test_per_user_config_file_is_found(tmp_path, monkeypatch):
    config_home = tmp_path / "home-config"
    config_home.mkdir()
    monkeypatch.setenv("SOUNDBOT_CONFIG_DIR", str(config_home))
    _write_env(config_home / ".env")

    config = get_config()

    assert config.env_file == config_home / ".env"
    assert config.twitch.token_storage_path == config_home / "token.json"
    assert get_config() is config


def test_secrets_are_not_in_repr(twitch_config):
    assert "csecret" not in repr(twitch_config)
    assert isinstance(twitch_config, TwitchConfig)


def test_setup_wizard_writes_env_file(tmp_path):
    answers = iter(["my-client", "my-secret", "", "streamer", ""])
    target = tmp_path / "cfg" / ".env"

    written = run_setup(target, prompt=lambda label: next(answers))

    lines = dict(line.split("=", 1) for line in written.read_text().splitlines())
    assert lines["CLIENT_ID"] == "my-client"
    assert lines["REDIRECT_URI"] == "http://localhost/"
    assert lines["BIND_ADDRESS"] == "127.0.0.1:17564"
    assert len(lines["EVENTSUB_SECRET"]) == 32
    config = AppConfig.load(str(written))
    assert config.bot.target_id == "streamer"


def test_setup_wizard_requires_credentials(tmp_path):
    answers = iter(["", "", "", "", ""])

    with pytest.raises(ValueError):
        run_setup(tmp_path / ".env", prompt=lambda label: next(answers))
    assert not (tmp_path / ".env").exists()


def test_generated_secret_is_alphanumeric():
    secret = generate_feed_secret()
    assert len(secret) == 32
    assert secret.isalnum()
    assert generate_feed_secret() != secret
