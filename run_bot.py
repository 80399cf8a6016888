"""
Twitch channel-point soundbot.
Plays a sound whenever a channel-point reward with a matching name is redeemed.
"""
import argparse
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, List, Optional

from config import AppConfig, default_env_path, get_config
from config.setup_wizard import run_setup
from clients import SubscriptionRegistrar, TwitchAPIClient
from clients.auth import AuthManager, CredentialStore
from eventsub import FeedSession
from handlers import RedemptionDispatcher
from playback import DirectorySoundResolver, PlaybackEngine
from scheduler import TokenValidationScheduler
from schemas import EventType
from utils import APIError, compute_backoff, configure_logging, setup_logger
from utils.errors import AuthError, RefreshFailed, RefreshRevoked, SessionError, TransportFailure


logger = setup_logger(__name__)

EVENT_TYPES = frozenset({EventType.REDEMPTION_ADD})

# A session that stayed up this long resets the restart backoff
STABLE_SESSION_SECONDS = 60.0


@dataclass
class Bot:
    """Wired components of one bot process."""
    config: AppConfig
    auth: AuthManager
    api: TwitchAPIClient
    registrar: SubscriptionRegistrar
    engine: PlaybackEngine
    dispatcher: RedemptionDispatcher
    validator: TokenValidationScheduler
    sink: Any = None
    session: Optional[FeedSession] = None
    target_id: str = ''
    event_types: frozenset = field(default=EVENT_TYPES)

    def new_session(self) -> FeedSession:
        bot_config = self.config.bot
        self.session = FeedSession(
            auth=self.auth,
            registrar=self.registrar,
            target_id=self.target_id,
            event_types=self.event_types,
            on_notification=self.dispatcher.on_notification,
            ws_url=bot_config.eventsub_url,
            keepalive_timeout_seconds=bot_config.keepalive_timeout_seconds,
            grace_factor=bot_config.grace_factor,
            connect_timeout=bot_config.connect_timeout,
            max_reconnect_attempts=bot_config.max_reconnect_attempts
        )
        return self.session

    def shutdown(self) -> None:
        logger.info("Shutting down...")
        if self.session is not None:
            self.session.stop()
        self.validator.stop()
        self.engine.shutdown(wait=True)
        if self.sink is not None and hasattr(self.sink, 'close'):
            self.sink.close()


def build_bot(config: AppConfig, sink: Any = None) -> Bot:
    """Create and wire every component from configuration."""
    if sink is None:
        from playback.sink import PygameAudioSink
        sink = PygameAudioSink()

    auth = AuthManager(
        config.twitch,
        store=CredentialStore(config.twitch.token_storage_path),
        retry_delay=config.retry_delay
    )
    api = TwitchAPIClient(config.twitch, auth, max_retries=config.max_retries, retry_delay=config.retry_delay)
    registrar = SubscriptionRegistrar(api)
    engine = PlaybackEngine(
        DirectorySoundResolver(config.bot.sounds_dir),
        sink,
        max_workers=config.bot.playback_workers
    )
    return Bot(
        config=config,
        auth=auth,
        api=api,
        registrar=registrar,
        engine=engine,
        dispatcher=RedemptionDispatcher(engine),
        validator=TokenValidationScheduler(auth),
        sink=sink
    )


def resolve_target_id(api: TwitchAPIClient, target: str) -> str:
    """Numeric broadcaster id for a configured login name or id."""
    target = target.strip()
    if target.isdigit():
        return target
    user_id = api.get_user_id(target)
    logger.info(f"Numeric broadcaster ID for {target}: {user_id}")
    return user_id


def run_forever(bot: Bot, sleep: Callable[[float], None] = time.sleep,
                clock: Callable[[], float] = time.monotonic) -> int:
    """
    Keep a feed session running, restarting it with backoff when it ends.

    Returns:
        0 after a clean stop
    """
    attempt = 0
    while True:
        session = bot.new_session()
        started = clock()
        try:
            session.run()
            return 0
        except RefreshRevoked as e:
            logger.warning(f"⚠️  {e} - starting authorization")
            bot.auth.authorize()
        except SessionError as e:
            logger.error(f"❌ Feed session ended: {e}")
        except (RefreshFailed, TransportFailure) as e:
            logger.error(f"❌ Could not refresh credentials: {e}")

        if clock() - started >= STABLE_SESSION_SECONDS:
            attempt = 0
        delay = compute_backoff(attempt, 1.0, 60.0)
        attempt += 1
        logger.info(f"Restarting feed session in {delay:.1f}s...")
        sleep(delay)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Play sounds for Twitch channel-point redemptions")
    parser.add_argument('--env-file', help="Path to the .env config file")
    parser.add_argument('--setup', action='store_true', help="Run the interactive setup and exit")
    parser.add_argument('--log-level', help="DEBUG, INFO, WARNING, ERROR")
    return parser.parse_args(argv)


def ensure_config_file(args: argparse.Namespace) -> Optional[str]:
    """Run first-time setup when asked to, or when no config exists and a user is present."""
    if args.setup:
        return str(run_setup(Path(args.env_file) if args.env_file else None))
    if args.env_file:
        return args.env_file
    if not default_env_path().exists() and not Path('.env').exists() and sys.stdin.isatty():
        return str(run_setup())
    return None


def main(argv: Optional[List[str]] = None) -> int:
    """Main bot execution."""
    args = parse_args(argv)
    if args.log_level:
        configure_logging(args.log_level)

    try:
        env_file = ensure_config_file(args)
        if args.setup:
            return 0
        config = get_config(env_file)
    except ValueError as e:
        logger.error(f"❌ Configuration error: {e}")
        return 2

    if not args.log_level:
        configure_logging(config.log_level)
    logger.info("=" * 60)
    logger.info("🚀 TWITCH SOUNDBOT")
    logger.info(f"   Sounds: {config.bot.sounds_dir}")
    logger.info("=" * 60)

    bot = build_bot(config)
    try:
        bot.auth.authorize()
        bot.target_id = resolve_target_id(bot.api, config.bot.target_id)
        bot.validator.start()
        return run_forever(bot)
    except KeyboardInterrupt:
        return 0
    except (AuthError, APIError) as e:
        logger.error(f"❌ {e}")
        return 1
    finally:
        bot.shutdown()


if __name__ == "__main__":
    sys.exit(main())
