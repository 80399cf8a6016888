"""
Pre-flight check for the soundbot.
Verifies interpreter, packages, configuration, sounds and audio output
before the first live run.
"""
import importlib
import os
import sys
from pathlib import Path
from typing import Callable, List, NamedTuple, Optional


REQUIRED_VARS = ['CLIENT_ID', 'CLIENT_SECRET', 'REDIRECT_URI', 'BROADCASTER_ID', 'BIND_ADDRESS', 'EVENTSUB_SECRET']

# import name -> distribution name
PACKAGES = {
    'dotenv': 'python-dotenv',
    'requests': 'requests',
    'schedule': 'schedule',
    'websocket': 'websocket-client',
    'pygame': 'pygame'
}


class Check(NamedTuple):
    name: str
    run: Callable[[], bool]
    critical: bool


def _mask(value: str) -> str:
    return value[:4] + '...' if len(value) > 8 else '***'


def check_python_version() -> bool:
    print("🔍 Python version")
    major, minor, micro = sys.version_info[:3]
    if (major, minor) < (3, 9):
        print(f"   ❌ {major}.{minor} found, 3.9 or newer required")
        return False
    print(f"   ✅ {major}.{minor}.{micro}")
    return True


def check_dependencies() -> bool:
    print("\n🔍 Installed packages")
    os.environ.setdefault('PYGAME_HIDE_SUPPORT_PROMPT', '1')

    absent = []
    for module_name, distribution in PACKAGES.items():
        try:
            module = importlib.import_module(module_name)
        except ImportError:
            absent.append(distribution)
            print(f"   ❌ {distribution}")
            continue
        print(f"   ✅ {distribution} {getattr(module, '__version__', '')}".rstrip())

    if absent:
        print(f"\n   pip install {' '.join(absent)}")
    return not absent


def find_env_file() -> Optional[Path]:
    """Config file the bot would load, if any."""
    from config import default_env_path

    return next((p for p in (default_env_path(), Path('.env')) if p.exists()), None)


def check_env_file() -> bool:
    print("\n🔍 Configuration")

    env_path = find_env_file()
    if env_path is None:
        print("   ❌ No config file - create one with: python run_bot.py --setup")
        return False

    from dotenv import load_dotenv

    load_dotenv(env_path)
    print(f"   📄 {env_path}")

    unset = [var for var in REQUIRED_VARS if not os.getenv(var)]
    for var in REQUIRED_VARS:
        if var in unset:
            print(f"   ❌ {var} is empty")
        else:
            print(f"   ✅ {var} = {_mask(os.getenv(var))}")
    return not unset


def check_sounds() -> bool:
    print("\n🔍 Sounds")

    from playback.resolver import SUPPORTED_EXTENSIONS, DirectorySoundResolver

    sounds_dir = Path(os.getenv('SOUNDS_DIR', 'sounds')).expanduser()
    if not sounds_dir.is_dir():
        print(f"   ❌ {sounds_dir}/ does not exist")
        print(f"   Put {', '.join(SUPPORTED_EXTENSIONS)} files named after your rewards there")
        return False

    names = sorted(DirectorySoundResolver(sounds_dir).available())
    if not names:
        print(f"   ⚠️  {sounds_dir}/ contains no playable files")
        return False

    shown = ', '.join(names[:10]) + (' ...' if len(names) > 10 else '')
    print(f"   ✅ {len(names)} sounds: {shown}")
    return True


def check_token() -> bool:
    """A missing token is fine; the bot asks for a login on first run."""
    print("\n🔍 Stored token")

    from config import TwitchConfig
    from clients.auth import CredentialStore

    credential = CredentialStore(TwitchConfig.from_env().token_storage_path).load()
    if credential is None:
        print("   ⚠️  None yet - you will be asked to log in on first run")
    elif credential.seconds_remaining() > 0:
        print(f"   ✅ Valid for {credential.seconds_remaining() / 60:.0f} more minutes")
    else:
        print("   ✅ Expired - it will be refreshed on startup")
    return True


def check_audio_device() -> bool:
    print("\n🔍 Audio output")

    import pygame

    try:
        pygame.mixer.init()
    except pygame.error as e:
        print(f"   ⚠️  Cannot open an output device: {e}")
        return False
    pygame.mixer.quit()
    print("   ✅ Output device available")
    return True


CHECKS: List[Check] = [
    Check("Python version", check_python_version, True),
    Check("Packages", check_dependencies, True),
    Check("Configuration", check_env_file, True),
    Check("Sounds", check_sounds, False),
    Check("Stored token", check_token, False),
    Check("Audio output", check_audio_device, False),
]


def main() -> int:
    print("=" * 60)
    print("🚀 TWITCH SOUNDBOT - PRE-FLIGHT")
    print("=" * 60)

    outcomes = []
    for check in CHECKS:
        try:
            passed = check.run()
        except Exception as e:
            print(f"\n   ❌ {check.name} check crashed: {e}")
            passed = False
        outcomes.append((check, passed))

    print("\n" + "=" * 60)
    for check, passed in outcomes:
        print(f"{'✅' if passed else '❌'} {check.name}")
    print("=" * 60)

    if any(check.critical and not passed for check, passed in outcomes):
        print("❌ Fix the critical items above, then run: pip install -e .")
        return 1
    if all(passed for _, passed in outcomes):
        print("✅ Ready - start with: python run_bot.py")
    else:
        print("⚠️  Usable with warnings - start with: python run_bot.py")
    return 0


if __name__ == "__main__":
    sys.exit(main())
