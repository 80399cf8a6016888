"""
Sound resolver.
Maps reward titles to sound files in the sounds directory.
"""
import threading
from pathlib import Path
from typing import Dict, Optional, Tuple

from utils import setup_logger


logger = setup_logger(__name__)

SUPPORTED_EXTENSIONS = ('.mp3', '.wav', '.ogg', '.flac')


def normalize_title(text: str) -> str:
    """Case-folded, with whitespace trimmed and collapsed to single spaces."""
    return ' '.join(str(text).split()).casefold()


def resource_name(path: Path) -> str:
    """Resource name of a sound file: its file name up to the first dot."""
    return path.name.split('.', 1)[0]


class DirectorySoundResolver:
    """
    Resolves titles against the files of one directory.

    The directory listing is cached and rescanned when the directory's
    modification time changes. When several files share a normalized name
    (e.g. `Airhorn.mp3` and `airhorn.wav`) the first file name in ordinal
    order wins.
    """

    def __init__(self, sounds_dir: Path, extensions: Tuple[str, ...] = SUPPORTED_EXTENSIONS):
        """
        Initialize resolver.

        Args:
            sounds_dir: Directory holding the sound files
            extensions: Accepted file extensions (lower case, with dot)
        """
        self.sounds_dir = Path(sounds_dir)
        self.extensions = tuple(e.lower() for e in extensions)
        self._lock = threading.Lock()
        self._index: Dict[str, Path] = {}
        self._scanned_mtime: Optional[int] = None
        self._missing_reported = False

    def resolve(self, title: str) -> Optional[Path]:
        """
        Find the sound for a reward title.

        Args:
            title: Reward title as shown on Twitch

        Returns:
            Path of the matching file or None
        """
        key = normalize_title(title)
        if not key:
            return None
        return self.available().get(key)

    def available(self) -> Dict[str, Path]:
        """Normalized resource name -> file, rescanning if the directory changed."""
        with self._lock:
            try:
                mtime = self.sounds_dir.stat().st_mtime_ns
            except OSError:
                if not self._missing_reported:
                    logger.warning(f"Sounds directory not found: {self.sounds_dir}")
                    self._missing_reported = True
                self._index = {}
                self._scanned_mtime = None
                return {}

            self._missing_reported = False
            if mtime != self._scanned_mtime:
                self._index = self._scan()
                self._scanned_mtime = mtime
            return dict(self._index)

    def refresh(self) -> int:
        """Force a rescan. Returns the number of available sounds."""
        with self._lock:
            self._scanned_mtime = None
        return len(self.available())

    def _scan(self) -> Dict[str, Path]:
        index: Dict[str, Path] = {}
        files = sorted(
            (p for p in self.sounds_dir.iterdir() if p.is_file() and p.suffix.lower() in self.extensions),
            key=lambda p: p.name
        )
        for path in files:
            key = normalize_title(resource_name(path))
            if not key:
                continue
            if key in index:
                logger.warning(f"Sound name '{key}' is ambiguous: using {index[key].name}, ignoring {path.name}")
                continue
            index[key] = path

        logger.info(f"Found {len(index)} sounds in {self.sounds_dir}")
        return index
