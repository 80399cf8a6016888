"""
Playback package.
Resolves reward titles to sound files and plays them concurrently.
"""
from .engine import PlaybackEngine
from .resolver import DirectorySoundResolver, normalize_title

__all__ = [
    'PlaybackEngine',
    'DirectorySoundResolver',
    'normalize_title'
]
