"""
Audio output through pygame's mixer.
"""
import os
import threading
import time
from pathlib import Path

os.environ.setdefault('PYGAME_HIDE_SUPPORT_PROMPT', '1')
import pygame

from utils import setup_logger
from utils.errors import DecodeFailure, PlaybackError


logger = setup_logger(__name__)


class PygameAudioSink:
    """
    Plays sound files to completion on the default output device.

    Each play() call gets its own mixer channel, so calls from different
    threads overlap instead of queueing behind each other.
    """

    def __init__(self, channels: int = 32, poll_interval: float = 0.05):
        self.channels = channels
        self.poll_interval = poll_interval
        self._init_lock = threading.Lock()
        self._initialized = False

    def _ensure_mixer(self) -> None:
        with self._init_lock:
            if self._initialized:
                return
            try:
                pygame.mixer.init()
            except pygame.error as e:
                raise PlaybackError(f"No audio output device available: {e}") from e
            pygame.mixer.set_num_channels(self.channels)
            self._initialized = True
            logger.debug(f"Mixer initialized with {self.channels} channels")

    def play(self, path: Path) -> None:
        """
        Decode and play one file, blocking until it finishes.

        Raises:
            DecodeFailure: File missing or not decodable
            PlaybackError: No device or no free channel
        """
        self._ensure_mixer()
        try:
            sound = pygame.mixer.Sound(str(path))
        except (pygame.error, OSError) as e:
            raise DecodeFailure(f"Failed to decode sound file {path}: {e}") from e

        channel = sound.play()
        if channel is None:
            raise PlaybackError(f"No free mixer channel for {path}")

        deadline = time.monotonic() + sound.get_length() + 1.0
        while channel.get_busy() and channel.get_sound() is sound and time.monotonic() < deadline:
            time.sleep(self.poll_interval)

    def close(self) -> None:
        with self._init_lock:
            if self._initialized:
                pygame.mixer.quit()
                self._initialized = False
