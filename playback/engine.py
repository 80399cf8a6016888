"""
Playback engine.
Resolves redemptions to sounds and plays each on its own worker.
"""
import time
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Optional

from schemas import PlaybackTask, RedemptionEvent, utc_now
from utils import setup_logger
from utils.errors import DecodeFailure, NoMatch, PlaybackError
from .resolver import DirectorySoundResolver


logger = setup_logger(__name__)


class PlaybackEngine:
    """
    Turns redemption events into overlapping playback tasks.

    trigger() only resolves the title and posts the task to a worker pool;
    it never waits for audio. Tasks share nothing but the read-only sound
    file, run to completion, and are never retried or cancelled.
    """

    def __init__(
        self,
        resolver: DirectorySoundResolver,
        sink: Any,
        max_workers: int = 16,
        on_finished: Optional[Callable[[PlaybackTask, Optional[BaseException]], None]] = None
    ):
        """
        Initialize engine.

        Args:
            resolver: Title -> sound file lookup
            sink: Object with play(path) that blocks until playback ends
            max_workers: Sounds that can play at the same time
            on_finished: Called with each task and its error (None on success)
        """
        self.resolver = resolver
        self.sink = sink
        self.on_finished = on_finished
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='playback')

    def trigger(self, event: RedemptionEvent) -> Optional[Future]:
        """
        Start playback for a redemption if a sound matches its reward title.

        Returns:
            Future of the running task, or None when nothing was started
        """
        try:
            sound_path = self._resolve(event.reward_title)
        except NoMatch as e:
            logger.info(str(e))
            return None

        task = PlaybackTask(sound_path=sound_path, reward_title=event.reward_title)
        try:
            return self._executor.submit(self._run, task)
        except RuntimeError:
            logger.warning(f"Playback engine shut down, not playing {sound_path.name}")
            return None

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting tasks; optionally wait for in-flight sounds."""
        self._executor.shutdown(wait=wait)

    def _resolve(self, title: str) -> Path:
        sound_path = self.resolver.resolve(title)
        if sound_path is None:
            raise NoMatch(f"No matching sound for reward: {title}")
        return sound_path

    def _run(self, task: PlaybackTask) -> PlaybackTask:
        task.started_at = utc_now()
        started = time.monotonic()
        error: Optional[BaseException] = None
        logger.info(f"🔊 Playing {task.sound_path.name}")

        try:
            self.sink.play(task.sound_path)
        except DecodeFailure as e:
            error = e
            logger.error(f"❌ {e}")
        except PlaybackError as e:
            error = e
            logger.error(f"❌ Playback failed for {task.sound_path.name}: {e}")
        except Exception as e:
            error = e
            logger.exception(f"❌ Unexpected playback error for {task.sound_path.name}")
        else:
            logger.debug(f"Finished {task.sound_path.name} in {time.monotonic() - started:.2f}s")

        if self.on_finished is not None:
            try:
                self.on_finished(task, error)
            except Exception:
                logger.exception("Playback completion listener failed")
        return task
