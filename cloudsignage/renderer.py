"""
Presentation surfaces for cloudsignage players.

The playback engine only asks a renderer to present an item and listens for
on_finished (direct video) and on_error (any kind). How pixels get drawn is
the renderer's business.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Optional

from .models import MediaItem, MediaKind
from .timers import TimerHandle, TimerService
from .youtube import probe_url

FinishedCallback = Callable[[], None]
ErrorCallback = Callable[[str], None]

# Used by the headless renderer when a direct video has no known length
DEFAULT_VIDEO_SECONDS = 30


class Renderer(ABC):
    """Abstract presentation surface."""

    @abstractmethod
    def present(
        self,
        media: MediaItem,
        kind: MediaKind,
        on_finished: FinishedCallback,
        on_error: ErrorCallback,
    ):
        """
        Begin presenting a media item, replacing whatever is on screen.

        on_finished is only meaningful for direct video files; on_error may be
        called for any kind. Either may be called from another thread.
        """
        ...

    @abstractmethod
    def show_waiting(self, reason: str, device_id: Optional[str] = None):
        """Show the idle screen explaining why nothing is playing."""
        ...

    @abstractmethod
    def stop(self):
        """Clear the screen and drop any in-flight presentation."""
        ...


class HeadlessRenderer(Renderer):
    """
    Renderer for unattended and headless players.

    Logs what would be on screen. Direct videos "finish" after their probed
    length (or the media's configured duration), and unreachable content is
    reported through on_error when probing is enabled.
    """

    def __init__(self, timers: TimerService, probe: bool = False):
        """
        Initialize HeadlessRenderer.

        Args:
            timers: TimerService used to simulate end-of-stream
            probe: Resolve video URLs with yt-dlp before presenting them
        """
        self.timers = timers
        self.probe = probe
        self.logger = logging.getLogger(__name__)
        self.current: Optional[MediaItem] = None
        self.waiting_reason: Optional[str] = None
        self._finish_handle: Optional[TimerHandle] = None
        self._generation = 0
        self._lock = threading.Lock()

    def present(self, media, kind, on_finished, on_error):
        with self._lock:
            self._cancel_finish()
            self._generation += 1
            generation = self._generation
            self.current = media
            self.waiting_reason = None

        self.logger.info("Presenting %s '%s' (%s)", kind.value, media.name, media.id)

        if not media.url:
            on_error("media has no content")
            return

        if kind == MediaKind.IMAGE:
            return

        if self.probe:
            thread = threading.Thread(
                target=self._probe_and_play,
                args=(media, kind, generation, on_finished, on_error),
                daemon=True,
                name="MediaProbe",
            )
            thread.start()
        elif kind == MediaKind.VIDEO_FILE:
            self._schedule_finish(generation, media.duration or DEFAULT_VIDEO_SECONDS, on_finished)

    def _probe_and_play(self, media, kind, generation, on_finished, on_error):
        try:
            info = probe_url(media.url)
        except Exception as e:
            self.logger.warning("Could not load %s (%s): %s", media.name, media.url, e)
            if generation == self._generation:
                on_error(str(e))
            return

        if kind == MediaKind.VIDEO_FILE:
            length = info.get("duration_seconds") or media.duration or DEFAULT_VIDEO_SECONDS
            self._schedule_finish(generation, length, on_finished)

    def _schedule_finish(self, generation: int, seconds: float, on_finished: FinishedCallback):
        with self._lock:
            if generation != self._generation:
                return
            self._finish_handle = self.timers.call_later(
                seconds, on_finished, name="renderer-finish"
            )

    def _cancel_finish(self):
        if self._finish_handle:
            self._finish_handle.cancel()
            self._finish_handle = None

    def show_waiting(self, reason, device_id=None):
        with self._lock:
            self._cancel_finish()
            self._generation += 1
            self.current = None
            self.waiting_reason = reason
        self.logger.info("Waiting screen for %s: %s", device_id or "unregistered device", reason)

    def stop(self):
        with self._lock:
            self._cancel_finish()
            self._generation += 1
            self.current = None
        self.logger.info("Renderer stopped")
