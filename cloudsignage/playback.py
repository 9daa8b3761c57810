"""
Playback engine for cloudsignage.

Drives the active playlist on one player: tracks the current item, arms the
advance timer, reacts to end-of-stream and content errors, and loops.
"""

import logging
import threading
from enum import Enum
from typing import Any, Dict, Optional

from .config_manager import ConfigManager
from .models import MediaItem, MediaKind, PlaybackCursor, Playlist, PlaylistItem
from .renderer import Renderer
from .scheduler import ScheduleChange, classify_change, resolve_active_playlist
from .state import SignageState
from .timers import TimerHandle, TimerService
from .youtube import classify_media


class PlaybackState(Enum):
    """Playback state enumeration."""

    NO_DEVICE = "no_device"  # No identity yet
    AWAITING_CONTENT = "awaiting_content"
    PLAYING = "playing"
    FAILED = "failed"  # Current item could not be rendered; skipping shortly


class WaitingReason:
    """Why a device in AWAITING_CONTENT has nothing to show."""

    NO_DEVICE = "no_device"
    NO_PLAYLISTS = "no_playlists"
    NOTHING_SCHEDULED = "nothing_scheduled"
    ASSIGNED_PLAYLIST_MISSING = "assigned_playlist_missing"
    EMPTY_PLAYLIST = "empty_playlist"
    MEDIA_UNAVAILABLE = "media_unavailable"


class PlaybackEngine:
    """Orchestrates playback of the scheduled playlist and manages state."""

    def __init__(
        self,
        state: SignageState,
        renderer: Renderer,
        config_manager: ConfigManager,
        timers: TimerService,
    ):
        """
        Initialize PlaybackEngine.

        Args:
            state: SignageState holding the media/playlist/device mirrors
            renderer: Renderer that presents items
            config_manager: ConfigManager instance
            timers: TimerService for the advance and failure timers
        """
        self.signage = state
        self.renderer = renderer
        self.config_manager = config_manager
        self.timers = timers

        self.logger = logging.getLogger(__name__)
        # Reentrant: a renderer may report an error from inside present()
        self.lock = threading.RLock()

        self.state = PlaybackState.NO_DEVICE
        self.device_id: Optional[str] = None
        self.cursor = PlaybackCursor()
        self.waiting_reason: Optional[str] = None
        self.advance_count = 0

        # Only one advance/failure timer is ever armed. Each presentation gets a
        # new token; callbacks carrying an older token are ignored.
        self._timer: Optional[TimerHandle] = None
        self._token = 0
        self._presented_key = None
        self._current_kind: Optional[MediaKind] = None

    # =========================================================================
    # Device lifecycle
    # =========================================================================

    def attach(self, device_id: str):
        """Start driving playback for a registered device."""
        with self.lock:
            if self.device_id == device_id and self.state != PlaybackState.NO_DEVICE:
                return
            self.logger.info("Playback engine attached to device %s", device_id)
            self._clear_timer()
            self._token += 1
            self.device_id = device_id
            self.cursor.reset()
            self._presented_key = None
            self.waiting_reason = None
            self.state = PlaybackState.AWAITING_CONTENT
            self.evaluate()

    def detach(self):
        """Stop playback, cancel timers and forget the device."""
        with self.lock:
            self._clear_timer()
            self._token += 1
            if self.state != PlaybackState.NO_DEVICE:
                self.logger.info("Playback engine detached from device %s", self.device_id)
            self.state = PlaybackState.NO_DEVICE
            self.device_id = None
            self.cursor.reset()
            self._presented_key = None
            self._current_kind = None
            self.waiting_reason = None
        self.renderer.stop()

    # =========================================================================
    # Schedule evaluation
    # =========================================================================

    def evaluate(self):
        """
        Re-resolve the active playlist and reconcile playback with it.

        Called on every schedule poll tick. Safe to call when nothing changed.
        """
        with self.lock:
            if self.state == PlaybackState.NO_DEVICE:
                return

            device = self.signage.devices.get(self.device_id)
            playlists = self.signage.playlists.all()
            target = resolve_active_playlist(
                device,
                playlists,
                self.timers.now(),
                allow_overnight=self.config_manager.get_bool("schedule_overnight_windows", False),
            )
            change = classify_change(self.cursor.playlist, target)

            if target is None:
                if device is not None and device.assigned_playlist_id:
                    reason = WaitingReason.ASSIGNED_PLAYLIST_MISSING
                elif not playlists:
                    reason = WaitingReason.NO_PLAYLISTS
                else:
                    reason = WaitingReason.NOTHING_SCHEDULED
                if change == ScheduleChange.IDENTITY_CHANGED:
                    self.logger.info("No active playlist for %s (%s)", self.device_id, reason)
                self.cursor.reset()
                self._enter_waiting(reason)
                return

            if change == ScheduleChange.IDENTITY_CHANGED:
                self.logger.info(
                    "Active playlist for %s is now '%s' (%s)", self.device_id, target.name, target.id
                )
                self.cursor.reset(target)
                self._presented_key = None
                self._play_current()
                return

            if change == ScheduleChange.CONTENT_CHANGED:
                self.logger.info("Playlist '%s' content updated", target.name)
                if self.cursor.index >= len(target.items):
                    self.cursor.index = 0

            self.cursor.playlist = target
            self._reconcile()

    def _reconcile(self):
        """Restart the current item only if what it resolves to has changed."""
        if self.state == PlaybackState.FAILED:
            return  # The failure timer always wins
        if self.state == PlaybackState.PLAYING and self._current_key() == self._presented_key:
            return
        self._play_current()

    # =========================================================================
    # Presentation
    # =========================================================================

    def _play_current(self):
        playlist = self.cursor.playlist
        if playlist is None:
            return
        if not playlist.items:
            self._enter_waiting(WaitingReason.EMPTY_PLAYLIST)
            return
        if not any(self.signage.media.get(item.media_id) for item in playlist.items):
            self._enter_waiting(WaitingReason.MEDIA_UNAVAILABLE)
            return

        item = self.cursor.current_item()
        media = self.signage.media.get(item.media_id)

        self._clear_timer()
        self._token += 1
        token = self._token
        self.state = PlaybackState.PLAYING
        self.cursor.failed = False
        self.waiting_reason = None
        self._presented_key = self._current_key()

        if media is None:
            self._current_kind = None
            self._fail(f"media {item.media_id} no longer exists")
            return

        kind = classify_media(media)
        self._current_kind = kind
        self.logger.debug(
            "Playing item %s/%s of '%s': %s",
            self.cursor.index + 1,
            len(playlist.items),
            playlist.name,
            media.name,
        )

        # Direct video advances on end-of-stream; images and YouTube embeds on a timer
        if kind in (MediaKind.IMAGE, MediaKind.YOUTUBE):
            self._arm(self._item_duration(item, media), token, self._on_advance_timer, "advance")

        try:
            self.renderer.present(
                media,
                kind,
                on_finished=lambda: self.on_finished(token),
                on_error=lambda reason: self.on_error(token, reason),
            )
        except Exception as e:
            self.logger.error("Renderer failed to present %s: %s", media.id, e, exc_info=True)
            self._fail(str(e))

    def _item_duration(self, item: PlaylistItem, media: MediaItem) -> int:
        return item.duration or media.duration or self.config_manager.get_int(
            "default_image_seconds", 10
        )

    def _current_key(self):
        """Everything about the current item that requires a restart when it changes."""
        item = self.cursor.current_item()
        if item is None:
            return None
        media = self.signage.media.get(item.media_id)
        if media is None:
            return (self.cursor.index, item.media_id, None)
        kind = classify_media(media)
        # Direct video is paced by end-of-stream, so its duration never restarts it
        duration = None if kind == MediaKind.VIDEO_FILE else self._item_duration(item, media)
        return (self.cursor.index, item.media_id, kind, media.url, duration)

    def _enter_waiting(self, reason: str):
        if self.state == PlaybackState.AWAITING_CONTENT and self.waiting_reason == reason:
            return
        self._clear_timer()
        self._token += 1
        self.state = PlaybackState.AWAITING_CONTENT
        self.waiting_reason = reason
        self._presented_key = None
        self._current_kind = None
        self.renderer.show_waiting(reason, self.device_id)

    # =========================================================================
    # Advancing
    # =========================================================================

    def _advance(self):
        playlist = self.cursor.playlist
        if playlist is None or not playlist.items:
            self._enter_waiting(WaitingReason.EMPTY_PLAYLIST)
            return
        self.cursor.index = (self.cursor.index + 1) % len(playlist.items)
        self.cursor.failed = False
        self.advance_count += 1
        self._play_current()

    def _on_advance_timer(self, token: int):
        with self.lock:
            if token != self._token or self.state != PlaybackState.PLAYING:
                return
            self._advance()

    def on_finished(self, token: int):
        """Renderer callback: a direct video reached end-of-stream."""
        with self.lock:
            if token != self._token or self.state != PlaybackState.PLAYING:
                self.logger.debug("Ignoring stale end-of-stream")
                return
            if self._current_kind != MediaKind.VIDEO_FILE:
                self.logger.debug("Ignoring end-of-stream for %s", self._current_kind)
                return
            self._advance()

    def on_error(self, token: int, reason: str):
        """Renderer callback: the current item cannot be loaded or played."""
        with self.lock:
            if token != self._token or self.state != PlaybackState.PLAYING:
                self.logger.debug("Ignoring stale content error: %s", reason)
                return
            self._fail(reason)

    def _fail(self, reason: str):
        """Enter FAILED and skip to the next item after the fallback delay."""
        self.logger.warning(
            "Content error on item %s of playlist %s: %s",
            self.cursor.index,
            self.cursor.playlist_id,
            reason,
        )
        self._clear_timer()
        self.state = PlaybackState.FAILED
        self.cursor.failed = True
        delay = self.config_manager.get_int("failure_skip_seconds", 3)
        self._arm(delay, self._token, self._on_failure_timer, "failure-skip")

    def _on_failure_timer(self, token: int):
        with self.lock:
            if token != self._token or self.state != PlaybackState.FAILED:
                return
            self._advance()

    def _arm(self, delay: float, token: int, callback, name: str):
        self._clear_timer()
        self._timer = self.timers.call_later(delay, lambda: callback(token), name=name)

    def _clear_timer(self):
        if self._timer:
            self._timer.cancel()
            self._timer = None

    # =========================================================================
    # Status
    # =========================================================================

    @property
    def active_playlist(self) -> Optional[Playlist]:
        return self.cursor.playlist

    def get_status(self) -> Dict[str, Any]:
        """
        Get current playback status.

        Returns:
            Dictionary with state, playlist, index and current media info
        """
        with self.lock:
            playlist = self.cursor.playlist
            item = self.cursor.current_item() if self.state != PlaybackState.AWAITING_CONTENT else None
            return {
                "state": self.state.value,
                "device_id": self.device_id,
                "playlist_id": playlist.id if playlist else None,
                "playlist_name": playlist.name if playlist else None,
                "index": self.cursor.index,
                "media_id": item.media_id if item else None,
                "media_kind": self._current_kind.value if self._current_kind else None,
                "failed": self.cursor.failed,
                "waiting_reason": self.waiting_reason,
                "advance_count": self.advance_count,
            }
