"""
Player coordinator for cloudsignage.

Wires one display's identity, presence, datastore mirrors and playback engine
together and owns the schedule poll.
"""

import logging
from typing import Any, Dict, Optional

from .config_manager import ConfigManager
from .datastore import Datastore
from .identity import DeviceIdentityStore
from .playback import PlaybackEngine, WaitingReason
from .presence import PresenceReporter
from .renderer import Renderer
from .state import SignageState
from .timers import TimerHandle, TimerService


class Player:
    """Runs the signage loop for a single device."""

    def __init__(
        self,
        datastore: Datastore,
        config_manager: ConfigManager,
        renderer: Renderer,
        timers: TimerService,
        identity: Optional[DeviceIdentityStore] = None,
    ):
        """
        Initialize Player.

        Args:
            datastore: Shared document store
            config_manager: ConfigManager instance
            renderer: Presentation surface
            timers: TimerService for every timer role
            identity: Local device id store (defaults to the state directory)
        """
        self.logger = logging.getLogger(__name__)
        self.datastore = datastore
        self.config_manager = config_manager
        self.renderer = renderer
        self.timers = timers
        self.identity = identity or DeviceIdentityStore()

        self.state = SignageState(datastore)
        self.presence = PresenceReporter(datastore, config_manager, timers)
        self.engine = PlaybackEngine(self.state, renderer, config_manager, timers)

        self._poll: Optional[TimerHandle] = None
        self._started = False

    def start(self):
        """Mirror the datastore and resume as the stored device, if any."""
        if self._started:
            return
        self._started = True
        self.state.start()

        device_id = self.identity.get()
        if device_id:
            self.logger.info("Resuming as device %s", device_id)
            self._run(device_id)
        else:
            self.logger.info("No device id stored, waiting for activation")
            self.renderer.show_waiting(WaitingReason.NO_DEVICE)

    def activate(self, device_id: str):
        """Persist a device id and start playing as that device."""
        self.identity.set(device_id)
        if not self._started:
            self.start()
            return
        self._stop_device()
        self._run(device_id.strip())

    def reset(self):
        """Forget the device id and go back to the registration screen."""
        self.logger.info("Resetting player identity")
        self._stop_device()
        self.identity.clear()
        self.renderer.show_waiting(WaitingReason.NO_DEVICE)

    def shutdown(self):
        """Stop every timer and subscription."""
        self._stop_device()
        self.state.stop()
        self._started = False
        self.logger.info("Player stopped")

    def get_status(self) -> Dict[str, Any]:
        return self.engine.get_status()

    def _run(self, device_id: str):
        self.presence.start(device_id)
        self.engine.attach(device_id)
        interval = self.config_manager.get_float("schedule_poll_seconds", 2.0)
        self._poll = self.timers.call_every(interval, self.engine.evaluate, name="schedule-poll")

    def _stop_device(self):
        if self._poll:
            self._poll.cancel()
            self._poll = None
        self.presence.stop()
        self.engine.detach()
