"""
Presence reporting for cloudsignage players.

Registers the device in the shared registry and keeps its lastPing fresh.
Whether a device is online is never stored authoritatively; it is derived
from how recent lastPing is.
"""

import logging
from typing import Optional

from .config_manager import ConfigManager
from .datastore import DEVICES, Datastore
from .models import STATUS_ONLINE, ScreenDevice
from .timers import TimerHandle, TimerService


def is_device_online(device: ScreenDevice, now_ms: int, offline_after_seconds: int = 60) -> bool:
    """Liveness is now - lastPing < threshold."""
    if not device.last_ping:
        return False
    return now_ms - device.last_ping < offline_after_seconds * 1000


class PresenceReporter:
    """Registers one device and sends periodic heartbeats."""

    def __init__(self, datastore: Datastore, config_manager: ConfigManager, timers: TimerService):
        self.datastore = datastore
        self.config_manager = config_manager
        self.timers = timers
        self.logger = logging.getLogger(__name__)
        self.device_id: Optional[str] = None
        self._heartbeat: Optional[TimerHandle] = None

    def register(self, device_id: str) -> bool:
        """
        Create the device document, or mark an existing one online.

        An existing document only has status and lastPing touched, so the
        operator's name, location and assignment survive a player restart.

        Returns:
            True if the datastore accepted the write
        """
        now = self.timers.epoch_ms()
        try:
            existing = self.datastore.get(DEVICES, device_id)
            if existing is None:
                device = ScreenDevice(
                    id=device_id,
                    name=f"Device {device_id}",
                    status=STATUS_ONLINE,
                    last_ping=now,
                )
                self.datastore.set(DEVICES, device_id, device.to_dict())
                self.logger.info("Registered new device %s", device_id)
            else:
                self.datastore.patch(DEVICES, device_id, {"status": STATUS_ONLINE, "lastPing": now})
                self.logger.info("Device %s back online", device_id)
            return True
        except Exception as e:
            self.logger.error("Failed to register device %s: %s", device_id, e, exc_info=True)
            return False

    def heartbeat(self) -> bool:
        """Refresh lastPing. Failures are logged and retried on the next beat."""
        if not self.device_id:
            return False
        try:
            self.datastore.patch(
                DEVICES,
                self.device_id,
                {"lastPing": self.timers.epoch_ms(), "status": STATUS_ONLINE},
            )
            return True
        except Exception as e:
            self.logger.warning("Heartbeat for %s failed: %s", self.device_id, e)
            return False

    def start(self, device_id: str):
        """Register the device and start the heartbeat."""
        self.stop()
        self.device_id = device_id
        self.register(device_id)
        interval = self.config_manager.get_int("heartbeat_interval_seconds", 30)
        self._heartbeat = self.timers.call_every(interval, self.heartbeat, name="heartbeat")
        self.logger.info("Heartbeat every %ss for %s", interval, device_id)

    def stop(self):
        """Stop the heartbeat."""
        if self._heartbeat:
            self._heartbeat.cancel()
            self._heartbeat = None
        self.device_id = None
