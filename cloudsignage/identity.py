"""
Local device identity for cloudsignage players.

The device id is a single opaque string kept in a file under the player's
state directory so it survives restarts.
"""

import logging
from pathlib import Path
from typing import Optional, Union

from .database import default_data_directory

IDENTITY_FILENAME = "device_id"


class DeviceIdentityStore:
    """File-backed get/set/clear of the player's device id."""

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path) if path else default_data_directory() / IDENTITY_FILENAME
        self.logger = logging.getLogger(__name__)

    def get(self) -> Optional[str]:
        try:
            value = self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        return value or None

    def set(self, device_id: str):
        device_id = device_id.strip()
        if not device_id:
            raise ValueError("Device id must not be empty")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(device_id, encoding="utf-8")
        self.logger.info("Stored device id %s in %s", device_id, self.path)

    def clear(self):
        if self.path.exists():
            self.path.unlink()
            self.logger.info("Cleared device id")
