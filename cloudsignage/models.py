"""
Data models for cloudsignage.

Defines typed dataclasses for the documents kept in the datastore
(media, playlists, devices) and the player-local playback cursor.
Documents are stored with camelCase keys; from_dict/to_dict translate.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class MediaType(Enum):
    """Stored media type."""

    IMAGE = "image"
    VIDEO = "video"


class MediaKind(Enum):
    """Resolved media kind, which decides how playback advances."""

    IMAGE = "image"
    VIDEO_FILE = "video_file"
    YOUTUBE = "youtube"


ALL_DAYS = (0, 1, 2, 3, 4, 5, 6)  # 0 = Sunday

TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"

STATUS_ONLINE = "online"
STATUS_OFFLINE = "offline"


@dataclass
class MediaItem:
    """A media document (image, MP4 or YouTube link)."""

    id: str
    name: str
    type: MediaType
    url: str
    duration: Optional[int] = None
    orientation: str = "landscape"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MediaItem":
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            type=MediaType(data.get("type", MediaType.IMAGE.value)),
            url=data.get("url", ""),
            duration=_optional_int(data.get("duration")),
            orientation=data.get("orientation", "landscape"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "url": self.url,
            "duration": self.duration,
            "orientation": self.orientation,
        }


@dataclass(frozen=True)
class PlaylistItem:
    """Reference to a media item with an optional duration override (seconds)."""

    media_id: str
    duration: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlaylistItem":
        return cls(media_id=str(data["mediaId"]), duration=_optional_int(data.get("duration")))

    def to_dict(self) -> Dict[str, Any]:
        return {"mediaId": self.media_id, "duration": self.duration}


@dataclass
class Schedule:
    """Weekly time window during which a playlist may be selected."""

    days: List[int] = field(default_factory=lambda: list(ALL_DAYS))
    start_time: str = "06:00"  # HH:MM, local time
    end_time: str = "22:00"
    active: bool = True

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Schedule":
        if not data:
            return cls()
        return cls(
            days=sorted({int(day) for day in data.get("days", ALL_DAYS)}),
            start_time=_time_of_day(data.get("startTime", "06:00")),
            end_time=_time_of_day(data.get("endTime", "22:00")),
            active=bool(data.get("active", True)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "days": list(self.days),
            "startTime": self.start_time,
            "endTime": self.end_time,
            "active": self.active,
        }


@dataclass
class Playlist:
    """Ordered playlist with a schedule. Item order is playback order."""

    id: str
    name: str
    items: List[PlaylistItem] = field(default_factory=list)
    schedule: Schedule = field(default_factory=Schedule)
    orientation: str = "landscape"
    priority: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Playlist":
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            items=[PlaylistItem.from_dict(item) for item in data.get("items", [])],
            schedule=Schedule.from_dict(data.get("schedule")),
            orientation=data.get("orientation", "landscape"),
            priority=int(data.get("priority") or 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "orientation": self.orientation,
            "priority": self.priority,
            "schedule": self.schedule.to_dict(),
            "items": [item.to_dict() for item in self.items],
        }


@dataclass
class ScreenDevice:
    """A registered player."""

    id: str
    name: str
    location: str = "Unknown"
    status: str = STATUS_OFFLINE  # Best-effort hint; liveness is derived from last_ping
    assigned_playlist_id: Optional[str] = None
    last_ping: int = 0  # Epoch milliseconds

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScreenDevice":
        assigned = data.get("assignedPlaylistId")
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            location=data.get("location", "Unknown"),
            status=data.get("status", STATUS_OFFLINE),
            assigned_playlist_id=str(assigned) if assigned else None,
            last_ping=int(data.get("lastPing") or 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "location": self.location,
            "status": self.status,
            "assignedPlaylistId": self.assigned_playlist_id,
            "lastPing": self.last_ping,
        }


@dataclass
class PlaybackCursor:
    """Player-local playback position. Never persisted."""

    playlist: Optional[Playlist] = None
    index: int = 0
    failed: bool = False

    @property
    def playlist_id(self) -> Optional[str]:
        return self.playlist.id if self.playlist else None

    def reset(self, playlist: Optional[Playlist] = None):
        self.playlist = playlist
        self.index = 0
        self.failed = False

    def current_item(self) -> Optional[PlaylistItem]:
        if not self.playlist or not self.playlist.items:
            return None
        if self.index >= len(self.playlist.items):
            return None
        return self.playlist.items[self.index]


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


def _time_of_day(value: Any) -> str:
    if not isinstance(value, str) or not re.match(TIME_PATTERN, value):
        raise ValueError(f"invalid time of day: {value!r}")
    return value


@dataclass
class ConfigEntry:
    """Configuration entry."""

    key: str
    value: str
    updated_at: Optional[datetime] = None
