"""
Playlist scheduling for cloudsignage.

Decides which playlist a device should be showing at a given moment, and how
a newly resolved playlist differs from the one already playing.
"""

from datetime import datetime
from enum import Enum
from typing import Iterable, Optional

from .models import Playlist, Schedule, ScreenDevice


class ScheduleChange(Enum):
    """How the resolved playlist relates to the one currently playing."""

    UNCHANGED = "unchanged"
    CONTENT_CHANGED = "content_changed"  # Same playlist id, different items
    IDENTITY_CHANGED = "identity_changed"  # Different playlist, or to/from none


def weekday_sunday_first(moment: datetime) -> int:
    """Weekday number with Sunday = 0 ... Saturday = 6."""
    return (moment.weekday() + 1) % 7


def time_of_day(moment: datetime) -> str:
    """Zero-padded HH:MM, comparable as a string."""
    return f"{moment.hour:02d}:{moment.minute:02d}"


def schedule_matches(schedule: Schedule, now: datetime, allow_overnight: bool = False) -> bool:
    """
    Check whether a schedule's window covers the given moment.

    Both bounds are inclusive. A window whose end is earlier than its start
    never matches unless allow_overnight is set, in which case it runs from
    start on a listed day until end on the following day.
    """
    if not schedule.active:
        return False

    current = time_of_day(now)
    today = weekday_sunday_first(now)
    start, end = schedule.start_time, schedule.end_time

    if start <= end:
        return today in schedule.days and start <= current <= end

    if not allow_overnight:
        return False
    if current >= start:
        return today in schedule.days
    if current <= end:
        return (today - 1) % 7 in schedule.days
    return False


def resolve_active_playlist(
    device: Optional[ScreenDevice],
    playlists: Iterable[Playlist],
    now: datetime,
    allow_overnight: bool = False,
) -> Optional[Playlist]:
    """
    Resolve the playlist a device should be showing right now.

    A forced assignment wins unconditionally; if the assigned playlist no
    longer exists the result is None rather than a schedule fallback.
    Otherwise the matching playlist with the highest priority wins, and
    equal priorities keep the first match in collection order.

    Args:
        device: The device, or None if it is not (yet) in the registry
        playlists: All playlists, in stable collection order
        now: Local wall-clock time
        allow_overnight: Let windows with end < start wrap past midnight

    Returns:
        The active playlist, or None
    """
    if device is not None and device.assigned_playlist_id:
        for playlist in playlists:
            if playlist.id == device.assigned_playlist_id:
                return playlist
        return None

    selected = None
    for playlist in playlists:
        if not schedule_matches(playlist.schedule, now, allow_overnight):
            continue
        if selected is None or playlist.priority > selected.priority:
            selected = playlist
    return selected


def classify_change(previous: Optional[Playlist], current: Optional[Playlist]) -> ScheduleChange:
    """Compare the playing playlist with a freshly resolved one."""
    previous_id = previous.id if previous else None
    current_id = current.id if current else None
    if previous_id != current_id:
        return ScheduleChange.IDENTITY_CHANGED
    if previous is not None and current is not None and previous.items != current.items:
        return ScheduleChange.CONTENT_CHANGED
    return ScheduleChange.UNCHANGED
