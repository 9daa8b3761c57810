"""
Unit tests for playlist scheduling.
"""

from datetime import datetime

import pytest

from cloudsignage.models import Playlist, PlaylistItem, Schedule, ScreenDevice
from cloudsignage.scheduler import (
    ScheduleChange,
    classify_change,
    resolve_active_playlist,
    schedule_matches,
    time_of_day,
    weekday_sunday_first,
)

# 2024-01-07 is a Sunday
SUNDAY_NOON = datetime(2024, 1, 7, 12, 0)
MONDAY_NOON = datetime(2024, 1, 8, 12, 0)


def make_playlist(playlist_id, days=None, start="06:00", end="22:00", active=True, priority=0):
    return Playlist(
        id=playlist_id,
        name=f"Playlist {playlist_id}",
        items=[PlaylistItem("m1", 5)],
        schedule=Schedule(
            days=list(range(7)) if days is None else days,
            start_time=start,
            end_time=end,
            active=active,
        ),
        priority=priority,
    )


def make_device(assigned=None):
    return ScreenDevice(id="lobby", name="Lobby", assigned_playlist_id=assigned)


def test_weekday_sunday_first():
    assert weekday_sunday_first(SUNDAY_NOON) == 0
    assert weekday_sunday_first(MONDAY_NOON) == 1
    assert weekday_sunday_first(datetime(2024, 1, 13)) == 6  # Saturday


def test_time_of_day_zero_padded():
    assert time_of_day(datetime(2024, 1, 7, 6, 5)) == "06:05"


def test_forced_assignment_ignores_schedule():
    """An existing assigned playlist wins at any time, even with an inactive schedule."""
    pinned = make_playlist("pinned", days=[], active=False)
    scheduled = make_playlist("scheduled")
    device = make_device(assigned="pinned")

    for moment in (SUNDAY_NOON, datetime(2024, 1, 9, 3, 0), datetime(2024, 1, 12, 23, 59)):
        assert resolve_active_playlist(device, [scheduled, pinned], moment) is pinned


def test_forced_assignment_to_deleted_playlist_yields_none():
    """A dangling assignment does not fall back to the schedule."""
    device = make_device(assigned="gone")
    assert resolve_active_playlist(device, [make_playlist("scheduled")], SUNDAY_NOON) is None


def test_inactive_schedule_never_matches():
    playlist = make_playlist("p", active=False)
    assert resolve_active_playlist(make_device(), [playlist], SUNDAY_NOON) is None


def test_window_inclusive_at_both_ends():
    playlist = make_playlist("p", start="06:00", end="22:00")
    device = make_device()

    assert resolve_active_playlist(device, [playlist], datetime(2024, 1, 7, 6, 0)) is playlist
    assert resolve_active_playlist(device, [playlist], datetime(2024, 1, 7, 22, 0)) is playlist
    assert resolve_active_playlist(device, [playlist], datetime(2024, 1, 7, 5, 59)) is None
    assert resolve_active_playlist(device, [playlist], datetime(2024, 1, 7, 22, 1)) is None


def test_day_must_be_listed():
    weekdays = make_playlist("weekdays", days=[1, 2, 3, 4, 5])
    assert resolve_active_playlist(make_device(), [weekdays], SUNDAY_NOON) is None
    assert resolve_active_playlist(make_device(), [weekdays], MONDAY_NOON) is weekdays


def test_no_device_document_uses_schedule():
    playlist = make_playlist("p")
    assert resolve_active_playlist(None, [playlist], SUNDAY_NOON) is playlist


def test_first_match_wins_deterministically():
    """Two overlapping playlists: the first in collection order, every time."""
    first = make_playlist("first")
    second = make_playlist("second")
    device = make_device()

    results = {resolve_active_playlist(device, [first, second], SUNDAY_NOON).id for _ in range(20)}
    assert results == {"first"}


def test_priority_beats_collection_order():
    low = make_playlist("low")
    high = make_playlist("high", priority=5)
    assert resolve_active_playlist(make_device(), [low, high], SUNDAY_NOON) is high


def test_equal_priority_keeps_first_match():
    a = make_playlist("a", priority=2)
    b = make_playlist("b", priority=2)
    assert resolve_active_playlist(make_device(), [a, b], SUNDAY_NOON) is a


def test_no_match_returns_none():
    morning = make_playlist("morning", start="06:00", end="09:00")
    assert resolve_active_playlist(make_device(), [morning], SUNDAY_NOON) is None
    assert resolve_active_playlist(make_device(), [], SUNDAY_NOON) is None


class TestOvernightWindows:
    """Windows with end < start, e.g. 22:00-02:00."""

    def setup_method(self):
        # Listed on Saturday only
        self.schedule = Schedule(days=[6], start_time="22:00", end_time="02:00")

    def test_never_match_by_default(self):
        assert not schedule_matches(self.schedule, datetime(2024, 1, 13, 23, 0))
        assert not schedule_matches(self.schedule, datetime(2024, 1, 14, 1, 0))

    def test_evening_part_on_listed_day(self):
        assert schedule_matches(self.schedule, datetime(2024, 1, 13, 22, 0), allow_overnight=True)
        assert schedule_matches(self.schedule, datetime(2024, 1, 13, 23, 59), allow_overnight=True)

    def test_morning_part_on_following_day(self):
        # Sunday 01:00 belongs to Saturday's window
        assert schedule_matches(self.schedule, datetime(2024, 1, 14, 1, 0), allow_overnight=True)
        assert schedule_matches(self.schedule, datetime(2024, 1, 14, 2, 0), allow_overnight=True)
        assert not schedule_matches(self.schedule, datetime(2024, 1, 14, 2, 1), allow_overnight=True)

    def test_morning_part_needs_previous_day_listed(self):
        # Saturday 01:00 would belong to Friday's window, which is not listed
        assert not schedule_matches(
            self.schedule, datetime(2024, 1, 13, 1, 0), allow_overnight=True
        )

    def test_gap_between_end_and_start(self):
        assert not schedule_matches(self.schedule, datetime(2024, 1, 13, 12, 0), allow_overnight=True)


@pytest.mark.parametrize(
    "previous,current,expected",
    [
        (None, None, ScheduleChange.UNCHANGED),
        (None, "a", ScheduleChange.IDENTITY_CHANGED),
        ("a", None, ScheduleChange.IDENTITY_CHANGED),
        ("a", "b", ScheduleChange.IDENTITY_CHANGED),
        ("a", "a", ScheduleChange.UNCHANGED),
    ],
)
def test_classify_change_identity(previous, current, expected):
    previous_playlist = make_playlist(previous) if previous else None
    current_playlist = make_playlist(current) if current else None
    assert classify_change(previous_playlist, current_playlist) == expected


def test_classify_change_content():
    before = make_playlist("a")
    after = make_playlist("a")
    after.items = [PlaylistItem("m1", 8)]
    assert classify_change(before, after) == ScheduleChange.CONTENT_CHANGED


def test_classify_change_ignores_schedule_edits():
    before = make_playlist("a")
    after = make_playlist("a", start="07:00")
    assert classify_change(before, after) == ScheduleChange.UNCHANGED
