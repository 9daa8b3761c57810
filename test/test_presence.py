"""
Unit tests for presence reporting.
"""

import os
import tempfile
from datetime import datetime
from unittest.mock import Mock

import pytest

from cloudsignage.config_manager import ConfigManager
from cloudsignage.database import Database
from cloudsignage.datastore import DEVICES, DatastoreError, SqliteDatastore
from cloudsignage.models import ScreenDevice
from cloudsignage.presence import PresenceReporter, is_device_online
from cloudsignage.timers import ManualTimerService

START = datetime(2024, 1, 7, 12, 0)
START_MS = int(START.timestamp() * 1000)


@pytest.fixture
def temp_db():
    """Create a temporary database."""
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    db = Database(db_path=path)
    yield db
    db.close()
    os.unlink(path)


@pytest.fixture
def datastore(temp_db):
    return SqliteDatastore(temp_db, watch_interval=0)


@pytest.fixture
def timers():
    return ManualTimerService(start=START)


@pytest.fixture
def reporter(datastore, temp_db, timers):
    return PresenceReporter(datastore, ConfigManager(temp_db), timers)


def test_register_creates_default_document(reporter, datastore):
    assert reporter.register("lobby") is True

    assert datastore.get(DEVICES, "lobby") == {
        "id": "lobby",
        "name": "Device lobby",
        "location": "Unknown",
        "status": "online",
        "assignedPlaylistId": None,
        "lastPing": START_MS,
    }


def test_register_never_clobbers_operator_fields(reporter, datastore, timers):
    datastore.set(
        DEVICES,
        "lobby",
        {
            "id": "lobby",
            "name": "Main entrance",
            "location": "Ground floor",
            "status": "offline",
            "assignedPlaylistId": "promo",
            "lastPing": 1,
        },
    )
    timers.advance(60)

    reporter.register("lobby")

    document = datastore.get(DEVICES, "lobby")
    assert document["name"] == "Main entrance"
    assert document["location"] == "Ground floor"
    assert document["assignedPlaylistId"] == "promo"
    assert document["status"] == "online"
    assert document["lastPing"] == START_MS + 60000


def test_heartbeat_every_interval(reporter, datastore, timers):
    reporter.start("lobby")

    timers.advance(29)
    assert datastore.get(DEVICES, "lobby")["lastPing"] == START_MS

    timers.advance(1)
    assert datastore.get(DEVICES, "lobby")["lastPing"] == START_MS + 30000

    timers.advance(30)
    assert datastore.get(DEVICES, "lobby")["lastPing"] == START_MS + 60000


def test_heartbeat_does_not_touch_assignment(reporter, datastore, timers):
    reporter.start("lobby")
    datastore.patch(DEVICES, "lobby", {"assignedPlaylistId": "promo"})

    timers.advance(30)

    assert datastore.get(DEVICES, "lobby")["assignedPlaylistId"] == "promo"


def test_stop_cancels_heartbeat(reporter, datastore, timers):
    reporter.start("lobby")
    reporter.stop()

    timers.advance(300)

    assert datastore.get(DEVICES, "lobby")["lastPing"] == START_MS
    assert timers.pending("heartbeat") == 0


def test_errors_are_swallowed(temp_db, timers):
    datastore = Mock()
    datastore.get.side_effect = DatastoreError("offline")
    datastore.patch.side_effect = ConnectionError("network down")
    reporter = PresenceReporter(datastore, ConfigManager(temp_db), timers)

    reporter.start("lobby")
    timers.advance(90)

    assert reporter.register("lobby") is False
    assert reporter.heartbeat() is False
    assert datastore.patch.call_count == 4


def test_heartbeat_without_device_is_noop(reporter):
    assert reporter.heartbeat() is False


@pytest.mark.parametrize(
    "age_seconds,expected",
    [(0, True), (30, True), (59.999, True), (60, False), (3600, False)],
)
def test_is_device_online(age_seconds, expected):
    device = ScreenDevice(id="lobby", name="Lobby", last_ping=START_MS)
    now_ms = START_MS + int(age_seconds * 1000)
    assert is_device_online(device, now_ms) is expected


def test_is_device_online_custom_threshold():
    device = ScreenDevice(id="lobby", name="Lobby", last_ping=START_MS)
    assert is_device_online(device, START_MS + 90000, offline_after_seconds=120) is True


def test_never_pinged_is_offline():
    device = ScreenDevice(id="lobby", name="Lobby", status="online")
    assert is_device_online(device, START_MS) is False
