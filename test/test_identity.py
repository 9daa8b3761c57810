"""
Unit tests for DeviceIdentityStore.
"""

import pytest

from cloudsignage.identity import IDENTITY_FILENAME, DeviceIdentityStore


@pytest.fixture
def store(tmp_path):
    return DeviceIdentityStore(tmp_path / "state" / "device_id")


def test_empty_store(store):
    assert store.get() is None


def test_set_get_clear(store):
    store.set("  lobby-01 \n")
    assert store.get() == "lobby-01"
    assert store.path.read_text() == "lobby-01"

    store.clear()
    assert store.get() is None
    store.clear()


def test_survives_new_instance(store):
    store.set("lobby-01")
    assert DeviceIdentityStore(store.path).get() == "lobby-01"


def test_rejects_blank_id(store):
    with pytest.raises(ValueError):
        store.set("   ")


def test_default_location_uses_state_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("CLOUDSIGNAGE_STATE_DIR", str(tmp_path))
    store = DeviceIdentityStore()

    assert store.path == tmp_path / IDENTITY_FILENAME
