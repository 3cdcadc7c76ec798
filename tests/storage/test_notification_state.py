import json

import pytest

from storage import NotificationStateStore, token_key


def test_should_notify_is_a_one_way_latch():
    store = NotificationStateStore()
    assert store.should_notify("0xABC", "pump") is True
    store.mark_notified("0xABC", "pump")
    assert store.should_notify("0xABC", "pump") is False
    assert store.should_notify("0xABC", "migrated") is True

    store.mark_notified("0xABC", "migrated")
    assert store.get("0xABC") == {"pump": True, "migrated": True}


def test_state_survives_restart(tmp_path):
    path = tmp_path / "notified.json"
    store = NotificationStateStore(path)
    store.load()
    store.mark_notified("0xABC", "pump")
    assert store.save() is True

    reloaded = NotificationStateStore(path).load()
    assert reloaded.should_notify("0xABC", "pump") is False
    assert reloaded.should_notify("0xABC", "migrated") is True
    assert json.loads(path.read_text()) == {"0xABC": {"pump": True, "migrated": False}}


def test_missing_file_loads_empty(tmp_path):
    store = NotificationStateStore(tmp_path / "absent.json").load()
    assert len(store) == 0


def test_corrupt_file_loads_empty(tmp_path, caplog):
    path = tmp_path / "notified.json"
    path.write_text("{not json")
    store = NotificationStateStore(path).load()
    assert len(store) == 0
    assert "Failed to parse notified file" in caplog.text


def test_legacy_entries_are_coerced(tmp_path):
    path = tmp_path / "notified.json"
    path.write_text(json.dumps({"0x1": {}, "0x2": {"migrated": True}, "0x3": "junk"}))
    store = NotificationStateStore(path).load()
    assert len(store) == 3
    assert store.should_notify("0x1", "pump") is True
    assert store.should_notify("0x2", "migrated") is False
    assert store.get("0x3") == {"pump": False, "migrated": False}


def test_save_failure_is_logged_and_memory_advances(tmp_path, caplog):
    blocker = tmp_path / "blocker"
    blocker.write_text("file, not a directory")
    store = NotificationStateStore(blocker / "notified.json")
    store.mark_notified("0xABC", "pump")

    assert store.save() is False
    assert "Failed to persist notified state" in caplog.text
    assert store.should_notify("0xABC", "pump") is False


def test_unknown_category_is_rejected():
    store = NotificationStateStore()
    with pytest.raises(ValueError):
        store.should_notify("0x1", "graduated")
    with pytest.raises(ValueError):
        store.mark_notified("0x1", "graduated")


def test_token_key_fallback_order():
    assert token_key({"address": "a", "pool_address": "p"}) == "a"
    assert token_key({"pool_address": "p", "poolAddress": "q"}) == "p"
    assert token_key({"poolAddress": "q"}) == "q"
    assert token_key({"address": "", "symbol": "X"}) is None
