import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from kcal_bot.errors import PersistenceError
from kcal_bot.storage import SCHEMA_VERSION, Storage


START = datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)


def _register(storage, user_id=1):
    assert storage.register_user(user_id, START)
    return user_id


def test_schema_version_is_recorded(tmp_path):
    path = tmp_path / "kcal.db"
    Storage(str(path))
    Storage(str(path))
    conn = sqlite3.connect(path)
    try:
        assert conn.execute("PRAGMA user_version").fetchone()[0] == SCHEMA_VERSION
    finally:
        conn.close()


def test_users_table_columns(tmp_path):
    path = tmp_path / "kcal.db"
    Storage(str(path))
    conn = sqlite3.connect(path)
    try:
        columns = {row[1] for row in conn.execute("PRAGMA table_info(users)")}
    finally:
        conn.close()
    assert columns == {"id", "register_date", "timezone", "max_kcal"}


def test_register_user_once(storage):
    assert not storage.has_user(1)
    assert storage.register_user(1, START)
    assert storage.has_user(1)
    assert not storage.register_user(1, START + timedelta(days=1))

    user = storage.get_user(1)
    assert user.register_date == START
    assert user.timezone_offset == 0
    assert user.max_kcal is None


def test_add_and_list_items(storage):
    user_id = _register(storage)
    second = storage.add_consumed_item(user_id, "tea", None, START + timedelta(hours=2))
    first = storage.add_consumed_item(user_id, "oatmeal", 150.0, START)

    assert first.id != second.id
    assert first.date == START
    assert first.kcal == 150.0
    assert second.kcal is None
    assert [item.text for item in storage.get_consumed_items(None, None, user_id)] == ["oatmeal", "tea"]


def test_range_filters_are_inclusive(storage):
    user_id = _register(storage)
    for hours, kcal in [(0, 100.0), (1, 200.0), (2, 300.0)]:
        storage.add_consumed_item(user_id, f"item {hours}", kcal, START + timedelta(hours=hours))

    begin, end = START + timedelta(hours=1), START + timedelta(hours=2)
    assert [item.kcal for item in storage.get_consumed_items(begin, end, user_id)] == [200.0, 300.0]
    assert [item.kcal for item in storage.get_consumed_items(None, begin, user_id)] == [100.0, 200.0]
    assert storage.get_consumed_sum(begin, None, user_id) == 500.0
    assert storage.get_consumed_sum(None, None, user_id) == 600.0


def test_sum_ignores_missing_kcal_and_other_users(storage):
    _register(storage, 1)
    _register(storage, 2)
    storage.add_consumed_item(1, "water", None, START)
    storage.add_consumed_item(1, "soup", 250.0, START)
    storage.add_consumed_item(2, "cake", 400.0, START)

    assert storage.get_consumed_sum(None, None, 1) == 250.0
    assert storage.get_consumed_sum(None, None, 3) == 0.0
    assert len(storage.get_consumed_items(None, None, None)) == 3


def test_remove_checks_owner(storage):
    _register(storage, 1)
    _register(storage, 2)
    item = storage.add_consumed_item(1, "soup", 250.0, START)

    assert storage.remove_consumed_item(item.id, 2) is None
    assert len(storage.get_consumed_items(None, None, 1)) == 1

    removed = storage.remove_consumed_item(item.id, None)
    assert removed.text == "soup"
    assert storage.get_consumed_items(None, None, 1) == []
    assert storage.remove_consumed_item(item.id, None) is None


def test_user_settings(storage):
    user_id = _register(storage)
    assert storage.get_user_timezone_offset(user_id) == 0
    assert storage.set_user_timezone_offset(user_id, 5)
    assert storage.get_user_timezone_offset(user_id) == 5

    assert storage.set_max_kcal(user_id, 1800.5)
    assert storage.get_max_kcal(user_id) == 1800.5
    assert storage.set_max_kcal(user_id, None)
    assert storage.get_max_kcal(user_id) is None


def test_settings_for_unknown_user(storage):
    assert not storage.set_user_timezone_offset(42, 3)
    assert not storage.set_max_kcal(42, 2000)
    assert storage.get_user_timezone_offset(42) == 0
    assert storage.get_max_kcal(42) is None
    assert storage.get_user(42) is None


def test_delete_user_cascades(storage):
    user_id = _register(storage)
    storage.add_consumed_item(user_id, "soup", 250.0, START)

    assert storage.delete_user(user_id)
    assert not storage.has_user(user_id)
    assert storage.get_consumed_items(None, None, None) == []


def test_item_requires_registered_user(storage):
    with pytest.raises(PersistenceError):
        storage.add_consumed_item(99, "soup", 250.0, START)


def test_broken_date_is_reported(storage, tmp_path):
    user_id = _register(storage)
    conn = sqlite3.connect(tmp_path / "kcal.db")
    try:
        conn.execute(
            "INSERT INTO consumed (user_id, date, text, kcal) VALUES (?, ?, ?, ?)",
            (user_id, "yesterday", "soup", 100.0),
        )
        conn.commit()
    finally:
        conn.close()

    with pytest.raises(PersistenceError):
        storage.get_consumed_items(None, None, user_id)
