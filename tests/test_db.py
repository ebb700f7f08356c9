"""Tests for the settings database."""
from qbank_tutor.db import (
    init_db, get_connection, get_setting, set_setting, delete_setting,
    get_bool_setting, get_int_setting, get_or_create_user_id, logout,
    get_folder_paths, add_folder_path, remove_folder_path,
)


def test_init_db_creates_settings_table(tmp_db):
    init_db(tmp_db)
    conn = get_connection(tmp_db)
    tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
    assert "settings" in tables
    conn.close()


def test_init_db_is_idempotent(tmp_db):
    init_db(tmp_db)
    set_setting(tmp_db, "timed", "1")
    init_db(tmp_db)  # should not raise or wipe data
    assert get_setting(tmp_db, "timed") == "1"


def test_get_setting_falls_back_to_defaults(tmp_db):
    init_db(tmp_db)
    assert get_setting(tmp_db, "time_per_question") == "90"
    assert get_setting(tmp_db, "question_pool") == "unused"
    assert get_setting(tmp_db, "missing") is None
    assert get_setting(tmp_db, "missing", "x") == "x"


def test_set_setting_overwrites(tmp_db):
    init_db(tmp_db)
    set_setting(tmp_db, "show_answers", "1")
    set_setting(tmp_db, "show_answers", "0")
    assert get_setting(tmp_db, "show_answers") == "0"


def test_delete_setting(tmp_db):
    init_db(tmp_db)
    set_setting(tmp_db, "custom", "v")
    delete_setting(tmp_db, "custom")
    assert get_setting(tmp_db, "custom") is None


def test_bool_and_int_settings(tmp_db):
    init_db(tmp_db)
    assert get_bool_setting(tmp_db, "timed") is False
    set_setting(tmp_db, "timed", "true")
    assert get_bool_setting(tmp_db, "timed") is True
    assert get_int_setting(tmp_db, "time_per_question", 60) == 60
    set_setting(tmp_db, "time_per_question", "45")
    assert get_int_setting(tmp_db, "time_per_question", 60) == 45
    set_setting(tmp_db, "time_per_question", "abc")
    assert get_int_setting(tmp_db, "time_per_question", 60) == 60


def test_user_id_is_stable_until_logout(tmp_db):
    init_db(tmp_db)
    first = get_or_create_user_id(tmp_db)
    assert get_or_create_user_id(tmp_db) == first
    logout(tmp_db)
    assert get_or_create_user_id(tmp_db) != first


def test_folder_paths(tmp_db):
    init_db(tmp_db)
    assert get_folder_paths(tmp_db) == []
    add_folder_path(tmp_db, "/banks/one")
    add_folder_path(tmp_db, "/banks/two")
    add_folder_path(tmp_db, "/banks/one")
    assert get_folder_paths(tmp_db) == ["/banks/one", "/banks/two"]
    remove_folder_path(tmp_db, "/banks/one")
    assert get_folder_paths(tmp_db) == ["/banks/two"]


def test_corrupt_folder_paths_reads_as_empty(tmp_db):
    init_db(tmp_db)
    set_setting(tmp_db, "folder_paths", "{not json")
    assert get_folder_paths(tmp_db) == []
