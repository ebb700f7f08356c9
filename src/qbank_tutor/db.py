"""Settings database: session identity, preferences and known dataset folders."""
import json
import os
import sqlite3
import uuid
from pathlib import Path

DEFAULT_HOME = os.environ.get("QBANK_TUTOR_HOME", str(Path.home() / ".qbank_tutor"))
DEFAULT_DB_PATH = str(Path(DEFAULT_HOME) / "settings.db")

# Preference defaults, stored as text like every other setting.
DEFAULTS = {
    "timed": "0",
    "time_per_question": "90",
    "show_answers": "0",
    "question_pool": "unused",
}

SCHEMA = """
CREATE TABLE IF NOT EXISTS settings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    key TEXT NOT NULL UNIQUE,
    value TEXT
);
"""


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Return a SQLite connection with row factory enabled."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    return conn


def init_db(db_path: str = DEFAULT_DB_PATH) -> None:
    """Initialize the database, creating the settings table if it doesn't exist."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = get_connection(db_path)
    conn.executescript(SCHEMA)
    conn.commit()
    conn.close()


def get_setting(db_path: str, key: str, default: str = None) -> str | None:
    conn = get_connection(db_path)
    row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
    conn.close()
    if row:
        return row["value"]
    return default if default is not None else DEFAULTS.get(key)


def set_setting(db_path: str, key: str, value: str) -> None:
    conn = get_connection(db_path)
    conn.execute(
        "INSERT INTO settings (key, value) VALUES (?, ?) ON CONFLICT(key) DO UPDATE SET value=?",
        (key, value, value),
    )
    conn.commit()
    conn.close()


def delete_setting(db_path: str, key: str) -> None:
    conn = get_connection(db_path)
    conn.execute("DELETE FROM settings WHERE key = ?", (key,))
    conn.commit()
    conn.close()


def get_bool_setting(db_path: str, key: str) -> bool:
    return get_setting(db_path, key, "0").strip().lower() in ("1", "true", "yes", "on")


def get_int_setting(db_path: str, key: str, default: int = 0) -> int:
    try:
        return int(get_setting(db_path, key, str(default)))
    except (TypeError, ValueError):
        return default


def get_or_create_user_id(db_path: str) -> str:
    """Return the session's user id, minting one on first use."""
    user_id = get_setting(db_path, "session_user_id")
    if not user_id:
        user_id = str(uuid.uuid4())
        set_setting(db_path, "session_user_id", user_id)
    return user_id


def logout(db_path: str) -> None:
    delete_setting(db_path, "session_user_id")


def get_folder_paths(db_path: str) -> list[str]:
    raw = get_setting(db_path, "folder_paths", "[]")
    try:
        paths = json.loads(raw)
    except json.JSONDecodeError:
        return []
    return [p for p in paths if isinstance(p, str)] if isinstance(paths, list) else []


def add_folder_path(db_path: str, folder: str) -> list[str]:
    paths = get_folder_paths(db_path)
    if folder not in paths:
        paths.append(folder)
        set_setting(db_path, "folder_paths", json.dumps(paths))
    return paths


def remove_folder_path(db_path: str, folder: str) -> list[str]:
    paths = [p for p in get_folder_paths(db_path) if p != folder]
    set_setting(db_path, "folder_paths", json.dumps(paths))
    return paths
