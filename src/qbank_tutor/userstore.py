"""Per-user record storage and the legacy per-dataset progress snapshot.

Each user has one JSON document at ``<root>/user_data/<user_id>/user_data.json``
holding highlights, usage stats and the last saved progress. A dataset folder
may also carry ``progress.json``, the older whole-bank snapshot, which is
still written on pause for backward compatibility.
"""
import json
import logging
import os
import shutil
import tempfile
import time
from datetime import datetime
from pathlib import Path

from qbank_tutor.errors import StorageWriteError
from qbank_tutor.models import Stats, UserRecord

logger = logging.getLogger(__name__)

USER_FILE = "user_data.json"
LEGACY_FILE = "progress.json"


def _now() -> str:
    return datetime.now().isoformat()


def write_json_atomic(path, data) -> None:
    """Write JSON to a temp file beside ``path`` and rename it into place."""
    path = Path(path)
    tmp_name = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", dir=path.parent, prefix=f".{path.name}.", suffix=".tmp",
            delete=False,
        ) as tmp:
            tmp_name = tmp.name
            json.dump(data, tmp, indent=2)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp_name, path)
    except (OSError, TypeError, ValueError) as e:
        if tmp_name and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise StorageWriteError(path, str(e)) from e


def sanitize_progress(progress) -> dict | None:
    """Shape-check persisted progress; counters go through the coercion table."""
    if not isinstance(progress, dict):
        return None
    clean = dict(progress)
    clean["stats"] = Stats.from_dict(progress.get("stats")).to_dict()
    for key in ("tagbuckets", "blockhist"):
        if not isinstance(clean.get(key), dict):
            clean[key] = {}
    return clean


class UserDataStore:
    def __init__(self, root, user_id: str):
        self.root = Path(root)
        self.user_id = user_id or "anonymous"

    @property
    def directory(self) -> Path:
        return self.root / "user_data" / self.user_id

    @property
    def path(self) -> Path:
        return self.directory / USER_FILE

    def default_record(self) -> UserRecord:
        return UserRecord(user_id=self.user_id, last_updated=_now())

    def load(self) -> UserRecord:
        """Load the user's record, substituting defaults for anything unusable."""
        if not self.path.exists():
            return self._write_default()

        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as e:
            logger.error("Could not read %s: %s", self.path, e)
            return self.default_record()
        except UnicodeDecodeError:
            text = None
        if text is not None and not text.strip():
            logger.info("User data file %s is empty, using defaults", self.path)
            return self.default_record()

        try:
            if text is None:
                raise ValueError("file is not valid UTF-8")
            data = json.loads(text)
            if not isinstance(data, dict):
                raise ValueError(f"expected a JSON object, got {type(data).__name__}")
        except ValueError as e:
            logger.error("User data file %s is corrupt: %s", self.path, e)
            if self.quarantine() is None:
                return self.default_record()
            return self._write_default()
        return self._clean(data)

    def _write_default(self) -> UserRecord:
        record = self.default_record()
        try:
            write_json_atomic(self.path, record.to_dict())
            logger.info("Wrote default user data file %s", self.path)
        except StorageWriteError as e:
            logger.error("Could not write default user data file: %s", e)
        return record

    def _clean(self, data: dict) -> UserRecord:
        highlights = data.get("highlights")
        usage_stats = data.get("usageStats")
        record = UserRecord(
            user_id=data.get("userId") or None,
            highlights=highlights if isinstance(highlights, dict) else {},
            usage_stats=usage_stats if isinstance(usage_stats, dict) else {},
            progress=sanitize_progress(data.get("progress")),
            last_updated=data.get("lastUpdated") or _now(),
        )
        if record.user_id != self.user_id:
            logger.warning("User id mismatch in %s: expected %s, got %s; using %s",
                           self.path, self.user_id, record.user_id, self.user_id)
            record.user_id = self.user_id
        return record

    def quarantine(self) -> Path | None:
        """Copy an unreadable record aside with a timestamped name."""
        backup = self.path.with_name(f"{self.path.name}.corrupted.{int(time.time() * 1000)}")
        try:
            shutil.copyfile(self.path, backup)
        except OSError as e:
            logger.error("Failed to back up corrupt user data file %s: %s", self.path, e)
            return None
        logger.warning("Backed up corrupt user data to %s", backup)
        return backup

    def _read_existing(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, ValueError) as e:
            logger.error("Error loading existing user data, starting from empty: %s", e)
            return {}
        return data if isinstance(data, dict) else {}

    def save(self, highlights: dict = None, usage_stats: dict = None, progress: dict = None) -> dict:
        """Shallow-merge the supplied fields over the on-disk record and write it.

        Fields left as None keep their stored values. Raises StorageWriteError
        when the write fails.
        """
        existing = self._read_existing()
        if existing.get("userId") not in (None, self.user_id):
            logger.warning("Replacing stored user id %s with %s in %s",
                           existing.get("userId"), self.user_id, self.path)
        stored_highlights = existing.get("highlights")
        stored_usage = existing.get("usageStats")
        record = {
            "userId": self.user_id,
            "highlights": dict(stored_highlights) if isinstance(stored_highlights, dict) else {},
            "usageStats": dict(stored_usage) if isinstance(stored_usage, dict) else {},
            "progress": sanitize_progress(existing.get("progress")),
            "lastUpdated": _now(),
        }
        if highlights is not None:
            record["highlights"] = dict(highlights)
        if usage_stats is not None:
            record["usageStats"] = dict(usage_stats)
        if progress is not None:
            record["progress"] = sanitize_progress(progress)

        write_json_atomic(self.path, record)
        self._verify(record)
        return record

    def _verify(self, record: dict) -> None:
        # A mismatch is reported, not raised: the write itself succeeded.
        written = self._read_existing()
        if written.get("userId") != record["userId"]:
            logger.error("User id mismatch after writing %s: expected %s, got %s",
                         self.path, record["userId"], written.get("userId"))

    def clear_progress(self) -> dict:
        existing = self._read_existing()
        existing.update(userId=self.user_id, progress=None, lastUpdated=_now())
        write_json_atomic(self.path, existing)
        return existing


def legacy_snapshot_path(dataset_path) -> Path:
    return Path(dataset_path) / LEGACY_FILE


def write_legacy_snapshot(dataset_path, progress: dict) -> None:
    write_json_atomic(legacy_snapshot_path(dataset_path), progress)


def read_legacy_snapshot(dataset_path) -> dict | None:
    path = legacy_snapshot_path(dataset_path)
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("Ignoring unreadable legacy snapshot %s: %s", path, e)
        return None
    return sanitize_progress(data)


def remove_legacy_snapshot(dataset_path) -> bool:
    path = legacy_snapshot_path(dataset_path)
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    except OSError as e:
        raise StorageWriteError(path, str(e)) from e
    return True
