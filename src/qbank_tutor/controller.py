"""Session controller: the named operations the front end drives.

One controller owns the progress aggregate for the active (user, dataset)
pair. Operations are serialized by a per-controller lock, and every mutation
is persisted to the user record and the legacy ``progress.json`` snapshot
before the refreshed aggregate is published to subscribers.
"""
import functools
import logging
import threading

from qbank_tutor.dataset import load_dataset
from qbank_tutor.db import (
    DEFAULT_DB_PATH, DEFAULT_HOME, get_bool_setting, get_int_setting,
    get_or_create_user_id, logout as end_session,
)
from qbank_tutor.errors import QbankError, StorageWriteError
from qbank_tutor.models import POOL_LABELS
from qbank_tutor.progress import ProgressAggregate, has_saved_progress
from qbank_tutor.userstore import (
    UserDataStore, read_legacy_snapshot, remove_legacy_snapshot, write_legacy_snapshot,
)

logger = logging.getLogger(__name__)

# Event name -> controller method. Fixed at import time.
OPERATIONS = {
    "loadDataset": "load_dataset",
    "startBlock": "start_block",
    "pauseBlock": "pause_block",
    "openBlock": "open_block",
    "completeBlock": "complete_block",
    "deleteBlock": "delete_block",
    "resetBank": "reset_bank",
    "updateUsageStats": "update_usage_stats",
    "saveHighlight": "save_highlight",
    "requestShutdown": "request_shutdown",
    "logout": "logout",
}


def _locked(method):
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            return method(self, *args, **kwargs)
    return wrapper


class SessionController:
    def __init__(self, db_path: str = DEFAULT_DB_PATH, data_root: str = DEFAULT_HOME,
                 on_shutdown=None):
        self.db_path = db_path
        self.data_root = data_root
        self.on_shutdown = on_shutdown
        self.user_id = None
        self.store = None
        self.dataset = None
        self.progress = None
        self.highlights = {}
        self.usage_stats = {}
        self.block_to_open = ""
        self.shutdown_pending = False
        self._listeners = []
        self._lock = threading.RLock()

    def subscribe(self, callback) -> None:
        """Register ``callback(controller)``, called after every state change."""
        if callback not in self._listeners:
            self._listeners.append(callback)

    def _publish(self) -> None:
        for callback in self._listeners:
            callback(self)

    def dispatch(self, event: str, *args, **kwargs):
        try:
            name = OPERATIONS[event]
        except KeyError:
            raise ValueError(f"Unknown operation {event!r}") from None
        return getattr(self, name)(*args, **kwargs)

    def _ensure_session(self) -> None:
        """Bind the session user and pull their stored highlights and usage stats."""
        if self.store is None:
            self.user_id = get_or_create_user_id(self.db_path)
            self.store = UserDataStore(self.data_root, self.user_id)
            record = self.store.load()
            self.highlights = {**record.highlights, **self.highlights}
            self.usage_stats = {**record.usage_stats, **self.usage_stats}

    def _require_progress(self) -> ProgressAggregate:
        if self.progress is None:
            raise QbankError("No question bank is loaded")
        return self.progress

    def _persist(self) -> None:
        """Write the aggregate to the user record, then the legacy snapshot."""
        snapshot = self.progress.to_dict()
        self.store.save(progress=snapshot)
        try:
            write_legacy_snapshot(self.dataset.path, snapshot)
        except StorageWriteError as e:
            logger.error("Error saving progress to legacy location: %s", e)

    def _mutate(self, operation):
        """Run ``operation`` on the aggregate and persist, restoring memory on failure."""
        before = self._require_progress().clone()
        try:
            result = operation(self.progress)
            self._persist()
        except Exception:
            self.progress = before
            raise
        return result

    @_locked
    def load_dataset(self, path: str) -> ProgressAggregate:
        """Load a bank and merge this user's saved progress into fresh buckets."""
        self._ensure_session()
        dataset = load_dataset(path)
        record = self.store.load()
        persisted = record.progress
        if not has_saved_progress(persisted):
            persisted = read_legacy_snapshot(dataset.path)
            if persisted is not None:
                logger.info("Using legacy progress snapshot for %s", dataset.path)
        progress = ProgressAggregate.reconcile(dataset, persisted)

        self.dataset = dataset
        self.progress = progress
        if record.highlights:
            self.highlights = dict(record.highlights)
        if record.usage_stats:
            self.usage_stats = dict(record.usage_stats)
        self.block_to_open = ""
        logger.info("Loaded %s for user %s (%d blocks)",
                    dataset.path, self.user_id, len(progress.history))
        self._publish()
        return progress

    @_locked
    def start_block(self, question_ids: list, pool_label: str = "custom",
                    tags_chosen: str = "", all_subtags_enabled: bool = True) -> str:
        options = {
            "tags_chosen": tags_chosen,
            "all_subtags_enabled": all_subtags_enabled,
            "timed": get_bool_setting(self.db_path, "timed"),
            "time_per_question": get_int_setting(self.db_path, "time_per_question", 90),
            "show_answers": get_bool_setting(self.db_path, "show_answers"),
        }
        label = POOL_LABELS.get(pool_label, pool_label)
        block_id = self._mutate(lambda p: p.start_block(list(question_ids), label, **options))
        self.block_to_open = block_id
        self._publish()
        return block_id

    @_locked
    def pause_block(self, block_id, answers=None, highlights=None, elapsed_time=None,
                    current_question=None, flagged=None) -> None:
        """Save a block's in-progress state and persist the whole aggregate.

        A pending shutdown runs once both writes have returned. If the user
        record cannot be written the error propagates and shutdown waits.
        """
        progress = self._require_progress()
        progress.update_block(block_id, answers=answers, highlights=highlights,
                              elapsed_time=elapsed_time, current_question=current_question,
                              flagged=flagged)
        self._persist()
        self.block_to_open = ""
        self._publish()
        if self.shutdown_pending:
            self._shutdown()

    @_locked
    def open_block(self, block_id):
        block = self._require_progress().history.get(block_id)
        self.block_to_open = str(block_id)
        self._publish()
        return block

    @_locked
    def close_block(self, block_id) -> None:
        """Forget the open block without saving it, e.g. when the exam view is interrupted."""
        if self.block_to_open == str(block_id):
            self.block_to_open = ""
            self._publish()

    @_locked
    def complete_block(self, block_id, answers=None, highlights=None, elapsed_time=None,
                       flagged=None):
        block = self._mutate(lambda p: p.complete_block(
            block_id, answers=answers, highlights=highlights,
            elapsed_time=elapsed_time, flagged=flagged,
        ))
        self.block_to_open = ""
        self._publish()
        if self.shutdown_pending:
            self._shutdown()
        return block

    @_locked
    def delete_block(self, block_id):
        block = self._mutate(lambda p: p.delete_block(block_id))
        if self.block_to_open == str(block_id):
            self.block_to_open = ""
        self._publish()
        return block

    @_locked
    def reset_bank(self, confirm) -> bool:
        """Discard all progress for the loaded bank once ``confirm()`` agrees."""
        self._require_progress()
        if not confirm():
            return False
        self.store.clear_progress()
        remove_legacy_snapshot(self.dataset.path)
        self.progress = ProgressAggregate.fresh(self.dataset)
        self.block_to_open = ""
        self._persist()
        logger.info("Reset progress for %s", self.dataset.path)
        self._publish()
        return True

    @_locked
    def update_usage_stats(self, partial: dict) -> dict:
        self._ensure_session()
        self.usage_stats = {**self.usage_stats, **partial}
        self.store.save(usage_stats=self.usage_stats)
        return self.usage_stats

    @_locked
    def save_highlight(self, qid: str, highlight) -> None:
        self._ensure_session()
        self.highlights[qid] = highlight
        self.store.save(highlights=self.highlights)

    @_locked
    def request_shutdown(self) -> bool:
        """Shut down now, or once the open block is paused. Returns True if done now."""
        self.shutdown_pending = True
        if self.block_to_open:
            logger.info("Shutdown deferred until block %s is paused", self.block_to_open)
            return False
        self._shutdown()
        return True

    def _shutdown(self) -> None:
        if self.store is not None and self.progress is not None:
            try:
                self.store.save(highlights=self.highlights, usage_stats=self.usage_stats,
                                progress=self.progress.to_dict())
            except StorageWriteError as e:
                logger.error("Could not save user data on shutdown: %s", e)
        self.shutdown_pending = False
        logger.info("Shutting down")
        if self.on_shutdown is not None:
            self.on_shutdown()

    @_locked
    def logout(self) -> None:
        logger.info("Logging out user %s", self.user_id)
        end_session(self.db_path)
        self.user_id = None
        self.store = None
        self.dataset = None
        self.progress = None
        self.highlights = {}
        self.usage_stats = {}
        self.block_to_open = ""
        self._publish()
