"""Exception types raised by the progress engine."""


class QbankError(Exception):
    """Base class for errors the front end reports to the user."""


class DatasetError(QbankError):
    """A dataset folder is missing or lacks a required file."""


class StorageWriteError(QbankError):
    """Persisting a record or snapshot failed."""

    def __init__(self, path, message):
        super().__init__(f"Failed to write {path}: {message}")
        self.path = str(path)


class UnknownBlockError(QbankError, KeyError):
    def __init__(self, block_id):
        super().__init__(f"No block with id {block_id!r}")
        self.block_id = block_id

    def __str__(self):
        return self.args[0]
