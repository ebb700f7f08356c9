"""Data classes for the progress-tracking domain model."""
import re
from dataclasses import dataclass, field, fields
from typing import Optional

POOLS = ("all", "unused", "incorrects", "flagged")
MUTABLE_POOLS = ("unused", "incorrects", "flagged")

# Labels recorded on a block for the pool it was drawn from.
POOL_LABELS = {
    "unused": "Unused",
    "incorrects": "Incorrects",
    "flagged": "Flagged",
    "all": "All",
    "custom": "Custom",
}

_LEADING_INT = re.compile(r"^\s*[-+]?\d+")


def coerce_count(value) -> int:
    """Coerce a persisted counter to a non-negative int.

    ints pass through, floats truncate, strings parse their leading integer,
    negatives clamp to 0 and everything else (None, bools, dicts) becomes 0.
    """
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return max(0, value)
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            return 0
        return max(0, int(value))
    if isinstance(value, str):
        match = _LEADING_INT.match(value)
        return max(0, int(match.group())) if match else 0
    return 0


@dataclass
class Stats:
    total: int = 0
    correct: int = 0
    incorrect: int = 0
    flagged: int = 0

    @classmethod
    def from_dict(cls, data) -> "Stats":
        if not isinstance(data, dict):
            return cls()
        return cls(**{f.name: coerce_count(data.get(f.name)) for f in fields(cls)})

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def any_nonzero(self) -> bool:
        return any(getattr(self, f.name) > 0 for f in fields(self))


@dataclass
class Bucket:
    all: list = field(default_factory=list)
    unused: list = field(default_factory=list)
    incorrects: list = field(default_factory=list)
    flagged: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {pool: list(getattr(self, pool)) for pool in POOLS}


# Block attribute -> key used in progress.json and the user record.
BLOCK_KEYS = {
    "question_ids": "blockqlist",
    "answers": "answers",
    "highlights": "highlights",
    "complete": "complete",
    "time_limit": "timelimit",
    "elapsed_time": "elapsedtime",
    "num_correct": "numcorrect",
    "pool_label": "qpoolstr",
    "tags_chosen": "tagschosenstr",
    "all_subtags_enabled": "allsubtagsenabled",
    "start_time": "starttime",
    "current_question": "currentquesnum",
    "show_answers": "showans",
    "flagged": "flagged",
}


@dataclass
class Block:
    question_ids: list
    answers: list = field(default_factory=list)
    highlights: list = field(default_factory=list)
    complete: bool = False
    time_limit: int = -1
    elapsed_time: float = 0
    num_correct: int = 0
    pool_label: str = ""
    tags_chosen: str = ""
    all_subtags_enabled: bool = True
    start_time: str = ""
    current_question: int = 0
    show_answers: bool = False
    flagged: list = field(default_factory=list)

    def __post_init__(self):
        size = len(self.question_ids)
        if len(self.answers) != size:
            self.answers = (list(self.answers) + [""] * size)[:size]
        if len(self.highlights) != size:
            self.highlights = (list(self.highlights) + ["[]"] * size)[:size]

    @property
    def status(self) -> str:
        return "complete" if self.complete else "paused"

    @classmethod
    def from_dict(cls, data: dict) -> "Block":
        qids = data.get("blockqlist")
        kwargs = {"question_ids": [str(q) for q in qids] if isinstance(qids, list) else []}
        for attr, key in BLOCK_KEYS.items():
            if attr == "question_ids" or key not in data:
                continue
            kwargs[attr] = data[key]
        for attr in ("answers", "highlights", "flagged"):
            if not isinstance(kwargs.get(attr, []), list):
                del kwargs[attr]
        block = cls(**kwargs)
        block.num_correct = coerce_count(block.num_correct)
        block.current_question = coerce_count(block.current_question)
        if isinstance(block.elapsed_time, bool) or not isinstance(block.elapsed_time, (int, float)):
            block.elapsed_time = coerce_count(block.elapsed_time)
        if not isinstance(block.time_limit, int) or block.time_limit < -1:
            block.time_limit = coerce_count(block.time_limit) or -1
        block.complete = bool(block.complete)
        return block

    def to_dict(self) -> dict:
        return {key: getattr(self, attr) for attr, key in BLOCK_KEYS.items()}


@dataclass
class UserRecord:
    user_id: Optional[str] = None
    highlights: dict = field(default_factory=dict)
    usage_stats: dict = field(default_factory=dict)
    progress: Optional[dict] = None
    last_updated: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "highlights": self.highlights,
            "usageStats": self.usage_stats,
            "progress": self.progress,
            "lastUpdated": self.last_updated,
        }
