"""Question bank loading: taxonomy, question index and answer choices."""
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

from qbank_tutor.errors import DatasetError

logger = logging.getLogger(__name__)

REQUIRED_FILES = ("index.json", "tagnames.json", "choices.json")
PASSTHROUGH_FILES = ("groups.json", "panes.json")


@dataclass
class Taxonomy:
    """Ordered tag dimensions, e.g. ["Category", "Topic"]."""

    dimensions: list

    @classmethod
    def from_tagnames(cls, obj) -> "Taxonomy":
        names = obj.get("tagnames") if isinstance(obj, dict) else None
        if not isinstance(names, dict) or not names:
            raise DatasetError("tagnames.json must contain a non-empty 'tagnames' mapping")
        try:
            ordered = sorted(names.items(), key=lambda kv: int(kv[0]))
        except ValueError as e:
            raise DatasetError(f"tagnames.json has a non-numeric key: {e}") from e
        dimensions = [str(name) for _, name in ordered]
        if len(set(dimensions)) != len(dimensions):
            raise DatasetError("tagnames.json repeats a dimension name")
        return cls(dimensions)

    def __len__(self) -> int:
        return len(self.dimensions)

    def __iter__(self):
        return iter(self.dimensions)


def _classification(raw, size: int) -> list[str]:
    """Normalize an index.json entry (list or {"0": ..} mapping) to a list."""
    if isinstance(raw, list):
        values = raw
    elif isinstance(raw, dict):
        values = [raw.get(str(i), raw.get(i)) for i in range(size)]
    else:
        return []
    return [str(v) for v in values[:size] if v is not None]


@dataclass
class Dataset:
    path: str
    taxonomy: Taxonomy
    index: dict
    choices: dict
    groups: dict = field(default_factory=dict)
    panes: dict = field(default_factory=dict)

    @property
    def question_ids(self) -> list[str]:
        return list(self.index)

    def __len__(self) -> int:
        return len(self.index)

    def classification(self, qid: str) -> list[str]:
        return self.index[qid]

    def options(self, qid: str) -> list[str]:
        return list(self.choices.get(qid, {}).get("options", []))

    def correct_answer(self, qid: str) -> str:
        return self.choices.get(qid, {}).get("correct", "")


def _read_json(path: Path):
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise DatasetError(f"Could not read {path.name}: {e}") from e


def load_dataset(path: str) -> Dataset:
    """Load a dataset folder. Raises DatasetError on any missing or malformed input."""
    if not path or not isinstance(path, str):
        raise DatasetError("Invalid dataset path provided")
    folder = Path(path)
    if not folder.is_dir():
        raise DatasetError(f"Dataset path does not exist: {path}")
    missing = [name for name in REQUIRED_FILES if not (folder / name).exists()]
    if missing:
        raise DatasetError(f"Dataset {path} is missing {', '.join(missing)}")

    taxonomy = Taxonomy.from_tagnames(_read_json(folder / "tagnames.json"))
    raw_index = _read_json(folder / "index.json")
    choices = _read_json(folder / "choices.json")
    if not isinstance(raw_index, dict) or not isinstance(choices, dict):
        raise DatasetError("index.json and choices.json must be JSON objects")

    index = {}
    for qid, raw in raw_index.items():
        values = _classification(raw, len(taxonomy))
        if len(values) != len(taxonomy):
            raise DatasetError(
                f"Question {qid} has {len(values)} tags, expected {len(taxonomy)}"
            )
        index[str(qid)] = values

    extras = {}
    for name in PASSTHROUGH_FILES:
        extra_path = folder / name
        extras[name.split(".")[0]] = _read_json(extra_path) if extra_path.exists() else {}

    logger.info("Loaded dataset %s: %d questions, %d tag dimensions",
                path, len(index), len(taxonomy))
    return Dataset(path=str(folder), taxonomy=taxonomy, index=index, choices=choices, **extras)
