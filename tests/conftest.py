import json
import pytest

from qbank_tutor.db import init_db
from qbank_tutor.controller import SessionController


@pytest.fixture
def tmp_db(tmp_path):
    """Provide a temporary SQLite database path for tests."""
    db_path = str(tmp_path / "test_settings.db")
    return db_path


def write_dataset(folder, index, tagnames, choices=None):
    folder.mkdir(parents=True, exist_ok=True)
    if choices is None:
        choices = {qid: {"options": ["A", "B", "C", "D"], "correct": "A"} for qid in index}
    (folder / "index.json").write_text(json.dumps(index))
    (folder / "tagnames.json").write_text(json.dumps({"tagnames": dict(enumerate(tagnames))}))
    (folder / "choices.json").write_text(json.dumps(choices))
    return str(folder)


@pytest.fixture
def make_dataset(tmp_path):
    def _make(index, tagnames, choices=None, name="bank"):
        return write_dataset(tmp_path / name, index, tagnames, choices)
    return _make


@pytest.fixture
def two_tag_bank(make_dataset):
    """10 questions, one dimension, values A (q1-q5) and B (q6-q10)."""
    index = {f"q{i}": ["A" if i <= 5 else "B"] for i in range(1, 11)}
    return make_dataset(index, ["Category"])


@pytest.fixture
def multi_dim_bank(make_dataset):
    """6 questions over two dimensions."""
    index = {
        "q1": ["Cardio", "Drugs"],
        "q2": ["Cardio", "Physiology"],
        "q3": ["Renal", "Drugs"],
        "q4": ["Renal", "Anatomy"],
        "q5": ["Neuro", "Physiology"],
        "q6": ["Neuro", "Drugs"],
    }
    return make_dataset(index, ["System", "Discipline"])


@pytest.fixture
def controller(tmp_db, tmp_path):
    init_db(tmp_db)
    return SessionController(tmp_db, str(tmp_path / "home"))
