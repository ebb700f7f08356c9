"""Tests for data model classes."""
import pytest

from qbank_tutor.models import Block, Stats, UserRecord, coerce_count


@pytest.mark.parametrize("raw, expected", [
    (5, 5),
    (0, 0),
    (-5, 0),
    (3.9, 3),
    (-2.5, 0),
    ("12", 12),
    ("7x", 7),
    ("  4", 4),
    ("abc", 0),
    ("", 0),
    (None, 0),
    (True, 0),
    ({"a": 1}, 0),
    (float("nan"), 0),
])
def test_coerce_count(raw, expected):
    assert coerce_count(raw) == expected


def test_stats_from_dict_coerces_bad_values():
    stats = Stats.from_dict({"total": -5, "correct": "abc"})
    assert stats.to_dict() == {"total": 0, "correct": 0, "incorrect": 0, "flagged": 0}


def test_stats_from_non_dict():
    assert Stats.from_dict(None) == Stats()
    assert Stats.from_dict([1, 2]) == Stats()


def test_stats_any_nonzero():
    assert not Stats().any_nonzero()
    assert Stats(flagged=1).any_nonzero()


def test_block_defaults():
    b = Block(question_ids=["q1", "q2", "q3"])
    assert b.answers == ["", "", ""]
    assert b.highlights == ["[]", "[]", "[]"]
    assert b.complete is False
    assert b.time_limit == -1
    assert b.current_question == 0
    assert b.status == "paused"


def test_block_to_dict_uses_wire_keys():
    data = Block(question_ids=["q1"], pool_label="Unused").to_dict()
    assert data["blockqlist"] == ["q1"]
    assert data["qpoolstr"] == "Unused"
    assert data["timelimit"] == -1
    assert data["currentquesnum"] == 0
    assert set(data) >= {"answers", "highlights", "complete", "elapsedtime", "numcorrect",
                         "tagschosenstr", "allsubtagsenabled", "starttime", "showans"}


def test_block_from_dict_repairs_fields():
    b = Block.from_dict({
        "blockqlist": ["q1", "q2"],
        "answers": ["A"],
        "highlights": "oops",
        "numcorrect": "-3",
        "elapsedtime": "12",
        "timelimit": "nope",
        "complete": 1,
    })
    assert b.answers == ["A", ""]
    assert b.highlights == ["[]", "[]"]
    assert b.num_correct == 0
    assert b.elapsed_time == 12
    assert b.time_limit == -1
    assert b.complete is True


def test_block_from_dict_keeps_legacy_blocks_without_flags():
    b = Block.from_dict({"blockqlist": ["q1"], "complete": True, "numcorrect": 1})
    assert b.flagged == []
    assert b.status == "complete"


def test_user_record_to_dict():
    record = UserRecord(user_id="u1")
    assert record.to_dict() == {
        "userId": "u1", "highlights": {}, "usageStats": {}, "progress": None, "lastUpdated": None,
    }
