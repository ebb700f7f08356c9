"""Tests for block history."""
import pytest

from qbank_tutor.blocks import BlockHistory, answer_is_correct, score_block
from qbank_tutor.dataset import load_dataset
from qbank_tutor.errors import UnknownBlockError
from qbank_tutor.models import Block


def test_block_ids_increase():
    history = BlockHistory()
    ids = [history.start([f"q{i}"], "Unused")[0] for i in range(3)]
    assert ids == ["0", "1", "2"]


def test_block_ids_are_not_reused_after_delete():
    history = BlockHistory()
    for i in range(3):
        history.start([f"q{i}"], "Unused")
    history.delete("1")
    block_id, _ = history.start(["q9"], "Unused")
    assert block_id == "3"
    assert list(history.blocks) == ["0", "2", "3"]


def test_start_untimed_block():
    history = BlockHistory()
    _, block = history.start(["q1", "q2"], "Flagged", tags_chosen="Category: A")
    assert block.time_limit == -1
    assert block.answers == ["", ""]
    assert block.highlights == ["[]", "[]"]
    assert block.complete is False
    assert block.pool_label == "Flagged"
    assert block.tags_chosen == "Category: A"
    assert block.start_time


def test_start_timed_block():
    history = BlockHistory()
    _, block = history.start(["q1", "q2", "q3"], "Unused", timed=True, time_per_question=90)
    assert block.time_limit == 270


def test_get_unknown_block():
    with pytest.raises(UnknownBlockError):
        BlockHistory().get("7")
    with pytest.raises(KeyError):
        BlockHistory().delete("7")


def test_from_dict_derives_next_key_from_gaps():
    raw = {"0": {"blockqlist": ["q1"]}, "4": {"blockqlist": ["q2"]}}
    history = BlockHistory.from_dict(raw)
    assert history.next_key == 5
    assert BlockHistory.from_dict(raw, next_key=9).next_key == 9


def test_from_dict_drops_malformed_entries():
    history = BlockHistory.from_dict({"0": "junk", "1": {"blockqlist": ["q1"]}})
    assert list(history.blocks) == ["1"]
    assert BlockHistory.from_dict(None).blocks == {}


def test_iteration_is_in_numeric_order():
    history = BlockHistory.from_dict({str(k): {"blockqlist": ["q"]} for k in (10, 2, 1)})
    assert [key for key, _ in history] == ["1", "2", "10"]


def test_completed_and_paused():
    history = BlockHistory()
    history.start(["q1"], "Unused")
    _, done = history.start(["q2"], "Unused")
    done.complete = True
    assert history.completed() == [done]
    assert len(history.paused()) == 1


def test_score_block(two_tag_bank):
    ds = load_dataset(two_tag_bank)
    block = Block(question_ids=["q1", "q2", "q3"], answers=["A", "b", ""])
    assert score_block(block, ds) == 1
    assert answer_is_correct(ds, "q1", " a ")
    assert not answer_is_correct(ds, "q1", None)
