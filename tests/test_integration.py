# tests/test_integration.py
"""End-to-end test of the core workflow."""
import json

from qbank_tutor.controller import SessionController
from qbank_tutor.dashboard import get_tag_scores, overview_stats
from qbank_tutor.db import init_db


def test_full_practice_workflow(tmp_db, tmp_path, two_tag_bank):
    """Practice, delete, pause and reload a bank, checking the pools at each step."""
    init_db(tmp_db)
    home = str(tmp_path / "home")
    controller = SessionController(tmp_db, home)
    progress = controller.load_dataset(two_tag_bank)
    buckets = progress.buckets

    # Three questions tagged A, then deleted again
    first = controller.start_block(buckets.select("unused", 3, {"Category": ["A"]}), "unused")
    assert len(controller.progress.buckets.bucket("Category", "A").unused) == 2
    controller.delete_block(first)
    assert len(controller.progress.buckets.bucket("Category", "A").unused) == 5

    # A scored block, then a paused one
    second = controller.start_block(["q1", "q2", "q6", "q7"], "unused")
    controller.complete_block(second, answers=["A", "C", "A", ""], flagged=["q7"],
                              elapsed_time=80)
    third = controller.start_block(["q3"], "unused")
    controller.pause_block(third, answers=["B"])
    assert (first, second, third) == ("0", "1", "2")

    stats = overview_stats(controller.progress)
    assert stats["correct"] == 2
    assert stats["incorrect"] == 2
    assert stats["flagged"] == 1
    assert stats["seen"] == 5

    # Reload into a new controller
    reloaded = SessionController(tmp_db, home)
    progress = reloaded.load_dataset(two_tag_bank)
    assert [key for key, _ in progress.history] == ["1", "2"]
    assert progress.history.get("2").answers == ["B"]
    assert progress.buckets.pool_ids("incorrects") == ["q2"]
    assert progress.buckets.pool_ids("flagged") == ["q7"]
    assert progress.stats.to_dict() == {"total": 10, "correct": 2, "incorrect": 2, "flagged": 1}
    scores = {row["tag"]: row for row in get_tag_scores(progress)}
    assert scores["A"]["seen"] == 3
    assert scores["B"]["seen"] == 2

    # New block ids continue after the deleted one
    assert reloaded.start_block(["q4"]) == "3"

    legacy = json.loads((tmp_path / "bank" / "progress.json").read_text())
    assert legacy["nextblockkey"] == 4


def test_dataset_grows_between_sessions(tmp_db, tmp_path, make_dataset):
    """Questions added to a bank after progress was saved start out unused."""
    init_db(tmp_db)
    home = str(tmp_path / "home")
    index = {f"q{i}": ["A"] for i in range(1, 4)}
    bank = make_dataset(index, ["Category"])
    controller = SessionController(tmp_db, home)
    controller.load_dataset(bank)
    block_id = controller.start_block(["q1"])
    controller.complete_block(block_id, answers=["B"])

    index["q4"] = ["A"]
    make_dataset(index, ["Category"])
    progress = SessionController(tmp_db, home).load_dataset(bank)
    assert progress.stats.total == 4
    assert progress.buckets.pool_ids("unused") == ["q2", "q3", "q4"]
    assert progress.buckets.pool_ids("incorrects") == ["q1"]
