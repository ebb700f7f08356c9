"""Progress aggregate: tag buckets, block history and running stats for one bank."""
import copy
import logging

from qbank_tutor.blocks import BlockHistory, answer_is_correct, score_block
from qbank_tutor.buckets import BucketIndex
from qbank_tutor.models import Stats, coerce_count

logger = logging.getLogger(__name__)


def has_saved_progress(persisted) -> bool:
    """True when persisted progress carries a non-zero stat or a non-empty bucket map."""
    if not isinstance(persisted, dict):
        return False
    if Stats.from_dict(persisted.get("stats")).any_nonzero():
        return True
    tagbuckets = persisted.get("tagbuckets")
    return isinstance(tagbuckets, dict) and any(
        isinstance(by_value, dict) and by_value for by_value in tagbuckets.values()
    )


class ProgressAggregate:
    def __init__(self, dataset, buckets: BucketIndex, history: BlockHistory, stats: Stats):
        self.dataset = dataset
        self.buckets = buckets
        self.history = history
        self.stats = stats

    @classmethod
    def fresh(cls, dataset) -> "ProgressAggregate":
        buckets = BucketIndex.build(dataset.taxonomy, dataset.index)
        return cls(dataset, buckets, BlockHistory(), Stats(total=len(dataset)))

    @classmethod
    def reconcile(cls, dataset, persisted) -> "ProgressAggregate":
        """Sanitize persisted progress and merge it into a fresh aggregate.

        Buckets are always rebuilt from the dataset; only pool membership,
        block history and the coerced counters are taken from ``persisted``.
        ``stats.total`` always reflects the live question count.
        """
        progress = cls.fresh(dataset)
        if not has_saved_progress(persisted):
            logger.info("No saved progress to merge for %s", dataset.path)
            return progress

        progress.stats = Stats.from_dict(persisted.get("stats"))
        tagbuckets = persisted.get("tagbuckets")
        if isinstance(tagbuckets, dict) and tagbuckets:
            restored = progress.buckets.restore(tagbuckets)
            logger.info("Restored pool state for %d of %d questions", restored, len(dataset))
        next_key = persisted.get("nextblockkey")
        progress.history = BlockHistory.from_dict(
            persisted.get("blockhist"),
            coerce_count(next_key) if next_key is not None else None,
        )
        progress.stats.total = len(dataset)
        return progress

    def clone(self) -> "ProgressAggregate":
        """Independent copy sharing the (immutable) dataset."""
        buckets = BucketIndex(self.dataset.taxonomy, self.dataset.index)
        buckets.buckets = copy.deepcopy(self.buckets.buckets)
        history = BlockHistory(copy.deepcopy(self.history.blocks), self.history.next_key)
        return ProgressAggregate(self.dataset, buckets, history, copy.deepcopy(self.stats))

    def start_block(self, question_ids: list, pool_label: str, **options) -> str:
        if not question_ids:
            raise ValueError("Cannot start a block with no questions")
        unknown = [qid for qid in question_ids if qid not in self.dataset.index]
        if unknown:
            raise ValueError(f"Unknown question ids: {', '.join(unknown)}")
        for qid in question_ids:
            if self.buckets.is_in_bucket(qid, "unused"):
                self.buckets.remove_from_bucket(qid, "unused")
        block_id, _ = self.history.start(question_ids, pool_label, **options)
        logger.info("Started block %s with %d questions from %s",
                    block_id, len(question_ids), pool_label)
        return block_id

    def update_block(self, block_id, answers=None, highlights=None, elapsed_time=None,
                     current_question=None, flagged=None):
        block = self.history.get(block_id)
        size = len(block.question_ids)
        for name, values in (("answers", answers), ("highlights", highlights)):
            if values is not None and len(values) != size:
                raise ValueError(f"Block {block_id} has {size} questions, got {len(values)} {name}")
        if answers is not None:
            block.answers = list(answers)
        if highlights is not None:
            block.highlights = list(highlights)
        if elapsed_time is not None:
            block.elapsed_time = elapsed_time
        if current_question is not None:
            block.current_question = min(max(int(current_question), 0), max(size - 1, 0))
        if flagged is not None:
            wanted = set(flagged)
            block.flagged = [qid for qid in block.question_ids if qid in wanted]
        return block

    def complete_block(self, block_id, **updates):
        """Score a block and file its questions into incorrects/flagged.

        Flagged questions go to ``flagged``; wrong or unanswered ones go to
        ``incorrects``; correct ones leave both. A question ends up in at most
        one of unused/incorrects/flagged.
        """
        block = self.update_block(block_id, **updates)
        block.num_correct = score_block(block, self.dataset)
        block.complete = True
        flagged = set(block.flagged)
        for qid, answer in zip(block.question_ids, block.answers):
            self.buckets.remove_from_bucket(qid, "unused")
            if qid in flagged:
                self.buckets.move(qid, "incorrects", "flagged")
            elif answer_is_correct(self.dataset, qid, answer):
                self.buckets.remove_from_bucket(qid, "incorrects")
                self.buckets.remove_from_bucket(qid, "flagged")
            else:
                self.buckets.move(qid, "flagged", "incorrects")
        self.refresh_stats()
        logger.info("Completed block %s: %d/%d correct",
                    block_id, block.num_correct, len(block.question_ids))
        return block

    def delete_block(self, block_id):
        """Return a block's questions to unused and erase it from history."""
        block = self.history.get(block_id)
        for qid in block.question_ids:
            if qid not in self.dataset.index:
                continue
            if self.buckets.is_in_bucket(qid, "incorrects"):
                self.buckets.remove_from_bucket(qid, "incorrects")
            if self.buckets.is_in_bucket(qid, "flagged"):
                self.buckets.remove_from_bucket(qid, "flagged")
            self.buckets.add_to_bucket(qid, "unused")
        self.history.delete(block_id)
        self.refresh_stats()
        logger.info("Deleted block %s", block_id)
        return block

    def refresh_stats(self) -> Stats:
        completed = self.history.completed()
        correct = sum(block.num_correct for block in completed)
        answered = sum(len(block.question_ids) for block in completed)
        self.stats = Stats(
            total=len(self.dataset),
            correct=correct,
            incorrect=max(0, answered - correct),
            flagged=self.buckets.total("flagged"),
        )
        return self.stats

    def to_dict(self) -> dict:
        return {
            "blockhist": self.history.to_dict(),
            "tagbuckets": self.buckets.to_dict(),
            "stats": self.stats.to_dict(),
            "nextblockkey": self.history.next_key,
        }
