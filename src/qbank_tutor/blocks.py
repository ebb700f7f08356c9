"""Block history: the keyed log of practice sessions."""
import logging
from datetime import datetime

from qbank_tutor.errors import UnknownBlockError
from qbank_tutor.models import Block

logger = logging.getLogger(__name__)


def _key_number(key) -> int:
    try:
        return int(key)
    except (TypeError, ValueError):
        return -1


class BlockHistory:
    """Blocks keyed by stringified integers. Keys are never renumbered or reused."""

    def __init__(self, blocks: dict = None, next_key: int = None):
        self.blocks = dict(blocks or {})
        floor = max([len(self.blocks)] + [_key_number(k) + 1 for k in self.blocks])
        self.next_key = max(floor, next_key or 0)

    @classmethod
    def from_dict(cls, raw, next_key=None) -> "BlockHistory":
        blocks = {}
        if isinstance(raw, dict):
            for key, data in raw.items():
                if not isinstance(data, dict):
                    logger.warning("Dropping malformed block %r", key)
                    continue
                blocks[str(key)] = Block.from_dict(data)
        return cls(blocks, next_key if isinstance(next_key, int) else None)

    def to_dict(self) -> dict:
        return {key: block.to_dict() for key, block in self.blocks.items()}

    def __len__(self) -> int:
        return len(self.blocks)

    def __contains__(self, block_id) -> bool:
        return str(block_id) in self.blocks

    def __iter__(self):
        return iter(sorted(self.blocks.items(), key=lambda kv: _key_number(kv[0])))

    def get(self, block_id) -> Block:
        try:
            return self.blocks[str(block_id)]
        except KeyError:
            raise UnknownBlockError(str(block_id)) from None

    def start(
        self,
        question_ids: list,
        pool_label: str,
        tags_chosen: str = "",
        all_subtags_enabled: bool = True,
        timed: bool = False,
        time_per_question: int = 0,
        show_answers: bool = False,
    ) -> tuple[str, Block]:
        """Append a new block and return ``(block_id, block)``."""
        block_id = str(self.next_key)
        self.next_key += 1
        block = Block(
            question_ids=list(question_ids),
            time_limit=time_per_question * len(question_ids) if timed else -1,
            pool_label=pool_label,
            tags_chosen=tags_chosen,
            all_subtags_enabled=all_subtags_enabled,
            start_time=datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            show_answers=show_answers,
        )
        self.blocks[block_id] = block
        return block_id, block

    def delete(self, block_id) -> Block:
        block = self.get(block_id)
        del self.blocks[str(block_id)]
        return block

    def completed(self) -> list[Block]:
        return [block for _, block in self if block.complete]

    def paused(self) -> list[Block]:
        return [block for _, block in self if not block.complete]


def answer_is_correct(dataset, qid: str, answer) -> bool:
    if not answer or not isinstance(answer, str):
        return False
    return answer.strip().upper() == dataset.correct_answer(qid).strip().upper()


def score_block(block: Block, dataset) -> int:
    """Number of answers matching the dataset's correct letter."""
    return sum(
        1
        for qid, answer in zip(block.question_ids, block.answers)
        if answer_is_correct(dataset, qid, answer)
    )
