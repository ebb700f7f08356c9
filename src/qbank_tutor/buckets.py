"""Tag buckets: per (dimension, tag value) pools of question ids.

Every question has exactly one tag value per dimension, so it lives in exactly
one bucket per dimension. Pool membership (unused / incorrects / flagged) has
to agree across all of those buckets; the mutators here are the only code that
writes pools and they always touch every dimension together.
"""
import logging
import random

from qbank_tutor.models import Bucket, MUTABLE_POOLS, POOLS

logger = logging.getLogger(__name__)


def _check_pool(pool: str, allowed=MUTABLE_POOLS) -> None:
    if pool not in allowed:
        raise ValueError(f"Unknown pool {pool!r}; expected one of {', '.join(allowed)}")


class BucketIndex:
    def __init__(self, taxonomy, index: dict):
        self.taxonomy = taxonomy
        self.index = index
        self.buckets = {dim: {} for dim in taxonomy.dimensions}

    @classmethod
    def build(cls, taxonomy, index: dict) -> "BucketIndex":
        """Create every bucket with all questions unused, in index order."""
        bucket_index = cls(taxonomy, index)
        for i, dim in enumerate(taxonomy.dimensions):
            by_value = bucket_index.buckets[dim]
            for qid, values in index.items():
                value = values[i]
                bucket = by_value.get(value)
                if bucket is None:
                    by_value[value] = Bucket(all=[qid], unused=[qid])
                else:
                    bucket.all.append(qid)
                    bucket.unused.append(qid)
        return bucket_index

    def _buckets_for(self, qid: str) -> list[Bucket]:
        values = self.index.get(qid)
        if values is None:
            return []
        return [self.buckets[dim][values[i]] for i, dim in enumerate(self.taxonomy.dimensions)]

    def bucket(self, dimension: str, value: str) -> Bucket:
        return self.buckets[dimension][value]

    def is_in_bucket(self, qid: str, pool: str) -> bool:
        # Dimension 0 is authoritative for reads; writes keep the others in step.
        _check_pool(pool, POOLS)
        values = self.index.get(qid)
        if values is None:
            return False
        first = self.taxonomy.dimensions[0]
        return qid in getattr(self.buckets[first][values[0]], pool)

    def add_to_bucket(self, qid: str, pool: str) -> None:
        _check_pool(pool)
        buckets = self._buckets_for(qid)
        if not buckets:
            logger.warning("Ignoring add of unknown question %s to %s", qid, pool)
        for bucket in buckets:
            ids = getattr(bucket, pool)
            if qid not in ids:
                ids.append(qid)

    def remove_from_bucket(self, qid: str, pool: str) -> None:
        _check_pool(pool)
        for bucket in self._buckets_for(qid):
            ids = getattr(bucket, pool)
            if qid in ids:
                ids.remove(qid)

    def move(self, qid: str, from_pool: str, to_pool: str) -> None:
        """Move a question between pools in every dimension."""
        _check_pool(from_pool)
        _check_pool(to_pool)
        self.remove_from_bucket(qid, from_pool)
        self.add_to_bucket(qid, to_pool)

    def pool_ids(self, pool: str, tags: dict = None) -> list[str]:
        """Question ids in a pool, optionally limited to selected tag values.

        ``tags`` maps dimension name -> iterable of values. A question matches
        when, for every listed dimension, its value is one of those selected.
        """
        _check_pool(pool, POOLS)
        positions = {dim: i for i, dim in enumerate(self.taxonomy.dimensions)}
        wanted = {}
        for dim, values in (tags or {}).items():
            if dim not in positions:
                raise ValueError(f"Unknown tag dimension {dim!r}")
            wanted[positions[dim]] = set(values)
        first = self.taxonomy.dimensions[0]
        result = []
        for bucket in self.buckets[first].values():
            for qid in getattr(bucket, pool):
                classification = self.index[qid]
                if all(classification[i] in values for i, values in wanted.items()):
                    result.append(qid)
        return result

    def select(self, pool: str, count: int, tags: dict = None, rng=None) -> list[str]:
        """Randomly draw up to ``count`` question ids from a pool."""
        ids = self.pool_ids(pool, tags)
        rng = rng or random
        return rng.sample(ids, min(max(count, 0), len(ids)))

    def counts(self, dimension: str = None) -> dict:
        """Pool sizes per tag value for one dimension (dimension 0 by default)."""
        dim = dimension or self.taxonomy.dimensions[0]
        return {
            value: {pool: len(getattr(bucket, pool)) for pool in POOLS}
            for value, bucket in self.buckets[dim].items()
        }

    def total(self, pool: str) -> int:
        first = self.taxonomy.dimensions[0]
        return sum(len(getattr(b, pool)) for b in self.buckets[first].values())

    def to_dict(self) -> dict:
        return {
            dim: {value: bucket.to_dict() for value, bucket in by_value.items()}
            for dim, by_value in self.buckets.items()
        }

    def restore(self, persisted: dict) -> int:
        """Overlay persisted pool membership onto this freshly built index.

        Membership is read from the persisted first dimension and written to
        every dimension, so a persisted file with disagreeing dimensions is
        repaired rather than trusted. Ids no longer in the dataset are dropped
        and questions the persisted state never saw stay unused. Returns the
        number of questions whose state was restored.
        """
        first = self.taxonomy.dimensions[0]
        saved = persisted.get(first) if isinstance(persisted, dict) else None
        if not isinstance(saved, dict):
            logger.warning("No saved buckets for dimension %r; keeping fresh buckets", first)
            return 0

        membership = {qid: {"unused"} for qid in self.index}
        restored = 0
        for value, bucket in self.buckets[first].items():
            saved_bucket = saved.get(value)
            if not isinstance(saved_bucket, dict):
                continue
            pools = {}
            for pool in POOLS:
                ids = saved_bucket.get(pool)
                pools[pool] = {str(q) for q in ids} if isinstance(ids, list) else set()
            known = pools["all"] or set().union(*(pools[p] for p in MUTABLE_POOLS))
            for qid in bucket.all:
                if qid in known:
                    membership[qid] = {p for p in MUTABLE_POOLS if qid in pools[p]}
                    restored += 1

        for by_value in self.buckets.values():
            for bucket in by_value.values():
                for pool in MUTABLE_POOLS:
                    setattr(bucket, pool, [q for q in bucket.all if pool in membership[q]])
        return restored
