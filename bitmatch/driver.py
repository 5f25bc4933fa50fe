"""
Aggregation Driver - in-process group-by over (group_key, value) rows

Plays the role of the distributed query engine that drives the accumulator
lifecycle. Three execution shapes:

    aggregate(rows)                single stage, COMPLETE mode
    aggregate_stream(rows)         single stage over rows clustered by key,
                                   ONE accumulator reset between groups
    aggregate_distributed(rows)    PARTIAL_LOCAL per partition
                                   -> optional MERGE combiners
                                   -> FINAL per group

All three produce byte-identical blobs for the same rows: the encoding is
canonical and union does not depend on arrival order.

Multi-partition processing follows the batch pattern:
    partitions = driver.partition(rows)
    partials = [driver.partition_partials(p) for p in partitions]   # parallelizable
    finals = driver.combine(partials, AggregationMode.FINAL)
"""

from __future__ import annotations
from typing import Any, Callable, Dict, Hashable, Iterable, Iterator, List, Optional, Set, Tuple
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from itertools import groupby
from operator import itemgetter
import logging
import os

from .accumulator import AccumulatorPool, AggregationMode, GroupAccumulator
from .exceptions import CorruptEncodingError, UnsupportedValueError
from .hashing import DEFAULT_HASH_CONFIG, HashConfig
from .normalize import ValueKind

logger = logging.getLogger(__name__)

Row = Tuple[Hashable, Any]
Partials = Dict[Hashable, bytes]

GROUP_ERROR_POLICIES = ("raise", "skip")


@dataclass(frozen=True)
class DriverConfig:
    """
    Driver settings.

    Attributes:
        partitions: Number of worker partitions for distributed runs
        parallel: Process partitions on a thread pool
        max_workers: Thread pool size (None = CPU count)
        combiners: MERGE-stage combiners between partial and final (0 = none)
        kind: Declared ValueKind of the value column (None = infer per value)
        hash_config: Hash settings shared by every worker
        on_group_error: "raise" to fail the run, "skip" to drop the group
    """
    partitions: int = 4
    parallel: bool = False
    max_workers: Optional[int] = None
    combiners: int = 0
    kind: Optional[ValueKind] = None
    hash_config: HashConfig = DEFAULT_HASH_CONFIG
    on_group_error: str = "raise"

    def __post_init__(self):
        if self.partitions < 1:
            raise ValueError(f"partitions must be >= 1, got {self.partitions}")
        if self.combiners < 0:
            raise ValueError(f"combiners must be >= 0, got {self.combiners}")
        if self.max_workers is not None and self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers}")
        if self.on_group_error not in GROUP_ERROR_POLICIES:
            raise ValueError(
                f"on_group_error must be one of {GROUP_ERROR_POLICIES}, got {self.on_group_error!r}")


DEFAULT_DRIVER_CONFIG = DriverConfig()


class AggregationDriver:
    """Runs fingerprint aggregation over (group_key, value) rows."""

    def __init__(self, config: Optional[DriverConfig] = None):
        self.config = config or DEFAULT_DRIVER_CONFIG
        self.skipped_groups: Set[Hashable] = set()

    # -------------------------------------------------------------------------
    # Shared accumulation loop
    # -------------------------------------------------------------------------

    def _handle_group_error(self, key: Hashable, error: Exception) -> None:
        if self.config.on_group_error == "raise":
            raise error
        logger.warning("Skipping group %r: %s", key, error)

    def _accumulate(self, mode: AggregationMode, items: Iterable[Tuple[Hashable, Any]],
                    feed: Callable[[GroupAccumulator, Any], None]) -> Tuple[Partials, Set[Hashable]]:
        """
        Feed items into one accumulator per key, then emit every group.

        Returns:
            (blobs by key, keys whose aggregation failed)
        """
        pool = AccumulatorPool(mode, self.config.kind, self.config.hash_config)
        failed: Set[Hashable] = set()
        for key, item in items:
            if key in failed:
                continue
            acc = pool.acquire(key)
            try:
                feed(acc, item)
            except (UnsupportedValueError, CorruptEncodingError) as e:
                self._handle_group_error(key, e)
                failed.add(key)
                pool.release(key)

        blobs: Partials = {}
        for key in pool.slots():
            blobs[key] = pool.get(key).emit()
            pool.release(key)
        return blobs, failed

    # -------------------------------------------------------------------------
    # Single stage
    # -------------------------------------------------------------------------

    def aggregate(self, rows: Iterable[Row]) -> Partials:
        """Single-stage COMPLETE aggregation; returns final blobs by group key."""
        self.skipped_groups = set()
        blobs, failed = self._accumulate(AggregationMode.COMPLETE, rows, GroupAccumulator.ingest)
        self.skipped_groups = failed
        logger.info("Aggregated %d groups (%d skipped)", len(blobs), len(failed))
        return blobs

    def aggregate_stream(self, rows: Iterable[Row]) -> Iterator[Tuple[Hashable, bytes]]:
        """
        Single-stage aggregation over rows already clustered by group key.

        One accumulator is reset and reused for every group. A key that
        appears in two separate runs is emitted twice.
        """
        self.skipped_groups = set()
        acc = GroupAccumulator(AggregationMode.COMPLETE, self.config.kind, self.config.hash_config)
        for key, group in groupby(rows, key=itemgetter(0)):
            acc.begin()
            try:
                for _, value in group:
                    acc.ingest(value)
            except UnsupportedValueError as e:
                self._handle_group_error(key, e)
                self.skipped_groups.add(key)
                continue
            yield key, acc.emit_final()
        acc.reset()

    # -------------------------------------------------------------------------
    # Distributed
    # -------------------------------------------------------------------------

    def partition(self, rows: Iterable[Row]) -> List[List[Row]]:
        """Split rows round-robin into config.partitions partitions."""
        parts: List[List[Row]] = [[] for _ in range(self.config.partitions)]
        for i, row in enumerate(rows):
            parts[i % len(parts)].append(row)
        return parts

    def _partials_with_failures(self, rows: Iterable[Row]) -> Tuple[Partials, Set[Hashable]]:
        return self._accumulate(AggregationMode.PARTIAL_LOCAL, rows, GroupAccumulator.ingest)

    def partition_partials(self, rows: Iterable[Row]) -> Partials:
        """PARTIAL_LOCAL stage for one partition: partial blobs by group key."""
        blobs, _ = self._partials_with_failures(rows)
        return blobs

    def _combine_with_failures(self, partials: List[Partials],
                               mode: AggregationMode) -> Tuple[Partials, Set[Hashable]]:
        if not mode.merges:
            raise ValueError(f"Cannot combine partials in {mode.value} mode")
        items = ((key, blob) for part in partials for key, blob in part.items())
        return self._accumulate(mode, items, GroupAccumulator.merge_partial)

    def combine(self, partials: List[Partials],
                mode: AggregationMode = AggregationMode.FINAL) -> Partials:
        """MERGE or FINAL stage over partial blobs from any number of workers."""
        blobs, _ = self._combine_with_failures(partials, mode)
        return blobs

    def _map(self, fn: Callable, items: List) -> List:
        if self.config.parallel and len(items) > 1:
            max_workers = self.config.max_workers or os.cpu_count()
            with ThreadPoolExecutor(max_workers=max_workers) as executor:
                return list(executor.map(fn, items))
        return [fn(item) for item in items]

    def aggregate_distributed(self, rows: Iterable[Row]) -> Partials:
        """
        Multi-stage aggregation.

        Each partition accumulates its rows into partial blobs, optional
        combiners merge subsets of partials, and a final stage merges
        everything per group.
        """
        self.skipped_groups = set()
        parts = self.partition(rows)

        stage = self._map(self._partials_with_failures, parts)
        partials = [blobs for blobs, _ in stage]
        failed: Set[Hashable] = set().union(*(f for _, f in stage))

        if self.config.combiners:
            buckets: List[List[Partials]] = [[] for _ in range(self.config.combiners)]
            for i, part in enumerate(partials):
                buckets[i % len(buckets)].append(part)
            merged = self._map(
                lambda bucket: self._combine_with_failures(bucket, AggregationMode.MERGE),
                buckets)
            partials = [blobs for blobs, _ in merged]
            failed = failed.union(*(f for _, f in merged))

        finals, final_failed = self._combine_with_failures(partials, AggregationMode.FINAL)
        failed |= final_failed
        for key in failed:
            finals.pop(key, None)

        self.skipped_groups = failed
        logger.info("Aggregated %d groups over %d partitions (%d skipped)",
                    len(finals), len(parts), len(failed))
        return finals


__all__ = [
    'DriverConfig',
    'DEFAULT_DRIVER_CONFIG',
    'AggregationDriver',
]
