"""
Group Accumulator - four-mode distributed aggregation lifecycle

Each group owns one SparseBitVector. The mode decides which inputs the
accumulator takes and what it emits:

    Mode            takes                 emits
    ─────────────   ───────────────────   ────────────────
    PARTIAL_LOCAL   raw values (ingest)   partial blob
    MERGE           partial blobs         partial blob
    FINAL           partial blobs         final blob
    COMPLETE        raw values (ingest)   final blob

Union is commutative, associative and idempotent, so partials can be merged
in any order and any fan-in topology with the same final blob.

Lifecycle (driven externally):
    acc = GroupAccumulator(AggregationMode.COMPLETE)
    acc.begin()
    for value in values:
        acc.ingest(value)
    blob = acc.emit_final()
    acc.reset()            # reuse for the next group

Failure semantics:
    - A null value or a null/empty partial contributes nothing
    - An unsupported value or a corrupt partial raises and marks the group
      as failed; further calls raise AccumulatorStateError until reset()
    - A corrupt partial is never partially applied
"""

from __future__ import annotations
from typing import Any, Dict, Hashable, Iterable, List, Optional
from enum import Enum
import logging

from .bitvector import SparseBitVector
from .codec import decode, encode, is_absent
from .exceptions import AccumulatorStateError, CorruptEncodingError, UnsupportedValueError
from .hashing import DEFAULT_HASH_CONFIG, HashConfig
from .normalize import ValueKind, canonicalizer_for

logger = logging.getLogger(__name__)


class AggregationMode(Enum):
    """Operating mode of a group accumulator."""
    PARTIAL_LOCAL = "partial_local"
    MERGE = "merge"
    FINAL = "final"
    COMPLETE = "complete"

    @property
    def ingests(self) -> bool:
        return self in (AggregationMode.PARTIAL_LOCAL, AggregationMode.COMPLETE)

    @property
    def merges(self) -> bool:
        return self in (AggregationMode.MERGE, AggregationMode.FINAL)

    @property
    def emits_final(self) -> bool:
        return self in (AggregationMode.FINAL, AggregationMode.COMPLETE)


class GroupAccumulator:
    """
    Aggregation buffer for one group.

    Args:
        mode: AggregationMode (or its string value)
        kind: Declared ValueKind of the ingested column; inferred per value if None
        hash_config: Hash settings (must match across every worker)
    """

    def __init__(self, mode: AggregationMode,
                 kind: Optional[ValueKind] = None,
                 hash_config: HashConfig = DEFAULT_HASH_CONFIG):
        self.mode = AggregationMode(mode)
        self.kind = kind
        self.hash_config = hash_config
        self.bits = SparseBitVector()
        self._canonical = canonicalizer_for(kind)
        self._failure: Optional[Exception] = None
        self.values_ingested = 0
        self.partials_merged = 0

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def begin(self) -> None:
        """Start a new group."""
        self.reset()

    def reset(self) -> None:
        """Zero the bit vector and clear failure state; storage is kept."""
        self.bits.clear()
        self._failure = None
        self.values_ingested = 0
        self.partials_merged = 0

    def _require(self, allowed: bool, operation: str) -> None:
        if not allowed:
            raise AccumulatorStateError(
                f"{operation}() is not allowed in {self.mode.value} mode")
        if self._failure is not None:
            raise AccumulatorStateError(
                f"{operation}() on a failed group: {self._failure}") from self._failure

    # -------------------------------------------------------------------------
    # Inputs
    # -------------------------------------------------------------------------

    def ingest(self, value: Any) -> None:
        """Hash one raw value into the group (PARTIAL_LOCAL / COMPLETE)."""
        self._require(self.mode.ingests, "ingest")
        try:
            text = self._canonical(value)
        except UnsupportedValueError as e:
            self._failure = e
            raise
        if text is None:
            return
        self.bits.set(self.hash_config.bit_index(text))
        self.values_ingested += 1

    def ingest_many(self, values: Iterable[Any]) -> None:
        for value in values:
            self.ingest(value)

    def merge_partial(self, blob: Optional[bytes]) -> None:
        """Union a serialized partial into the group (MERGE / FINAL)."""
        self._require(self.mode.merges, "merge_partial")
        if is_absent(blob):
            return
        try:
            partial = decode(blob)
        except CorruptEncodingError as e:
            self._failure = e
            raise
        self.bits.union(partial)
        self.partials_merged += 1

    # -------------------------------------------------------------------------
    # Terminal actions
    # -------------------------------------------------------------------------

    def emit_partial(self) -> bytes:
        """Serialize the group as a partial result (PARTIAL_LOCAL / MERGE)."""
        self._require(not self.mode.emits_final, "emit_partial")
        return encode(self.bits)

    def emit_final(self) -> bytes:
        """Serialize the group as its authoritative result (FINAL / COMPLETE)."""
        self._require(self.mode.emits_final, "emit_final")
        return encode(self.bits)

    def emit(self) -> bytes:
        """Whichever terminal action the mode calls for."""
        if self.mode.emits_final:
            return self.emit_final()
        return self.emit_partial()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def cardinality(self) -> int:
        return self.bits.cardinality()

    @property
    def failed(self) -> bool:
        return self._failure is not None

    def __repr__(self) -> str:
        state = "failed" if self.failed else f"|bits|={self.bits.cardinality()}"
        return f"GroupAccumulator({self.mode.value}, {state})"


class AccumulatorPool:
    """
    Reusable accumulators indexed by group slot.

    Released accumulators are reset and parked on a free list, so a
    streaming driver touching many groups allocates at most as many
    accumulators as it has groups open at once.

    Example:
        >>> pool = AccumulatorPool(AggregationMode.COMPLETE)
        >>> acc = pool.acquire("group-1")
        >>> acc.ingest("x")
        >>> blob = acc.emit_final()
        >>> pool.release("group-1")
    """

    def __init__(self, mode: AggregationMode,
                 kind: Optional[ValueKind] = None,
                 hash_config: HashConfig = DEFAULT_HASH_CONFIG):
        self.mode = AggregationMode(mode)
        self.kind = kind
        self.hash_config = hash_config
        self._active: Dict[Hashable, GroupAccumulator] = {}
        self._free: List[GroupAccumulator] = []
        self.created = 0

    def acquire(self, slot: Hashable) -> GroupAccumulator:
        """Accumulator for slot, begun on first acquisition."""
        acc = self._active.get(slot)
        if acc is not None:
            return acc
        if self._free:
            acc = self._free.pop()
        else:
            acc = GroupAccumulator(self.mode, self.kind, self.hash_config)
            self.created += 1
            logger.debug("Allocated accumulator #%d (%s)", self.created, self.mode.value)
        acc.begin()
        self._active[slot] = acc
        return acc

    def get(self, slot: Hashable) -> Optional[GroupAccumulator]:
        return self._active.get(slot)

    def release(self, slot: Hashable) -> None:
        """Reset the slot's accumulator and return it to the free list."""
        acc = self._active.pop(slot)
        acc.reset()
        self._free.append(acc)

    def slots(self) -> List[Hashable]:
        return list(self._active)

    def __contains__(self, slot) -> bool:
        return slot in self._active

    def __len__(self) -> int:
        return len(self._active)


__all__ = [
    'AggregationMode',
    'GroupAccumulator',
    'AccumulatorPool',
]
