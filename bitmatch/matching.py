"""
Match Engine - pairwise fingerprint intersection scoring

Given two fingerprint blobs and any number of pass-through columns, emit at
most one scored row:

    (match, cardinality_0, cardinality_1, aux_0, ..., aux_{n-1})

Rules:
- A null, empty or corrupt blob on either side means "no comparison":
  nothing is emitted and the stream continues (corrupt blobs are logged)
- The vector with the smaller cardinality is scanned and probed against
  the larger one, so the cost is O(min(|left|, |right|))
- A zero intersection emits nothing; it is a filter, not an error
- Cardinalities are reported for the original left/right sides

Since distinct values may share a bit, match is an upper bound on the true
number of shared distinct values.
"""

from __future__ import annotations
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple
from dataclasses import dataclass
import logging

from .bitvector import SparseBitVector
from .codec import decode, is_absent
from .exceptions import CorruptEncodingError

logger = logging.getLogger(__name__)

MAIN_COLUMNS = ("match", "cardinality_0", "cardinality_1")
MAIN_PARAM_COUNT = 2


def column_names(aux_count: int) -> List[str]:
    """Output column names for a match with aux_count pass-through columns."""
    return list(MAIN_COLUMNS) + [f"aux_{i}" for i in range(aux_count)]


@dataclass(frozen=True)
class MatchResult:
    """One scored pair."""
    matched_count: int
    left_cardinality: int
    right_cardinality: int
    aux: Tuple[Any, ...] = ()

    def as_row(self) -> Tuple[Any, ...]:
        return (self.matched_count, self.left_cardinality, self.right_cardinality) + tuple(self.aux)

    def as_dict(self) -> Dict[str, Any]:
        return dict(zip(column_names(len(self.aux)), self.as_row()))

    def jaccard(self) -> float:
        """Estimated Jaccard similarity |A ∩ B| / |A ∪ B|."""
        union = self.left_cardinality + self.right_cardinality - self.matched_count
        return self.matched_count / union if union else 0.0

    def containment(self) -> float:
        """Share of the smaller side found in the larger side."""
        smaller = min(self.left_cardinality, self.right_cardinality)
        return self.matched_count / smaller if smaller else 0.0


def intersection_count(a: SparseBitVector, b: SparseBitVector) -> int:
    """Number of bits set in both vectors, scanning the smaller one."""
    if a.cardinality() > b.cardinality():
        small, big = b, a
    else:
        small, big = a, b
    contains = big.contains
    matched = 0
    for index in small:
        if contains(index):
            matched += 1
    return matched


def match_vectors(left: SparseBitVector, right: SparseBitVector,
                  aux: Sequence[Any] = ()) -> Optional[MatchResult]:
    """Score two decoded vectors; None when they share no bit."""
    matched = intersection_count(left, right)
    if matched == 0:
        return None
    return MatchResult(matched, left.cardinality(), right.cardinality(), tuple(aux))


def _decode_side(blob: Optional[bytes], side: str) -> Optional[SparseBitVector]:
    if is_absent(blob):
        return None
    try:
        return decode(blob)
    except CorruptEncodingError as e:
        logger.error("Skipping comparison, %s fingerprint is corrupt: %s", side, e)
        return None


def match(left_blob: Optional[bytes], right_blob: Optional[bytes],
          *aux: Any) -> Optional[MatchResult]:
    """
    Score two fingerprint blobs.

    Args:
        left_blob: Encoded left fingerprint (nullable)
        right_blob: Encoded right fingerprint (nullable)
        *aux: Pass-through values, copied to the result in order

    Returns:
        MatchResult, or None when no comparison is possible or nothing matched
    """
    left = _decode_side(left_blob, "left")
    if left is None:
        return None
    right = _decode_side(right_blob, "right")
    if right is None:
        return None
    return match_vectors(left, right, aux)


@dataclass
class MatchStats:
    compared: int = 0
    matched: int = 0
    skipped_absent: int = 0
    skipped_corrupt: int = 0

    @property
    def skipped(self) -> int:
        return self.skipped_absent + self.skipped_corrupt


class MatchEngine:
    """
    Match query over a stream of input rows.

    Each input row is (left_blob, right_blob, aux_0, ..., aux_{n-1}).
    When aux_count is given every row must carry exactly that many
    pass-through values; otherwise any number is accepted.
    """

    def __init__(self, aux_count: Optional[int] = None):
        if aux_count is not None and aux_count < 0:
            raise ValueError(f"aux_count must be >= 0, got {aux_count}")
        self.aux_count = aux_count
        self.stats = MatchStats()

    def column_names(self) -> List[str]:
        if self.aux_count is None:
            raise ValueError("Column names need a fixed aux_count")
        return column_names(self.aux_count)

    def process(self, left_blob: Optional[bytes], right_blob: Optional[bytes],
                *aux: Any) -> Optional[MatchResult]:
        """Score one input row; None means no output row."""
        if self.aux_count is not None and len(aux) != self.aux_count:
            raise ValueError(f"Expected {self.aux_count} pass-through values, got {len(aux)}")

        sides = []
        for blob, side in ((left_blob, "left"), (right_blob, "right")):
            if is_absent(blob):
                self.stats.skipped_absent += 1
                return None
            bv = _decode_side(blob, side)
            if bv is None:
                self.stats.skipped_corrupt += 1
                return None
            sides.append(bv)

        return self.process_vectors(sides[0], sides[1], *aux)

    def process_vectors(self, left: SparseBitVector, right: SparseBitVector,
                        *aux: Any) -> Optional[MatchResult]:
        """Score two already-decoded vectors."""
        self.stats.compared += 1
        result = match_vectors(left, right, aux)
        if result is not None:
            self.stats.matched += 1
        return result

    def process_rows(self, rows: Iterable[Sequence[Any]]) -> Iterator[MatchResult]:
        """Yield a result for every input row that produced one."""
        for row in rows:
            if len(row) < MAIN_PARAM_COUNT:
                raise ValueError(f"Match row needs at least {MAIN_PARAM_COUNT} values, got {len(row)}")
            result = self.process(*row)
            if result is not None:
                yield result


__all__ = [
    'MatchResult',
    'MatchStats',
    'MatchEngine',
    'match',
    'match_vectors',
    'intersection_count',
    'column_names',
]
