"""
SparseBitVector - mutable sparse bit set over [0, 2^31 - 1)

Storage format:
    Bits are grouped into 64-bit words. Only non-zero words are stored,
    in a dict keyed by word index (bit_index >> 6). A sorted list of word
    indices is rebuilt lazily when a new word appears, so ascending
    iteration and next_set_bit() cost O(set bits), never O(domain).

Operations:
    - set / contains / clear / cardinality
    - next_set_bit(from_index) -> index or NO_MORE_BITS
    - union(other): in-place OR (idempotent, commutative, associative)

Bits are never removed individually; clear() empties the whole vector.

Usage:
    bv = SparseBitVector()
    bv.set(5)
    bv.set(1 << 30)
    other = SparseBitVector([5, 7])
    bv.union(other)
    list(bv)          # [5, 7, 1073741824]
"""

from __future__ import annotations
from typing import Dict, Iterable, Iterator, List, Optional, Tuple
from bisect import bisect_left
import operator

import numpy as np

from .constants import MAX_BIT_INDEX, NO_MORE_BITS, WORD_MASK, WORD_SHIFT


def _lowest_bit(word: int) -> int:
    """Position of the lowest set bit of a non-zero word."""
    return (word & -word).bit_length() - 1


class SparseBitVector:
    """
    Sparse bit set with O(set bits) iteration.

    Instances are mutable and must not be shared between groups; copy()
    when a second owner is needed.
    """

    __slots__ = ('_words', '_keys', '_cardinality')

    def __init__(self, indices: Optional[Iterable[int]] = None):
        self._words: Dict[int, int] = {}
        self._keys: Optional[List[int]] = []     # None = stale
        self._cardinality = 0
        if indices is not None:
            for index in indices:
                self.set(index)

    # -------------------------------------------------------------------------
    # Mutation
    # -------------------------------------------------------------------------

    def set(self, index: int) -> None:
        """Set one bit. Setting an already-set bit is a no-op."""
        index = operator.index(index)
        if not 0 <= index < MAX_BIT_INDEX:
            raise IndexError(f"Bit index {index} out of range [0, {MAX_BIT_INDEX})")

        key = index >> WORD_SHIFT
        bit = 1 << (index & WORD_MASK)
        word = self._words.get(key, 0)
        if word & bit:
            return
        if not word:
            self._keys = None
        self._words[key] = word | bit
        self._cardinality += 1

    def union(self, other: SparseBitVector) -> None:
        """
        Add every set bit of other to this vector (in place).

        Only words are touched, so the cost is O(non-zero words of other).
        """
        if other is self:
            return
        words = self._words
        added = 0
        new_key = False
        for key, bits in other._words.items():
            old = words.get(key, 0)
            merged = old | bits
            if merged != old:
                if not old:
                    new_key = True
                words[key] = merged
                added += (merged ^ old).bit_count()
        if new_key:
            self._keys = None
        self._cardinality += added

    def __ior__(self, other: SparseBitVector) -> SparseBitVector:
        self.union(other)
        return self

    def clear(self) -> None:
        """Remove all bits, keeping this instance reusable."""
        self._words.clear()
        self._keys = []
        self._cardinality = 0

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def contains(self, index: int) -> bool:
        index = operator.index(index)
        if not 0 <= index < MAX_BIT_INDEX:
            return False
        word = self._words.get(index >> WORD_SHIFT, 0)
        return bool((word >> (index & WORD_MASK)) & 1)

    def cardinality(self) -> int:
        """Number of set bits (an estimate of distinct values seen)."""
        return self._cardinality

    def next_set_bit(self, from_index: int) -> int:
        """
        Smallest set index >= from_index.

        Returns:
            The bit index, or NO_MORE_BITS (-1) when there is none
        """
        from_index = operator.index(from_index)
        if from_index < 0:
            raise IndexError(f"from_index {from_index} is negative")
        if from_index >= MAX_BIT_INDEX:
            return NO_MORE_BITS

        keys = self._sorted_keys()
        key = from_index >> WORD_SHIFT
        pos = bisect_left(keys, key)
        if pos < len(keys) and keys[pos] == key:
            shift = from_index & WORD_MASK
            word = (self._words[key] >> shift) << shift
            if word:
                return (key << WORD_SHIFT) + _lowest_bit(word)
            pos += 1
        if pos < len(keys):
            key = keys[pos]
            return (key << WORD_SHIFT) + _lowest_bit(self._words[key])
        return NO_MORE_BITS

    def _sorted_keys(self) -> List[int]:
        if self._keys is None:
            self._keys = sorted(self._words)
        return self._keys

    @property
    def word_count(self) -> int:
        """Number of non-zero 64-bit words held."""
        return len(self._words)

    # -------------------------------------------------------------------------
    # Array export / import (used by the codec)
    # -------------------------------------------------------------------------

    def to_arrays(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        Dump as (word_indices, words) numpy arrays.

        Returns:
            word_indices: ascending uint32 array
            words: uint64 array, words[i] holds bits of word_indices[i]
        """
        keys = self._sorted_keys()
        indices = np.array(keys, dtype=np.uint32)
        words = np.array([self._words[k] for k in keys], dtype=np.uint64)
        return indices, words

    @classmethod
    def from_arrays(cls, indices: np.ndarray, words: np.ndarray) -> SparseBitVector:
        """Rebuild from to_arrays() output. Zero words are dropped."""
        if len(indices) != len(words):
            raise ValueError(f"Length mismatch: {len(indices)} indices vs {len(words)} words")
        bv = cls()
        for key, word in zip(indices.tolist(), words.tolist()):
            if not word:
                continue
            if not 0 <= key <= (MAX_BIT_INDEX - 1) >> WORD_SHIFT:
                raise IndexError(f"Word index {key} out of range")
            old = bv._words.get(key, 0)
            bv._words[key] = old | word
            bv._cardinality += (old | word).bit_count() - old.bit_count()
        bv._keys = None
        return bv

    def copy(self) -> SparseBitVector:
        bv = SparseBitVector()
        bv._words = dict(self._words)
        bv._keys = None
        bv._cardinality = self._cardinality
        return bv

    # -------------------------------------------------------------------------
    # Python Protocols
    # -------------------------------------------------------------------------

    def __iter__(self) -> Iterator[int]:
        """Set bit indices in ascending order."""
        words = self._words
        for key in list(self._sorted_keys()):
            word = words[key]
            base = key << WORD_SHIFT
            while word:
                low = word & -word
                yield base + low.bit_length() - 1
                word ^= low

    def __len__(self) -> int:
        return self._cardinality

    def __contains__(self, index) -> bool:
        return self.contains(index)

    def __eq__(self, other) -> bool:
        if not isinstance(other, SparseBitVector):
            return NotImplemented
        return self._words == other._words

    __hash__ = None  # mutable

    def __repr__(self) -> str:
        return f"SparseBitVector(|bits|={self._cardinality}, words={len(self._words)})"


__all__ = [
    'SparseBitVector',
]
