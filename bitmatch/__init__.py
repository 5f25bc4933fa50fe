"""
Bitmatch - hashed-value fingerprints for approximate record linkage

This package provides:
- hashing: MurmurHash3 value -> bit-index mapping (HashConfig)
- normalize: canonical text form of scalar values
- bitvector: SparseBitVector, a sparse bit set with O(set bits) iteration
- codec: self-describing binary encoding of bit vectors
- accumulator: four-mode group aggregation lifecycle
- matching: pairwise intersection scoring of fingerprints
- driver: in-process (optionally multi-stage) group-by aggregation
- store: DuckDB-backed fingerprint persistence and client path

================================================================================
IMPORTANT: fingerprints are APPROXIMATE
================================================================================

Every distinct value maps to ONE bit. Distinct values that collide share a
bit, so cardinality() can undercount distinct values and match counts are an
upper bound on the true overlap. This is accepted error, not a defect.

Pipeline:
    values -> canonicalize -> bit_index -> GroupAccumulator (per partition)
           -> encode (partials) -> merge_partial -> encode (final blob)
           -> store -> match -> (match, cardinality_0, cardinality_1, aux...)
"""

__version__ = "0.1.0"

from .constants import MAX_BIT_INDEX, NO_MORE_BITS
from .exceptions import (
    BitMatchError,
    UnsupportedValueError,
    CorruptEncodingError,
    AccumulatorStateError,
)
from .hashing import HashConfig, DEFAULT_HASH_CONFIG, murmur3_32, bit_index
from .normalize import ValueKind, canonicalize, canonicalizer_for, infer_kind
from .bitvector import SparseBitVector
from .codec import encode, decode, peek_cardinality, is_absent
from .accumulator import AggregationMode, GroupAccumulator, AccumulatorPool
from .matching import (
    MatchResult,
    MatchStats,
    MatchEngine,
    match,
    match_vectors,
    intersection_count,
    column_names,
)
from .driver import AggregationDriver, DriverConfig, DEFAULT_DRIVER_CONFIG

__all__ = [
    "MAX_BIT_INDEX",
    "NO_MORE_BITS",
    "BitMatchError",
    "UnsupportedValueError",
    "CorruptEncodingError",
    "AccumulatorStateError",
    "HashConfig",
    "DEFAULT_HASH_CONFIG",
    "murmur3_32",
    "bit_index",
    "ValueKind",
    "canonicalize",
    "canonicalizer_for",
    "infer_kind",
    "SparseBitVector",
    "encode",
    "decode",
    "peek_cardinality",
    "is_absent",
    "AggregationMode",
    "GroupAccumulator",
    "AccumulatorPool",
    "MatchResult",
    "MatchStats",
    "MatchEngine",
    "match",
    "match_vectors",
    "intersection_count",
    "column_names",
    "AggregationDriver",
    "DriverConfig",
    "DEFAULT_DRIVER_CONFIG",
]
