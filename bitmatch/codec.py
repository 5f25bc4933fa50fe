"""
Codec - binary encoding of SparseBitVector

The encoded blob travels as an opaque binary column value, so it carries
its own framing and integrity check.

Wire format (little-endian):
┌──────────┬───────────┬───────────┬──────────────────┬──────────────────┬──────────┐
│ magic    │ words     │ card      │ indices          │ bits             │ crc32    │
│ 4 bytes  │ uint32    │ uint32    │ words x uint32   │ words x uint64   │ uint32   │
│ "SBV" +  │ non-zero  │ set bits  │ ascending word   │ word payloads    │ of all   │
│ version  │ words     │           │ indices          │                  │ previous │
└──────────┴───────────┴───────────┴──────────────────┴──────────────────┴──────────┘

The empty vector encodes to a 16-byte blob (header + crc).

decode() rejects anything that is not exactly a blob produced by encode()
with CorruptEncodingError; it never returns a partial vector.
"""

from __future__ import annotations
from typing import Optional, Tuple
import struct
import zlib

import numpy as np

from .bitvector import SparseBitVector
from .constants import CODEC_MAGIC, CODEC_VERSION, MAX_BIT_INDEX, WORD_MASK, WORD_SHIFT
from .exceptions import CorruptEncodingError


_HEADER = struct.Struct('<4sII')
_TRAILER = struct.Struct('<I')
_MAGIC = CODEC_MAGIC + bytes([CODEC_VERSION])
_MAX_WORD_INDEX = (MAX_BIT_INDEX - 1) >> WORD_SHIFT

_BLOB_TYPES = (bytes, bytearray, memoryview)

_INDEX_DTYPE = np.dtype('<u4')
_WORD_DTYPE = np.dtype('<u8')


def is_absent(blob: Optional[bytes]) -> bool:
    """
    True for a null or zero-length blob (no fingerprint).

    Values of any other type are not absent; decode() rejects them.
    """
    return blob is None or (isinstance(blob, _BLOB_TYPES) and len(blob) == 0)


def encode(bv: SparseBitVector) -> bytes:
    """Serialize a bit vector into a self-describing blob."""
    indices, words = bv.to_arrays()
    body = b"".join([
        _HEADER.pack(_MAGIC, len(indices), bv.cardinality()),
        indices.astype(_INDEX_DTYPE, copy=False).tobytes(),
        words.astype(_WORD_DTYPE, copy=False).tobytes(),
    ])
    return body + _TRAILER.pack(zlib.crc32(body))


def _parse(blob) -> Tuple[int, np.ndarray, np.ndarray]:
    """
    Validate framing and return (cardinality, word_indices, words).

    Raises:
        CorruptEncodingError: on any structural problem
    """
    if not isinstance(blob, _BLOB_TYPES):
        raise CorruptEncodingError(f"Expected bytes, got {type(blob).__name__}")
    data = bytes(blob)

    minimum = _HEADER.size + _TRAILER.size
    if len(data) < minimum:
        raise CorruptEncodingError(f"Truncated blob: {len(data)} bytes, need at least {minimum}")

    magic, count, cardinality = _HEADER.unpack_from(data, 0)
    if magic[:3] != CODEC_MAGIC:
        raise CorruptEncodingError(f"Not a bit vector encoding (magic {magic[:3]!r})")
    if magic[3] != CODEC_VERSION:
        raise CorruptEncodingError(f"Unsupported encoding version {magic[3]}")

    expected = minimum + count * (_INDEX_DTYPE.itemsize + _WORD_DTYPE.itemsize)
    if len(data) != expected:
        raise CorruptEncodingError(
            f"Blob length {len(data)} does not match {count} words ({expected} bytes)")

    (checksum,) = _TRAILER.unpack_from(data, len(data) - _TRAILER.size)
    if zlib.crc32(data[:-_TRAILER.size]) != checksum:
        raise CorruptEncodingError("Checksum mismatch")

    if cardinality and not count:
        raise CorruptEncodingError(f"Cardinality {cardinality} with empty payload")
    if not count:
        return 0, np.empty(0, dtype=_INDEX_DTYPE), np.empty(0, dtype=_WORD_DTYPE)

    offset = _HEADER.size
    indices = np.frombuffer(data, dtype=_INDEX_DTYPE, count=count, offset=offset)
    offset += count * _INDEX_DTYPE.itemsize
    words = np.frombuffer(data, dtype=_WORD_DTYPE, count=count, offset=offset)

    if count > 1 and not np.all(np.diff(indices.astype(np.int64)) > 0):
        raise CorruptEncodingError("Word indices are not strictly ascending")
    if int(indices[-1]) > _MAX_WORD_INDEX:
        raise CorruptEncodingError(f"Word index {int(indices[-1])} out of range")
    if int(indices[-1]) == _MAX_WORD_INDEX and int(words[-1]) >> (MAX_BIT_INDEX & WORD_MASK):
        raise CorruptEncodingError(f"Bit index {MAX_BIT_INDEX} out of range")
    if not np.all(words != 0):
        raise CorruptEncodingError("Zero word in payload")
    if cardinality < count:
        raise CorruptEncodingError(f"Cardinality {cardinality} below word count {count}")

    return cardinality, indices, words


def decode(blob: bytes) -> SparseBitVector:
    """
    Deserialize a blob produced by encode().

    Raises:
        CorruptEncodingError: truncated, foreign or tampered input
    """
    cardinality, indices, words = _parse(blob)
    bv = SparseBitVector.from_arrays(indices, words)
    if bv.cardinality() != cardinality:
        raise CorruptEncodingError(
            f"Header cardinality {cardinality} != payload cardinality {bv.cardinality()}")
    return bv


def peek_cardinality(blob: bytes) -> int:
    """Header cardinality of a structurally valid blob, without building the vector."""
    cardinality, _, _ = _parse(blob)
    return cardinality


__all__ = [
    'encode',
    'decode',
    'peek_cardinality',
    'is_absent',
]
