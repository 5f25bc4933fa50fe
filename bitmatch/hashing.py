"""
Value Hashing - MurmurHash3 bit-index mapping

Design principles:
- One hash, no collision resolution (collisions are accepted error)
- Deterministic across processes, platforms and releases
- Output is a non-negative bit index in [0, 2^31 - 1)

Hash Configuration:
    HashConfig is the SINGLE SOURCE OF TRUTH for hash settings.
    All modules that turn values into bit indices import from here:

        from .hashing import HashConfig, DEFAULT_HASH_CONFIG

    Hash config includes:
    - seed: MurmurHash3 seed (0 for fingerprint compatibility)
    - encoding: text encoding of the canonical string (UTF-16LE, so each
      UTF-16 code unit is hashed as two little-endian bytes)

    Changing either value changes every bit index, which invalidates all
    previously persisted fingerprints.

Usage:
    idx = DEFAULT_HASH_CONFIG.bit_index("hello")
    idx = bit_index("hello")
"""

from __future__ import annotations
from typing import Iterable, List
from dataclasses import dataclass
import struct

from .constants import DEFAULT_ENCODING, DEFAULT_SEED, INT32_MAX, MAX_BIT_INDEX


# =============================================================================
# MURMURHASH3 x86_32 - Pure Python implementation
# =============================================================================

_MASK32 = 0xFFFFFFFF
_C1 = 0xcc9e2d51
_C2 = 0x1b873593


def _rotl32(x: int, r: int) -> int:
    return ((x << r) | (x >> (32 - r))) & _MASK32


def murmur3_32(data: bytes, seed: int = 0) -> int:
    """
    MurmurHash3 x86 32-bit.

    Args:
        data: Bytes to hash
        seed: 32-bit seed value

    Returns:
        32-bit unsigned hash value
    """
    length = len(data)
    h = seed & _MASK32

    # Process 4-byte blocks
    nblocks = length // 4
    for (k,) in struct.iter_unpack('<I', data[:nblocks * 4]):
        k = (k * _C1) & _MASK32
        k = _rotl32(k, 15)
        k = (k * _C2) & _MASK32
        h ^= k
        h = _rotl32(h, 13)
        h = (h * 5 + 0xe6546b64) & _MASK32

    # Process remaining bytes
    tail = data[nblocks * 4:]
    remaining = len(tail)
    k = 0
    if remaining >= 3:
        k ^= tail[2] << 16
    if remaining >= 2:
        k ^= tail[1] << 8
    if remaining >= 1:
        k ^= tail[0]
        k = (k * _C1) & _MASK32
        k = _rotl32(k, 15)
        k = (k * _C2) & _MASK32
        h ^= k

    # Finalize
    h ^= length
    h ^= h >> 16
    h = (h * 0x85ebca6b) & _MASK32
    h ^= h >> 13
    h = (h * 0xc2b2ae35) & _MASK32
    h ^= h >> 16

    return h


# =============================================================================
# HASH CONFIGURATION - SINGLE SOURCE OF TRUTH
# =============================================================================

@dataclass(frozen=True)
class HashConfig:
    """
    Centralized hash configuration for fingerprinting.

    Attributes:
        seed: MurmurHash3 seed
        encoding: Encoding applied to the canonical string before hashing

    Example:
        >>> config = HashConfig(seed=0)
        >>> config.bit_index("hello")
    """
    seed: int = DEFAULT_SEED
    encoding: str = DEFAULT_ENCODING

    def hash(self, content: str) -> int:
        """Unsigned 32-bit MurmurHash3 of content."""
        return murmur3_32(content.encode(self.encoding), self.seed)

    def bit_index(self, content: str) -> int:
        """
        Map content to its bit index.

        The top bit is cleared before the modulo, so the result is always
        in [0, 2^31 - 1) whatever the sign of the 32-bit hash.
        """
        return (self.hash(content) & INT32_MAX) % MAX_BIT_INDEX

    def bit_indices(self, contents: Iterable[str]) -> List[int]:
        """Bit indices for a batch of strings, in input order."""
        return [self.bit_index(c) for c in contents]


DEFAULT_HASH_CONFIG = HashConfig()


def bit_index(content: str) -> int:
    """Bit index of content under DEFAULT_HASH_CONFIG."""
    return DEFAULT_HASH_CONFIG.bit_index(content)


__all__ = [
    'HashConfig',
    'DEFAULT_HASH_CONFIG',
    'murmur3_32',
    'bit_index',
]
