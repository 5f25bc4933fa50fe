# bitmatch/constants.py
"""
Bitmatch Constants

This module defines constants shared by the hashing, bit vector and codec layers:

LAYER 1: Hash Constants (Value Layer)
- DEFAULT_SEED: MurmurHash3 seed for bit-index hashing
- DEFAULT_ENCODING: Text encoding fed to the hash (UTF-16LE code units)
- MAX_BIT_INDEX: Exclusive upper bound of the bit-index domain

LAYER 2: Bit Vector Constants (Storage Layer)
- WORD_BITS: Bits per storage word
- NO_MORE_BITS: Sentinel returned when iteration is exhausted

LAYER 3: Codec Constants (Wire Layer)
- CODEC_MAGIC: Format tag and version prefix of every encoded blob

Any change to LAYER 1 or LAYER 3 invalidates previously persisted fingerprints.
"""


# =============================================================================
# LAYER 1: Hash Constants (Value Layer)
# =============================================================================

DEFAULT_SEED = 0
DEFAULT_ENCODING = "utf-16-le"

INT32_MAX = 0x7FFFFFFF
MAX_BIT_INDEX = INT32_MAX   # bit indices lie in [0, 2^31 - 1)


# =============================================================================
# LAYER 2: Bit Vector Constants (Storage Layer)
# =============================================================================

WORD_BITS = 64
WORD_SHIFT = 6              # log2(WORD_BITS)
WORD_MASK = WORD_BITS - 1
NO_MORE_BITS = -1

assert 1 << WORD_SHIFT == WORD_BITS, "WORD_SHIFT must match WORD_BITS"


# =============================================================================
# LAYER 3: Codec Constants (Wire Layer)
# =============================================================================

CODEC_MAGIC = b"SBV"
CODEC_VERSION = 1
