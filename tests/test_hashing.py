"""
Tests for value hashing and canonicalization
"""

import datetime
import decimal

import numpy as np
import pytest

from bitmatch.constants import MAX_BIT_INDEX
from bitmatch.exceptions import UnsupportedValueError
from bitmatch.hashing import DEFAULT_HASH_CONFIG, HashConfig, bit_index, murmur3_32
from bitmatch.normalize import ValueKind, canonicalize, canonicalizer_for, infer_kind


class TestMurmur3:
    @pytest.mark.parametrize("data, seed, expected", [
        (b"", 0, 0),
        (b"", 1, 0x514E28B7),
        (b"", 0xFFFFFFFF, 0x81F16F39),
        (b"\x00\x00\x00\x00", 0, 0x2362F9DE),
        (b"hello", 0, 0x248BFA47),
        (b"aaaa", 0x9747B28C, 0x5A97808A),
        (b"Hello, world!", 0x9747B28C, 0x24884CBA),
        (b"The quick brown fox jumps over the lazy dog", 0x9747B28C, 0x2FA826CD),
    ])
    def test_reference_vectors(self, data, seed, expected):
        assert murmur3_32(data, seed) == expected

    def test_result_is_unsigned_32_bit(self):
        for i in range(200):
            h = murmur3_32(str(i).encode(), 0)
            assert 0 <= h <= 0xFFFFFFFF


class TestHashConfig:
    def test_default_config_hashes_utf16le_code_units(self):
        assert DEFAULT_HASH_CONFIG.hash("ab") == murmur3_32("ab".encode("utf-16-le"), 0)

    def test_bit_index_in_range(self):
        for i in range(500):
            idx = bit_index(f"value-{i}")
            assert 0 <= idx < MAX_BIT_INDEX

    def test_bit_index_deterministic(self):
        assert bit_index("hello") == bit_index("hello")
        assert HashConfig().bit_index("hello") == bit_index("hello")

    def test_bit_index_clears_top_bit_before_modulo(self):
        config = HashConfig()
        h = config.hash("hello")
        assert config.bit_index("hello") == (h & 0x7FFFFFFF) % 0x7FFFFFFF

    def test_seed_changes_indices(self):
        assert HashConfig(seed=1).bit_index("hello") != HashConfig(seed=0).bit_index("hello")

    def test_config_is_frozen(self):
        with pytest.raises(Exception):
            DEFAULT_HASH_CONFIG.seed = 7

    def test_bit_indices_batch(self):
        values = ["a", "b", "c"]
        assert DEFAULT_HASH_CONFIG.bit_indices(values) == [bit_index(v) for v in values]


class TestCanonicalize:
    def test_null_contributes_nothing(self):
        assert canonicalize(None) is None

    def test_boolean(self):
        assert canonicalize(True) == "true"
        assert canonicalize(False) == "false"
        assert canonicalize(np.bool_(True)) == "true"

    def test_integer(self):
        assert canonicalize(42) == "42"
        assert canonicalize(-7) == "-7"
        assert canonicalize(np.int64(5)) == "5"

    @pytest.mark.parametrize("value, expected", [
        (1.0, "1.0"),
        (-0.5, "-0.5"),
        (123.456, "123.456"),
        (100.0, "100.0"),
        (0.001, "0.001"),
        (9999999.0, "9999999.0"),
        (1e7, "1.0E7"),
        (1e10, "1.0E10"),
        (1.5e-5, "1.5E-5"),
        (0.0001, "1.0E-4"),
        (0.0, "0.0"),
        (-0.0, "-0.0"),
        (float("nan"), "NaN"),
        (float("inf"), "Infinity"),
        (float("-inf"), "-Infinity"),
    ])
    def test_double_uses_java_text(self, value, expected):
        assert canonicalize(value) == expected

    def test_float32_uses_shortest_32_bit_digits(self):
        assert canonicalize(np.float32(0.1)) == "0.1"
        assert canonicalize(np.float32(2.5)) == "2.5"

    def test_int_as_double_kind(self):
        assert canonicalize(3, ValueKind.DOUBLE) == "3.0"

    @pytest.mark.parametrize("value, expected", [
        (decimal.Decimal("1.50"), "15"),
        (decimal.Decimal("-12.340"), "1234"),
        (decimal.Decimal("100"), "100"),
        (decimal.Decimal("1E+2"), "100"),
        (decimal.Decimal("0.05"), "5"),
        (decimal.Decimal("0.00"), "0"),
    ])
    def test_decimal_digits_only(self, value, expected):
        assert canonicalize(value) == expected

    def test_decimal_nan_rejected(self):
        with pytest.raises(UnsupportedValueError):
            canonicalize(decimal.Decimal("NaN"))

    def test_date(self):
        assert canonicalize(datetime.date(2024, 1, 5)) == "2024-01-05"
        assert canonicalize(datetime.date(999, 12, 31)) == "0999-12-31"

    def test_timestamp(self):
        assert canonicalize(datetime.datetime(2024, 1, 5, 10, 30)) == "2024-01-05 10:30:00"
        assert canonicalize(datetime.datetime(2024, 1, 5, 10, 30, 0, 500000)) == "2024-01-05 10:30:00.5"
        assert canonicalize(datetime.datetime(2024, 1, 5, 0, 0, 1, 123)) == "2024-01-05 00:00:01.000123"

    def test_date_kind_truncates_timestamp(self):
        assert canonicalize(datetime.datetime(2024, 1, 5, 10, 30), ValueKind.DATE) == "2024-01-05"

    def test_strings(self):
        assert canonicalize("  padded  ") == "  padded  "
        assert canonicalize("ab  ", ValueKind.CHAR) == "ab"
        assert canonicalize("ab  ", ValueKind.VARCHAR) == "ab  "

    def test_binary_contributes_nothing(self):
        assert canonicalize(b"\x00\x01") is None
        assert canonicalize(bytearray(b"x")) is None

    @pytest.mark.parametrize("value", [object(), [1, 2], {"a": 1}, (1,)])
    def test_unsupported_types_raise(self, value):
        with pytest.raises(UnsupportedValueError):
            canonicalize(value)

    def test_kind_mismatch_raises(self):
        with pytest.raises(UnsupportedValueError):
            canonicalize("x", ValueKind.INTEGER)
        with pytest.raises(UnsupportedValueError):
            canonicalize(True, ValueKind.INTEGER)
        with pytest.raises(UnsupportedValueError):
            canonicalize(5, ValueKind.STRING)

    def test_unsupported_error_is_value_error(self):
        with pytest.raises(ValueError):
            canonicalize(object())

    def test_infer_kind_order(self):
        assert infer_kind(True) is ValueKind.BOOLEAN
        assert infer_kind(1) is ValueKind.INTEGER
        assert infer_kind(datetime.datetime(2020, 1, 1)) is ValueKind.TIMESTAMP
        assert infer_kind(datetime.date(2020, 1, 1)) is ValueKind.DATE

    def test_canonicalizer_for_binds_kind(self):
        as_char = canonicalizer_for(ValueKind.CHAR)
        assert as_char("x  ") == "x"
        assert as_char(None) is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
