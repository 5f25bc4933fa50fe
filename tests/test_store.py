"""
Tests for the DuckDB fingerprint store
"""

import numpy as np
import pytest

from bitmatch.accumulator import AggregationMode, GroupAccumulator
from bitmatch.codec import decode
from bitmatch.driver import AggregationDriver, DriverConfig
from bitmatch.exceptions import CorruptEncodingError
from bitmatch.hashing import bit_index
from bitmatch.normalize import ValueKind
from bitmatch.store import NULL_GROUP, WHOLE_TABLE_GROUP, FingerprintStore, duckdb_kind


def _fingerprint(*values):
    acc = GroupAccumulator(AggregationMode.COMPLETE)
    acc.ingest_many(values)
    return acc.emit_final()


@pytest.fixture
def store():
    s = FingerprintStore()
    s.conn.execute("""
        CREATE TABLE liabilities AS
        SELECT id, informer, currency, due_date, CAST(amount AS DOUBLE) AS amount
        FROM (VALUES
            (1, 'acme',   'USD', DATE '2024-01-31', 10.5),
            (2, 'acme',   'EUR', DATE '2024-02-29', 20.0),
            (3, 'acme',   'USD', DATE '2024-01-31', NULL),
            (4, 'globex', 'GBP', DATE '2023-12-31', 7.25),
            (5, 'globex', NULL,  DATE '2024-01-31', 10.5)
        ) t(id, informer, currency, due_date, amount)
    """)
    s.conn.execute("""
        CREATE TABLE deals AS
        SELECT * FROM (VALUES
            ('d1', 'USD'), ('d1', 'JPY'), ('d2', 'CHF')
        ) t(deal, currency)
    """)
    yield s
    s.close()


class TestBlobOperations:
    def test_put_get(self, store):
        blob = _fingerprint("a", "b")
        assert store.put("src", "col", "g1", blob) == 2
        assert store.get("src", "col", "g1") == blob
        assert store.cardinality("src", "col", "g1") == 2
        assert store.get("src", "col", "missing") is None
        assert store.cardinality("src", "col", "missing") is None

    def test_put_replaces(self, store):
        store.put("src", "col", "g1", _fingerprint("a"))
        store.put("src", "col", "g1", _fingerprint("a", "b", "c"))
        assert store.cardinality("src", "col", "g1") == 3
        assert store.stats()["fingerprints"] == 1

    def test_put_rejects_corrupt_blob(self, store):
        with pytest.raises(CorruptEncodingError):
            store.put("src", "col", "g1", b"junk")
        assert store.get("src", "col", "g1") is None

    def test_groups_and_delete(self, store):
        for key in ("b", "a", "c"):
            store.put("src", "col", key, _fingerprint(key))
        store.put("src", "other", "a", _fingerprint("z"))
        assert store.groups("src", "col") == ["a", "b", "c"]
        assert store.delete("src", "col") == 3
        assert store.groups("src", "col") == []
        assert store.delete("src") == 1


class TestClientPath:
    def test_fingerprint_whole_table(self, store):
        report = store.fingerprint_query("SELECT * FROM liabilities", "liabilities",
                                         ["currency", "due_date"])
        assert report["currency"] == {WHOLE_TABLE_GROUP: 3}
        assert report["due_date"] == {WHOLE_TABLE_GROUP: 3}
        bv = decode(store.get("liabilities", "due_date"))
        assert bv.contains(bit_index("2024-02-29"))

    def test_fingerprint_grouped(self, store):
        report = store.fingerprint_query("SELECT * FROM liabilities", "liabilities",
                                         ["currency", "amount"], group_by="informer")
        assert report["currency"] == {"acme": 2, "globex": 1}
        assert report["amount"] == {"acme": 2, "globex": 2}
        bv = decode(store.get("liabilities", "amount", "globex"))
        assert bv.contains(bit_index("7.25"))
        assert bv.contains(bit_index("10.5"))

    def test_fingerprint_distributed_matches_single_stage(self, store):
        single = store.fingerprint_query("SELECT * FROM liabilities", "single",
                                         ["currency"], group_by="informer")
        driver = AggregationDriver(DriverConfig(partitions=3))
        multi = store.fingerprint_query("SELECT * FROM liabilities", "multi",
                                        ["currency"], group_by="informer",
                                        driver=driver, distributed=True)
        assert single == multi
        assert store.get("single", "currency", "acme") == store.get("multi", "currency", "acme")

    def test_fingerprint_with_params(self, store):
        report = store.fingerprint_query("SELECT * FROM liabilities WHERE id > ?", "recent",
                                         ["currency"], params=[3])
        assert report["currency"] == {WHOLE_TABLE_GROUP: 1}

    def test_unknown_column(self, store):
        with pytest.raises(ValueError):
            store.fingerprint_query("SELECT * FROM liabilities", "x", ["nope"])

    def test_export_blob(self, store, tmp_path):
        store.fingerprint_query("SELECT * FROM liabilities", "liabilities", ["currency"])
        path = tmp_path / "CURRENCY"
        path.write_bytes(b"stale contents that are longer than the blob itself........")
        written = store.export_blob("liabilities", "currency", str(path))
        assert path.read_bytes() == store.get("liabilities", "currency")
        assert written == len(path.read_bytes())

    def test_export_missing(self, store, tmp_path):
        with pytest.raises(KeyError):
            store.export_blob("nope", "nope", str(tmp_path / "x"))

    def test_match_columns(self, store):
        store.fingerprint_query("SELECT * FROM liabilities", "liabilities",
                                ["currency"], group_by="informer")
        store.fingerprint_query("SELECT * FROM deals", "deals", ["currency"], group_by="deal")
        results = store.match_columns(("liabilities", "currency"), ("deals", "currency"))
        assert [r.as_row() for r in results] == [(1, 2, 2, "acme", "d1")]

    def test_stats(self, store):
        store.fingerprint_query("SELECT * FROM liabilities", "liabilities",
                                ["currency"], group_by="informer")
        stats = store.stats()
        assert stats["fingerprints"] == 2
        assert stats["columns"]["liabilities.currency"]["groups"] == 2
        assert stats["db_path"] == ":memory:"


class TestColumnKinds:
    def test_duckdb_type_names(self):
        assert duckdb_kind("FLOAT") is ValueKind.FLOAT
        assert duckdb_kind("DOUBLE") is ValueKind.DOUBLE
        assert duckdb_kind("DECIMAL(18,3)") is ValueKind.DECIMAL
        assert duckdb_kind("BIGINT") is ValueKind.INTEGER
        assert duckdb_kind("VARCHAR") is ValueKind.VARCHAR
        assert duckdb_kind("BLOB") is ValueKind.BINARY
        assert duckdb_kind("TIMESTAMP WITH TIME ZONE") is None

    def test_float_column_hashes_as_32_bit(self, store):
        store.conn.execute("CREATE TABLE floats AS SELECT 0.1::FLOAT AS f")
        report = store.fingerprint_query("SELECT f FROM floats", "floats", ["f"])
        assert report["f"] == {WHOLE_TABLE_GROUP: 1}
        assert list(decode(store.get("floats", "f"))) == [bit_index("0.1")]
        assert store.get("floats", "f") == _fingerprint(np.float32(0.1))

    def test_declared_kind_overrides_column_type(self, store):
        store.conn.execute("CREATE TABLE floats AS SELECT 0.1::FLOAT AS f")
        driver = AggregationDriver(DriverConfig(kind=ValueKind.DOUBLE))
        store.fingerprint_query("SELECT f FROM floats", "floats", ["f"], driver=driver)
        assert list(decode(store.get("floats", "f"))) == [bit_index("0.10000000149011612")]

    def test_decimal_column(self, store):
        store.conn.execute("CREATE TABLE prices AS SELECT 1.50::DECIMAL(4,2) AS p")
        store.fingerprint_query("SELECT p FROM prices", "prices", ["p"])
        assert list(decode(store.get("prices", "p"))) == [bit_index("15")]

    def test_null_group_key_is_its_own_group(self, store):
        store.conn.execute("""
            CREATE TABLE keyed AS
            SELECT * FROM (VALUES (NULL, 'a'), ('None', 'b'), ('None', 'c')) t(k, v)
        """)
        report = store.fingerprint_query("SELECT * FROM keyed", "keyed", ["v"], group_by="k")
        assert report["v"] == {NULL_GROUP: 1, "None": 2}
        assert set(store.groups("keyed", "v")) == {NULL_GROUP, "None"}
        assert store.cardinality("keyed", "v", None) == 1
        assert store.cardinality("keyed", "v", "None") == 2


class TestLifecycle:
    def test_context_manager(self):
        with FingerprintStore() as s:
            s.put("src", "col", "g", _fingerprint("a"))
            assert s.cardinality("src", "col", "g") == 1

    def test_file_backed_store_persists(self, tmp_path):
        path = str(tmp_path / "fp.duckdb")
        blob = _fingerprint("a", "b")
        with FingerprintStore(path) as s:
            s.put("src", "col", "g", blob)
        with FingerprintStore(path) as s:
            assert s.get("src", "col", "g") == blob


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
