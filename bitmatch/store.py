"""
Fingerprint Store: DuckDB-backed persistence and client path
=============================================================

DuckDB-backed storage for per-group column fingerprints, plus the client
operations that run an aggregation, read the blobs back, report their
cardinality, export raw bytes and score pairs of fingerprint sets.

Architecture:
┌─────────────────────────────────────────────────────────────────────────────┐
│                          FingerprintStore                                   │
│                                                                             │
│  ┌───────────────────────────────────────────────────────────────────────┐  │
│  │                       fingerprints table                              │  │
│  │  (source, column_name, group_key) → {data BLOB, cardinality, ts}      │  │
│  └───────────────────────────────────────────────────────────────────────┘  │
│                                                                             │
│   fingerprint_query(sql) ──► AggregationDriver ──► put() per group          │
│   match_columns(left, right) ──► decode once ──► match_vectors per pair     │
└─────────────────────────────────────────────────────────────────────────────┘

Column types:
    Each result column is hashed under the ValueKind of its DuckDB type
    (FLOAT columns as 32-bit floats, DECIMAL as unscaled digits, ...), so a
    value fingerprints the same whether it comes from SQL or from Python.

Usage:
    store = FingerprintStore("fingerprints.duckdb")

    # Fingerprint two columns of a query result, grouped by a key column
    store.fingerprint_query("SELECT * FROM liabilities", "liabilities",
                            ["currency", "due_date"], group_by="informer_code")

    # Read back and score
    blob = store.get("liabilities", "currency", "ACME")
    results = store.match_columns(("liabilities", "currency"), ("deals", "currency"))
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional, Sequence, Tuple
from dataclasses import replace
from pathlib import Path
import logging
import time

try:
    import duckdb
except ImportError:
    raise ImportError("DuckDB is required. Install with: pip install duckdb")

from .codec import decode
from .driver import AggregationDriver
from .matching import MatchEngine, MatchResult
from .normalize import ValueKind

logger = logging.getLogger(__name__)

WHOLE_TABLE_GROUP = ""
NULL_GROUP = "\\N"      # SQL NULL group key, in Hive's text spelling

# DuckDB column type -> value kind. Types not listed are inferred per value.
DUCKDB_KINDS: Dict[str, ValueKind] = {
    "BOOLEAN": ValueKind.BOOLEAN,
    "TINYINT": ValueKind.INTEGER,
    "SMALLINT": ValueKind.INTEGER,
    "INTEGER": ValueKind.INTEGER,
    "BIGINT": ValueKind.INTEGER,
    "HUGEINT": ValueKind.INTEGER,
    "UTINYINT": ValueKind.INTEGER,
    "USMALLINT": ValueKind.INTEGER,
    "UINTEGER": ValueKind.INTEGER,
    "UBIGINT": ValueKind.INTEGER,
    "UHUGEINT": ValueKind.INTEGER,
    "FLOAT": ValueKind.FLOAT,
    "DOUBLE": ValueKind.DOUBLE,
    "DECIMAL": ValueKind.DECIMAL,
    "DATE": ValueKind.DATE,
    "TIMESTAMP": ValueKind.TIMESTAMP,
    "TIMESTAMP_S": ValueKind.TIMESTAMP,
    "TIMESTAMP_MS": ValueKind.TIMESTAMP,
    "TIMESTAMP_NS": ValueKind.TIMESTAMP,
    "VARCHAR": ValueKind.VARCHAR,
    "BLOB": ValueKind.BINARY,
}


def duckdb_kind(type_code: Any) -> Optional[ValueKind]:
    """
    ValueKind for a DuckDB result column type.

    Args:
        type_code: Type from cursor.description (DuckDBPyType or its name)

    Returns:
        The kind, or None when values of the type are inferred one by one
    """
    name = str(type_code).split("(")[0].strip().upper()
    return DUCKDB_KINDS.get(name)


def group_text(group_key: Any) -> str:
    """Stored text of a group key; NULL keys get their own group."""
    return NULL_GROUP if group_key is None else str(group_key)


# =============================================================================
# Fingerprint Store
# =============================================================================

class FingerprintStore:
    """
    DuckDB-backed store of fingerprint blobs.

    Features:
    - One row per (source, column, group)
    - Blobs are validated on the way in (corrupt blobs are rejected)
    - Aggregation straight from SQL results, typed by result column
    - Pairwise scoring of two stored fingerprint sets
    """

    def __init__(self, db_path: str = ":memory:"):
        """
        Initialize the store.

        Args:
            db_path: Path to database file, or ":memory:" for in-memory
        """
        self.db_path = db_path
        self.conn = duckdb.connect(db_path)
        self._init_schema()

    def _init_schema(self):
        """Create tables if they don't exist."""
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS fingerprints (
                source VARCHAR,
                column_name VARCHAR,
                group_key VARCHAR,
                data BLOB,
                cardinality INTEGER,
                created_at DOUBLE,
                PRIMARY KEY (source, column_name, group_key)
            )
        """)

    # -------------------------------------------------------------------------
    # Blob Operations
    # -------------------------------------------------------------------------

    def put(self, source: str, column: str, group_key: Any, blob: bytes) -> int:
        """
        Store one fingerprint, replacing any previous one for the same group.

        Returns:
            Cardinality of the stored fingerprint

        Raises:
            CorruptEncodingError: blob is not a valid encoding
        """
        cardinality = decode(blob).cardinality()
        self.conn.execute(
            "INSERT OR REPLACE INTO fingerprints "
            "(source, column_name, group_key, data, cardinality, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            [source, column, group_text(group_key), bytes(blob), cardinality, time.time()]
        )
        return cardinality

    def get(self, source: str, column: str, group_key: Any = WHOLE_TABLE_GROUP) -> Optional[bytes]:
        """Fetch a fingerprint blob, or None."""
        result = self.conn.execute(
            "SELECT data FROM fingerprints WHERE source = ? AND column_name = ? AND group_key = ?",
            [source, column, group_text(group_key)]
        ).fetchone()
        return bytes(result[0]) if result else None

    def cardinality(self, source: str, column: str, group_key: Any = WHOLE_TABLE_GROUP) -> Optional[int]:
        result = self.conn.execute(
            "SELECT cardinality FROM fingerprints WHERE source = ? AND column_name = ? AND group_key = ?",
            [source, column, group_text(group_key)]
        ).fetchone()
        return result[0] if result else None

    def groups(self, source: str, column: str) -> List[str]:
        """Group keys stored for a column, sorted."""
        rows = self.conn.execute(
            "SELECT group_key FROM fingerprints WHERE source = ? AND column_name = ? ORDER BY group_key",
            [source, column]
        ).fetchall()
        return [r[0] for r in rows]

    def delete(self, source: str, column: Optional[str] = None) -> int:
        """Delete a source's fingerprints (one column or all). Returns rows removed."""
        if column is None:
            where, params = "source = ?", [source]
        else:
            where, params = "source = ? AND column_name = ?", [source, column]
        count = self.conn.execute(f"SELECT COUNT(*) FROM fingerprints WHERE {where}", params).fetchone()[0]
        self.conn.execute(f"DELETE FROM fingerprints WHERE {where}", params)
        return count

    # -------------------------------------------------------------------------
    # Client Path
    # -------------------------------------------------------------------------

    def fingerprint_query(self, sql: str, source: str, columns: Sequence[str],
                          group_by: Optional[str] = None,
                          driver: Optional[AggregationDriver] = None,
                          params: Optional[Sequence[Any]] = None,
                          distributed: bool = False) -> Dict[str, Dict[str, int]]:
        """
        Run a query on this store's connection and fingerprint its columns.

        Values are canonicalized under the kind of their result column's
        DuckDB type, unless the driver's config declares a kind.

        Args:
            sql: Query producing the rows to fingerprint
            source: Name the fingerprints are stored under
            columns: Result columns to fingerprint
            group_by: Result column holding the group key (None = one group)
            driver: Aggregation driver (default: single-stage)
            params: Query parameters
            distributed: Run the multi-stage partial/merge/final path

        Returns:
            {column: {group_key: cardinality}}
        """
        driver = driver or AggregationDriver()
        cursor = self.conn.execute(sql, params or [])
        names = [d[0] for d in cursor.description]
        types = [d[1] for d in cursor.description]
        rows = cursor.fetchall()

        missing = [c for c in list(columns) + ([group_by] if group_by else []) if c not in names]
        if missing:
            raise ValueError(f"Columns not in query result: {missing}")

        key_pos = names.index(group_by) if group_by else None
        report: Dict[str, Dict[str, int]] = {}
        for column in columns:
            pos = names.index(column)
            column_driver = driver
            if driver.config.kind is None:
                kind = duckdb_kind(types[pos])
                column_driver = AggregationDriver(replace(driver.config, kind=kind))
                logger.debug("%s.%s: type %s hashed as %s", source, column, types[pos],
                             kind.value if kind else "inferred")

            keyed = ((row[key_pos] if key_pos is not None else WHOLE_TABLE_GROUP, row[pos])
                     for row in rows)
            if distributed:
                blobs = column_driver.aggregate_distributed(keyed)
            else:
                blobs = column_driver.aggregate(keyed)
            driver.skipped_groups = column_driver.skipped_groups
            report[column] = {}
            for key, blob in blobs.items():
                report[column][group_text(key)] = self.put(source, column, key, blob)
            logger.info("%s.%s: %d groups, total cardinality %d", source, column,
                        len(blobs), sum(report[column].values()))
        return report

    def export_blob(self, source: str, column: str, path: str,
                    group_key: Any = WHOLE_TABLE_GROUP) -> int:
        """Write a stored fingerprint's raw bytes to path (overwriting). Returns bytes written."""
        blob = self.get(source, column, group_key)
        if blob is None:
            raise KeyError(f"No fingerprint for {source}.{column}[{group_key!r}]")
        Path(path).write_bytes(blob)
        return len(blob)

    def match_columns(self, left: Tuple[str, str], right: Tuple[str, str],
                      engine: Optional[MatchEngine] = None) -> List[MatchResult]:
        """
        Score every stored group of left against every stored group of right.

        Each fingerprint is decoded once. Group keys are passed through as
        aux_0 (left) and aux_1 (right). Pairs sharing no bit are omitted.
        """
        left_vectors = self._load_vectors(*left)
        right_vectors = self._load_vectors(*right)

        engine = engine or MatchEngine(aux_count=2)
        results: List[MatchResult] = []
        for left_key, left_bv in left_vectors:
            for right_key, right_bv in right_vectors:
                result = engine.process_vectors(left_bv, right_bv, left_key, right_key)
                if result is not None:
                    results.append(result)
        return results

    def _load_vectors(self, source: str, column: str):
        rows = self.conn.execute(
            "SELECT group_key, data FROM fingerprints WHERE source = ? AND column_name = ? "
            "ORDER BY group_key",
            [source, column]
        ).fetchall()
        return [(key, decode(bytes(data))) for key, data in rows]

    # -------------------------------------------------------------------------
    # Statistics & Maintenance
    # -------------------------------------------------------------------------

    def stats(self) -> Dict[str, Any]:
        """Get store statistics."""
        total = self.conn.execute("SELECT COUNT(*) FROM fingerprints").fetchone()[0]
        by_column = self.conn.execute("""
            SELECT source, column_name, COUNT(*), SUM(OCTET_LENGTH(data))
            FROM fingerprints
            GROUP BY source, column_name
            ORDER BY source, column_name
        """).fetchall()

        return {
            'fingerprints': total,
            'columns': {f"{r[0]}.{r[1]}": {'groups': r[2], 'bytes': r[3]} for r in by_column},
            'db_path': self.db_path
        }

    def close(self):
        """Close the database connection."""
        self.conn.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


__all__ = [
    'FingerprintStore',
    'WHOLE_TABLE_GROUP',
    'NULL_GROUP',
    'DUCKDB_KINDS',
    'duckdb_kind',
    'group_text',
]
