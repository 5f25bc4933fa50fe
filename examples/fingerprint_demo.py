"""
Fingerprint Demonstration

This script walks through the full client path:
1. Build a liabilities table and a deals table in DuckDB
2. Fingerprint every column of the liabilities table and report cardinalities
3. Export each column's fingerprint to a file named after the column
4. Fingerprint per group and score the groups of two tables against each other
"""

import logging
import os
import sys
import tempfile

from bitmatch import AggregationDriver, DriverConfig, MatchEngine
from bitmatch.store import FingerprintStore


COLUMNS = [
    "COLLATERAL_VALUE_CURRENCY",
    "COLLATERAL_VALUE",
    "DUE_DATE",
    "CURRENCY",
    "ORIGINAL_AMOUNT",
    "LIABILITY_TYPE",
    "INFORMER_CODE",
    "ID",
]


def print_section(title):
    """Print a formatted section header."""
    print("\n" + "=" * 70)
    print(f"  {title}")
    print("=" * 70)


def load_tables(store):
    """Create two small tables on the store's connection."""
    store.conn.execute("""
        CREATE TABLE liabilities AS
        SELECT
            i AS ID,
            'INF' || (i % 7) AS INFORMER_CODE,
            ['USD', 'EUR', 'GBP', 'CHF'][1 + i % 4] AS CURRENCY,
            ['USD', 'EUR'][1 + i % 2] AS COLLATERAL_VALUE_CURRENCY,
            CAST(round(random() * 1e6) AS BIGINT) AS COLLATERAL_VALUE,
            (1000 + i * 25)::DOUBLE AS ORIGINAL_AMOUNT,
            DATE '2024-01-01' + (i % 365)::INTEGER AS DUE_DATE,
            ['LOAN', 'LEASE', 'GUARANTEE'][1 + i % 3] AS LIABILITY_TYPE
        FROM range(5000) r(i)
    """)
    store.conn.execute("""
        CREATE TABLE deals AS
        SELECT
            'DEAL' || (i % 11) AS DEAL_ID,
            ['USD', 'JPY', 'CHF'][1 + i % 3] AS CURRENCY
        FROM range(300) r(i)
    """)


def demonstrate_column_cardinality(store):
    """Fingerprint whole columns and report each one's cardinality."""
    print_section("STEP 1: Column Fingerprints")

    report = store.fingerprint_query("SELECT * FROM liabilities", "liabilities", COLUMNS)
    for column in COLUMNS:
        print(f"  {column:<28} cardinality {report[column]['']:>6}")

    stats = store.stats()
    print(f"\n  Stored {stats['fingerprints']} fingerprints")


def demonstrate_export(store, out_dir):
    """Write each column's raw blob to a file named after the column."""
    print_section("STEP 2: Export Blobs")

    for column in COLUMNS:
        path = os.path.join(out_dir, column)
        size = store.export_blob("liabilities", column, path)
        print(f"  {path} ({size} bytes)")


def demonstrate_group_matching(store):
    """Fingerprint per group on a partitioned driver and score group pairs."""
    print_section("STEP 3: Group Matching")

    driver = AggregationDriver(DriverConfig(partitions=4, parallel=True, combiners=2))
    store.fingerprint_query("SELECT * FROM liabilities", "liabilities", ["CURRENCY"],
                            group_by="INFORMER_CODE", driver=driver, distributed=True)
    store.fingerprint_query("SELECT * FROM deals", "deals", ["CURRENCY"],
                            group_by="DEAL_ID", driver=driver, distributed=True)

    engine = MatchEngine(aux_count=2)
    results = store.match_columns(("liabilities", "CURRENCY"), ("deals", "CURRENCY"),
                                  engine=engine)

    print("  " + "  ".join(f"{name:>13}" for name in engine.column_names()))
    for result in results[:10]:
        print("  " + "  ".join(f"{str(v):>13}" for v in result.as_row()))
    print(f"\n  Compared {engine.stats.compared} pairs, {engine.stats.matched} matched")

    best = max(results, key=lambda r: r.jaccard())
    print(f"  Best pair {best.aux}: jaccard {best.jaccard():.3f}, "
          f"containment {best.containment():.3f}")


def main():
    logging.basicConfig(level=logging.INFO, format="%(name)s %(levelname)s %(message)s")

    out_dir = sys.argv[1] if len(sys.argv) > 1 else tempfile.mkdtemp(prefix="bitmatch-")
    with FingerprintStore() as store:
        load_tables(store)
        demonstrate_column_cardinality(store)
        demonstrate_export(store, out_dir)
        demonstrate_group_matching(store)

    print("\n✓ Demo complete")


if __name__ == "__main__":
    main()
