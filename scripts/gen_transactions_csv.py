#!/usr/bin/env python3
"""Synthetic transaction CSV generator for load testing.

Writes a card-transaction export in the layout txn-ingest expects:
a header row followed by one transaction per line, with the source column
`type` (mapped to payment_method by the default column mapping).

A fraction of the values can be made deliberately dirty (empty amounts,
unparsable dates, "1.0" style flags, "5411.0" style MCC codes) to exercise
the coercion rules.
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

import numpy as np
import pandas as pd

HEADER = [
    "user_id",
    "merchant_id",
    "charged_amount",
    "txn_date_time",
    "outcome",
    "fraud",
    "decline",
    "merchant_country",
    "merchant_name",
    "mcc",
    "type",
]

COUNTRIES = ["BR", "MX", "AR", "CO", "CL", "PE", "UY", "EC"]
OUTCOMES = ["approved", "declined", "reversed", "pending"]
PAYMENT_TYPES = ["credit", "debit", "prepaid", "wallet"]
MCCS = [5411, 5812, 5999, 4111, 5541, 7011, 5732, 4814]


def generate_transactions(rows: int, seed: int = 42, dirty_ratio: float = 0.0) -> pd.DataFrame:
    """Generate `rows` synthetic transactions as a DataFrame of strings.

    Args:
        rows: Number of data rows
        seed: Random seed for reproducible data
        dirty_ratio: Share of rows (0..1) that get one malformed field

    Returns:
        DataFrame with the HEADER columns, every value already a string
    """
    rng = np.random.default_rng(seed)

    users = rng.integers(1, max(2, rows // 20), rows)
    merchants = rng.integers(1, max(2, rows // 100), rows)
    amounts = np.round(rng.lognormal(mean=3.5, sigma=1.0, size=rows), 2)
    start = pd.Timestamp("2024-01-01")
    offsets = rng.integers(0, 365 * 24 * 3600, rows)
    timestamps = start + pd.to_timedelta(offsets, unit="s")
    fraud = (rng.random(rows) < 0.02).astype(int)
    decline = (rng.random(rows) < 0.08).astype(int)
    outcomes = np.where(decline == 1, "declined", rng.choice(OUTCOMES, rows))

    df = pd.DataFrame(
        {
            "user_id": [f"U{u:07d}" for u in users],
            "merchant_id": [f"M{m:06d}" for m in merchants],
            "charged_amount": [f"{a:.2f}" for a in amounts],
            "txn_date_time": timestamps.strftime("%Y-%m-%d %H:%M:%S"),
            "outcome": outcomes,
            "fraud": fraud.astype(str),
            "decline": decline.astype(str),
            "merchant_country": rng.choice(COUNTRIES, rows),
            "merchant_name": [f"Merchant {m}" for m in merchants],
            "mcc": [f"{c}.0" for c in rng.choice(MCCS, rows)],
            "type": rng.choice(PAYMENT_TYPES, rows),
        },
        columns=HEADER,
    )

    if dirty_ratio > 0:
        dirty = np.flatnonzero(rng.random(rows) < dirty_ratio)
        targets = rng.choice(["charged_amount", "txn_date_time", "fraud", "mcc"], len(dirty))
        garbage = {"charged_amount": "", "txn_date_time": "not-a-date", "fraud": "", "mcc": ""}
        for idx, column in zip(dirty, targets):
            df.at[idx, column] = garbage[column]

    return df


def main() -> int:
    """Main CLI interface for dataset generation."""
    parser = argparse.ArgumentParser(
        description="Generate a synthetic transaction CSV for load testing",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # 100k clean rows
  %(prog)s data/transactions.csv

  # 1M rows, 1%% dirty values
  %(prog)s data/big.csv --rows 1000000 --dirty-ratio 0.01
        """,
    )
    parser.add_argument("output", type=Path, help="Output CSV file path")
    parser.add_argument(
        "--rows", type=int, default=100_000, help="Number of data rows (default: 100,000)"
    )
    parser.add_argument(
        "--seed", type=int, default=42, help="Random seed for reproducible data (default: 42)"
    )
    parser.add_argument(
        "--dirty-ratio",
        type=float,
        default=0.0,
        help="Share of rows with one malformed value (default: 0)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be generated without creating files",
    )
    args = parser.parse_args()

    if args.rows <= 0:
        print("Error: --rows must be positive", file=sys.stderr)
        return 1
    if not 0 <= args.dirty_ratio <= 1:
        print("Error: --dirty-ratio must be between 0 and 1", file=sys.stderr)
        return 1

    est_mb = args.rows * 110 / (1024 * 1024)  # ~110 bytes per line
    print("Dataset generation plan:")
    print(f"  Output file: {args.output}")
    print(f"  Rows: {args.rows:,}")
    print(f"  Dirty ratio: {args.dirty_ratio}")
    print(f"  Estimated size: ~{est_mb:.1f} MB")
    print(f"  Random seed: {args.seed}")

    if args.dry_run:
        print("\n[DRY RUN] Would generate files but not creating them.")
        return 0

    args.output.parent.mkdir(parents=True, exist_ok=True)
    df = generate_transactions(args.rows, args.seed, args.dirty_ratio)
    df.to_csv(args.output, index=False)
    print(f"\nCreated CSV file: {args.output} ({len(df):,} rows)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
