from __future__ import annotations

import argparse
from pathlib import Path

import pandas as pd

COLUMNS = [
    "score",
    "steps",
    "length",
    "emergency_rate",
    "decision_ms_mean",
    "decision_ms_max",
]


def describe(path: Path) -> None:
    if not path.exists():
        print(f"warning: {path} not found")
        return
    df = pd.read_json(path, lines=True)
    cols = [c for c in COLUMNS if c in df.columns]
    print(f"\n--- {path.name} ({len(df)} games) ---")
    print(df[cols].describe())

    if "terminal_reason" in df.columns:
        print("\nend of game:")
        print(df["terminal_reason"].fillna("unknown").value_counts().to_string())

    reason_cols = [c for c in df.columns if c.startswith("reason_")]
    if reason_cols:
        totals = df[reason_cols].sum().sort_values(ascending=False)
        totals = totals[totals > 0]
        print("\ndecision reasons:")
        print(totals.to_string())

    total_emergencies = df["emergencies"].sum()
    total_steps = df["steps"].sum()
    if total_steps:
        rate = 100.0 * total_emergencies / total_steps
        print(f"session emergency rate: {rate:.2f}% ({total_emergencies} emergency / {total_steps} steps)")


def main() -> None:
    parser = argparse.ArgumentParser(description="Describe JSONL autopilot runs")
    parser.add_argument(
        "paths",
        type=Path,
        nargs="*",
        default=[Path("runs/session.jsonl")],
        help="JSONL logs written with --log-jsonl",
    )
    args = parser.parse_args()

    for path in args.paths:
        describe(path)


if __name__ == "__main__":
    main()
