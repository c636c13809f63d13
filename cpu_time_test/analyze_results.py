#!/usr/bin/env python3
"""
CPU-Time Sampler Result Analysis

Summarizes a results CSV written by ctest.py: how many runs per configuration
were reasonable or failed, and the median sample counts and loss rates.

Usage:
    python3 analyze_results.py results.csv
    python3 analyze_results.py results.csv --by sampler gc
    python3 analyze_results.py results.csv --plot --output-dir plots
"""

import argparse
from pathlib import Path
from typing import List, Optional

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns

DEFAULT_GROUPING = ["sampler", "gc", "duration"]
BOOLEAN_COLUMNS = ["reasonable", "error"]


def load_results(csv_file: Path) -> pd.DataFrame:
    """Load a results CSV, normalizing the boolean columns"""
    csv_file = Path(csv_file)
    if not csv_file.exists():
        raise FileNotFoundError(f"File not found: {csv_file}")
    df = pd.read_csv(csv_file, keep_default_na=False, na_values=[""])
    for column in BOOLEAN_COLUMNS:
        if column in df.columns:
            df[column] = df[column].astype(str).str.lower().eq("true")
    if "heap size" in df.columns:
        df["heap size"] = df["heap size"].fillna("default")
    print(f"📊 Loaded {len(df)} runs from {csv_file}")
    return df


def add_rates(df: pd.DataFrame) -> pd.DataFrame:
    """Add overflow, empty and valid rates, NaN where no valid samples exist"""
    df = df.copy()
    valid = df["valid cpu time events"].astype(float)
    total = valid + df["overflowed cpu time events"] + df["empty cpu time events"]
    safe_valid = valid.replace(0, np.nan)
    df["overflow rate"] = df["overflowed cpu time events"] / safe_valid
    df["empty rate"] = df["empty cpu time events"] / safe_valid
    df["valid rate"] = valid / total.replace(0, np.nan)
    return df


def summarize(df: pd.DataFrame, by: Optional[List[str]] = None) -> pd.DataFrame:
    by = by or DEFAULT_GROUPING
    missing = [column for column in by if column not in df.columns]
    if missing:
        raise ValueError(f"Unknown columns: {', '.join(missing)}")
    df = add_rates(df)
    summary = df.groupby(by, dropna=False).agg(
        runs=("reasonable", "size"),
        reasonable=("reasonable", "mean"),
        errors=("error", "mean"),
        median_valid=("valid cpu time events", "median"),
        median_overflow_rate=("overflow rate", "median"),
        median_empty_rate=("empty rate", "median"),
        median_seconds=("elapsed seconds", "median"),
    ).reset_index()
    return summary.sort_values(by).reset_index(drop=True)


def plot_reasonable_fraction(df: pd.DataFrame, output_dir: Path) -> Path:
    """Bar chart of the reasonable fraction per sampler, one bar per GC"""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    data = df.groupby(["sampler", "gc"])["reasonable"].mean().reset_index()

    sns.set_palette("husl")
    fig, ax = plt.subplots(figsize=(10, 6))
    sns.barplot(data=data, x="sampler", y="reasonable", hue="gc", ax=ax)
    ax.set_ylim(0, 1)
    ax.set_ylabel("Reasonable runs (fraction)")
    ax.set_xlabel("Sampler")
    ax.set_title("Reasonable CPU-time sampler runs by sampler and GC")
    plt.tight_layout()

    plot_file = output_dir / "reasonable_by_sampler_gc.png"
    fig.savefig(plot_file, dpi=150)
    plt.close(fig)
    print(f"📈 Saved {plot_file}")
    return plot_file


def print_summary(summary: pd.DataFrame):
    print(f"\n📊 Summary:")
    formatted = summary.copy()
    for column in ["reasonable", "errors"]:
        formatted[column] = (formatted[column] * 100).map(lambda v: f"{v:.0f}%")
    for column in ["median_overflow_rate", "median_empty_rate"]:
        formatted[column] = formatted[column].map(lambda v: "n/a" if pd.isna(v) else f"{v:.3f}")
    print(formatted.to_string(index=False))


def main():
    parser = argparse.ArgumentParser(description="JFR CPU-Time Sampler Result Analysis")
    parser.add_argument("csv", type=Path, help="Results CSV written by ctest.py")
    parser.add_argument("--by", nargs="+", default=DEFAULT_GROUPING,
                        help=f"Columns to group by (default: {' '.join(DEFAULT_GROUPING)})")
    parser.add_argument("--plot", action="store_true", help="Save a bar chart of reasonable runs")
    parser.add_argument("--output-dir", type=Path, default=Path("plots"),
                        help="Directory for plots (default: plots)")
    args = parser.parse_args()

    df = load_results(args.csv)
    if df.empty:
        print("❌ No data to analyze")
        return
    print_summary(summarize(df, args.by))
    if args.plot:
        plot_reasonable_fraction(df, args.output_dir)


if __name__ == "__main__":
    main()
