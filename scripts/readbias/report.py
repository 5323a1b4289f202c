"""
Window Report for readbias Summary Tables

Loads a table written by ``readbias`` (fixed or compact layout) and derives
per-window mapping rates and a whole-run summary.

Added columns:
    total       records counted in the window (sum of category columns)
    map_rate    map / total
    unmap_rate  unmap / total

Empty windows get rates of 0.0.
"""

from typing import Dict, List

import numpy as np
import pandas as pd

from .binning import RECORDS_COLUMN

REQUIRED_COLUMNS = [RECORDS_COLUMN, "map", "unmap"]


def load_summary_table(path: str) -> pd.DataFrame:
    """
    Read a readbias summary table.

    Raises:
        ValueError: If required columns are missing
    """
    df = pd.read_csv(path, sep="\t")
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"{path}: missing columns {', '.join(missing)}")
    return df


def category_columns(df: pd.DataFrame) -> List[str]:
    """Category count columns, i.e. everything except the record index and derived columns."""
    derived = {RECORDS_COLUMN, "total", "map_rate", "unmap_rate"}
    return [c for c in df.columns if c not in derived]


def add_rates(df: pd.DataFrame) -> pd.DataFrame:
    """Return a copy of df with total, map_rate and unmap_rate columns."""
    result = df.copy()
    total = result[category_columns(result)].sum(axis=1)
    denom = total.replace(0, np.nan)
    result["total"] = total
    result["map_rate"] = (result["map"] / denom).fillna(0.0)
    result["unmap_rate"] = (result["unmap"] / denom).fillna(0.0)
    return result


def summarize(df: pd.DataFrame) -> Dict[str, float]:
    """
    Whole-run summary of a summary table.

    Returns:
        Dictionary with windows, records (cumulative index of the last
        window), counted records, and overall map/unmap rates
    """
    columns = category_columns(df)
    counted = int(df[columns].to_numpy().sum()) if len(df) else 0
    mapped = int(df["map"].sum()) if len(df) else 0
    unmapped = int(df["unmap"].sum()) if len(df) else 0

    return {
        "windows": int(len(df)),
        "records": int(df[RECORDS_COLUMN].iloc[-1]) if len(df) else 0,
        "counted": counted,
        "map_rate": mapped / counted if counted else 0.0,
        "unmap_rate": unmapped / counted if counted else 0.0,
    }


def print_summary(summary: Dict[str, float]) -> None:
    print("=" * 60)
    print("readbias Window Summary")
    print("=" * 60)
    print(f"Windows: {summary['windows']}")
    print(f"Records: {summary['records']:,}")
    print(f"Counted in windows: {summary['counted']:,}")
    print(f"Mapping rate: {summary['map_rate'] * 100:.2f}%")
    print(f"Unmapped rate: {summary['unmap_rate'] * 100:.2f}%")
    print("=" * 60)
