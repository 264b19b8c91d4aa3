"""Merge yearly ridership records and cache the result.

The merged snapshot is keyed only by the year range. It is never invalidated
automatically: delete it (or call ``SnapshotCache.invalidate``) to force the
normalize/aggregate/resolve pipeline to run again.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Mapping, Sequence

import pandas as pd

logger = logging.getLogger(__name__)


def snapshot_key(years: Sequence[int]) -> str:
    """Cache key for a year range, e.g. ``2019_2021``."""
    return f"{min(years)}_{max(years)}"


def merge_years(frames: Mapping[int, pd.DataFrame]) -> pd.DataFrame:
    """Concatenate per-year ridership records in year order.

    Rows are not de-duplicated across years; the same turnstile is expected to
    appear in every year.
    """
    if not frames:
        raise ValueError("No yearly ridership records to merge")

    ordered = []
    for year in sorted(frames):
        records = frames[year].sort_values(['DATE', 'turnstile_id'], kind='mergesort')
        logger.info(f"   {year}: {len(records):,} ridership records")
        ordered.append(records)

    merged = pd.concat(ordered, ignore_index=True)
    logger.info(f"Merged {len(frames)} years into {len(merged):,} ridership records")
    return merged


class SnapshotCache:
    """Single-entry pickle cache for the merged ridership table."""

    def __init__(self, directory: Path, key: str, prefix: str = "ridership"):
        self.key = key
        self.path = directory / f"{prefix}_{key}.pkl"

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> pd.DataFrame:
        logger.info(f"Loading cached ridership snapshot from {self.path}")
        return pd.read_pickle(self.path)

    def save(self, df: pd.DataFrame) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        df.to_pickle(self.path)
        logger.info(f"Saved ridership snapshot ({len(df):,} rows) to {self.path}")

    def invalidate(self) -> bool:
        """Delete the snapshot; returns True if one was removed."""
        if self.exists():
            self.path.unlink()
            logger.info(f"Removed cached snapshot {self.path}")
            return True
        return False

    def get_or_build(self, build: Callable[[], pd.DataFrame]) -> pd.DataFrame:
        if self.exists():
            return self.load()
        df = build()
        self.save(df)
        return df
