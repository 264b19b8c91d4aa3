"""
Normalize Cumulative Turnstile Counters
=======================================

Turnstile meters report cumulative ENTRIES/EXITS roughly every four hours.
This module turns those snapshots into per-interval deltas, one per reading,
without dropping any row.

Validity policy, applied to each reading against the previous reading of the
same turnstile:
    - The first reading of a turnstile has no predecessor: delta = 0.
    - Day-of-year difference outside [0, max_day_gap] (negative = device swap
      or year rollover, larger = missing days): delta = 0.
    - |delta| > max_delta is a corrupt counter or a reset: delta = 0.
    - A negative delta within range is a meter counting backwards: the
      absolute value is used.

Every stored delta therefore lies in [0, max_delta].
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from tqdm import tqdm

logger = logging.getLogger(__name__)

MAX_INTERVAL_DELTA = 10000  # Larger jumps are counter resets or corruption
MAX_DAY_GAP = 1  # Consecutive readings must fall on the same or next day


@dataclass(frozen=True)
class NormalizerConfig:
    """Thresholds for the counter validity policy."""

    max_delta: int = MAX_INTERVAL_DELTA
    max_day_gap: int = MAX_DAY_GAP


DEFAULT_CONFIG = NormalizerConfig()


@dataclass(frozen=True)
class CounterState:
    """Last accepted reading of one turnstile, carried through the fold."""

    day_of_year: int
    entries: int
    exits: int


def clean_delta(raw_delta: int, day_diff: Optional[int], config: NormalizerConfig = DEFAULT_CONFIG) -> int:
    """Apply the validity policy to one raw counter difference.

    ``day_diff`` is None for the first reading of a turnstile.
    """
    if day_diff is None or day_diff < 0 or day_diff > config.max_day_gap:
        return 0
    magnitude = abs(int(raw_delta))
    if magnitude > config.max_delta:
        return 0
    return magnitude


def fold_turnstile(
    days_of_year: Sequence[int],
    entries: Sequence[int],
    exits: Sequence[int],
    config: NormalizerConfig = DEFAULT_CONFIG,
) -> Tuple[np.ndarray, np.ndarray]:
    """Fold over one turnstile's chronologically sorted readings.

    Returns entry and exit delta arrays aligned with the input readings.
    """
    n = len(days_of_year)
    entry_deltas = np.zeros(n, dtype=np.int64)
    exit_deltas = np.zeros(n, dtype=np.int64)

    state: Optional[CounterState] = None
    for i in range(n):
        day = int(days_of_year[i])
        current = CounterState(day, int(entries[i]), int(exits[i]))
        if state is not None:
            day_diff = current.day_of_year - state.day_of_year
            entry_deltas[i] = clean_delta(current.entries - state.entries, day_diff, config)
            exit_deltas[i] = clean_delta(current.exits - state.exits, day_diff, config)
        state = current

    return entry_deltas, exit_deltas


def sort_readings(df: pd.DataFrame) -> pd.DataFrame:
    """Order readings by turnstile, then timestamp, preserving input order on ties.

    Two single-key mergesorts give a stable lexicographic order; duplicate
    timestamps for one turnstile stay in the order they arrived in.
    """
    by_time = df.sort_values("DATETIME", kind="mergesort")
    return by_time.sort_values("turnstile_id", kind="mergesort").reset_index(drop=True)


def normalize_counters(
    df: pd.DataFrame,
    config: NormalizerConfig = DEFAULT_CONFIG,
    *,
    show_progress: bool = False,
) -> pd.DataFrame:
    """Add ENTRIES_DIFF and EXITS_DIFF to every reading.

    Expects ``turnstile_id``, ``DATETIME``, ``ENTRIES`` and ``EXITS``. The
    result is sorted by turnstile and timestamp and has exactly as many rows
    as the input.
    """
    logger.info(f"Normalizing {len(df):,} counter readings")

    readings = sort_readings(df)
    entry_deltas = np.zeros(len(readings), dtype=np.int64)
    exit_deltas = np.zeros(len(readings), dtype=np.int64)

    ids = readings["turnstile_id"].to_numpy()
    days = readings["DATETIME"].dt.dayofyear.to_numpy()
    entries = readings["ENTRIES"].to_numpy(dtype=np.int64)
    exits = readings["EXITS"].to_numpy(dtype=np.int64)

    # Start offsets of each turnstile's run in the sorted frame
    if len(ids):
        starts = np.flatnonzero(np.r_[True, ids[1:] != ids[:-1]])
    else:
        starts = np.array([], dtype=np.int64)
    stops = np.r_[starts[1:], len(ids)]

    for start, stop in tqdm(
        zip(starts, stops),
        total=len(starts),
        desc="Normalizing turnstiles",
        disable=not show_progress,
        leave=False,
    ):
        entry_deltas[start:stop], exit_deltas[start:stop] = fold_turnstile(
            days[start:stop], entries[start:stop], exits[start:stop], config
        )

    readings["ENTRIES_DIFF"] = entry_deltas
    readings["EXITS_DIFF"] = exit_deltas

    logger.info(f"   Turnstiles: {len(starts):,}")
    logger.info(f"   Net entries: {int(entry_deltas.sum()):,}")
    logger.info(f"   Net exits: {int(exit_deltas.sum()):,}")
    return readings
