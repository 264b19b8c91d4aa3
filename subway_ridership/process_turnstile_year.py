#!/usr/bin/env python3
"""
Process One Year of MTA Turnstile Data
======================================

Purpose:
    Turn one yearly turnstile export into daily ridership records per
    turnstile, resolved to station complexes.

Processing Steps:
    1. Read the yearly CSV (data/raw/turnstile/turnstile_<year>.csv)
    2. Keep subway divisions only (BMT, IND, IRT) and drop excluded stations
    3. Parse DATE/TIME strictly; a malformed date aborts the run
    4. Create turnstile_id and observation_id
    5. Normalize cumulative counters into per-reading deltas
    6. Sum deltas per turnstile per day
    7. Join to the station-complex mapping and station locations
"""

from __future__ import annotations

import logging
from pathlib import Path

import pandas as pd

from subway_ridership.aggregate_ridership import aggregate_turnstile_daily
from subway_ridership.normalize_counters import DEFAULT_CONFIG, NormalizerConfig, normalize_counters
from subway_ridership.resolve_stations import (
    SUBWAY_DIVISIONS,
    build_observation_id,
    build_turnstile_id,
    resolve_ridership,
)

logger = logging.getLogger(__name__)

EXCLUDED_STATIONS = ["ORCHARD BEACH"]
DATE_FORMAT = '%m/%d/%Y'
COLUMN_NAMES = [
    'C/A', 'UNIT', 'SCP', 'STATION', 'LINENAME',
    'DIVISION', 'DATE', 'TIME', 'DESC', 'ENTRIES', 'EXITS'
]
TEXT_COLUMNS = ['C/A', 'UNIT', 'SCP', 'STATION', 'LINENAME', 'DIVISION', 'DATE', 'TIME', 'DESC']


def read_turnstile_file(path: Path) -> pd.DataFrame:
    """Read a turnstile export with the modern 11-column layout.

    Headers are assigned positionally; the MTA files pad the last header with
    trailing whitespace.
    """
    if not path.exists():
        raise FileNotFoundError(f"Turnstile data not found: {path}")

    df = pd.read_csv(path, header=0, dtype=str)
    if len(df.columns) != len(COLUMN_NAMES):
        raise ValueError(
            f"Unexpected column count in {path.name}: {len(df.columns)} (expected {len(COLUMN_NAMES)})"
        )
    df.columns = COLUMN_NAMES

    for column in TEXT_COLUMNS:
        df[column] = df[column].str.strip()
    df['ENTRIES'] = df['ENTRIES'].str.strip().astype('int64')
    df['EXITS'] = df['EXITS'].str.strip().astype('int64')

    logger.info(f"Read {len(df):,} readings from {path.name}")
    return df


def apply_filters(df: pd.DataFrame) -> pd.DataFrame:
    """Keep subway divisions and drop excluded stations."""
    initial_count = len(df)

    df = df[~df['STATION'].isin(EXCLUDED_STATIONS)]
    df = df[df['DIVISION'].isin(SUBWAY_DIVISIONS)].copy()

    logger.info(
        f"   Kept divisions {', '.join(SUBWAY_DIVISIONS)}: {len(df):,} readings "
        f"({initial_count - len(df):,} removed)"
    )
    return df


def prepare_datetime_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Parse DATE and build DATETIME; raises ValueError on malformed text."""
    df['DATE_TEXT'] = df['DATE']
    df['DATE'] = pd.to_datetime(df['DATE'], format=DATE_FORMAT).astype('datetime64[ns]')
    df['DATETIME'] = df['DATE'] + pd.to_timedelta(df['TIME'])
    return df


def create_identifiers(df: pd.DataFrame) -> pd.DataFrame:
    df['turnstile_id'] = build_turnstile_id(df)
    df['observation_id'] = build_observation_id(df)
    logger.info(f"   {df['turnstile_id'].nunique():,} unique turnstiles")
    return df


def load_turnstile_year(path: Path) -> pd.DataFrame:
    """Read, filter and key one year's readings."""
    df = read_turnstile_file(path)
    df = apply_filters(df)
    df = prepare_datetime_columns(df)
    return create_identifiers(df)


def process_turnstile_year(
    readings: pd.DataFrame,
    mapping: pd.DataFrame,
    locations: pd.DataFrame,
    config: NormalizerConfig = DEFAULT_CONFIG,
) -> pd.DataFrame:
    """Readings -> normalized intervals -> turnstile-days -> ridership records."""
    intervals = normalize_counters(readings, config, show_progress=True)
    daily = aggregate_turnstile_daily(intervals)
    return resolve_ridership(daily, mapping, locations)
