"""Daily aggregation of normalized turnstile deltas.

Three grains are produced:
    - turnstile/day: one row per physical turnstile per calendar date
    - station/day: ridership records rolled up by complex and station
    - system/day: citywide totals used for the COVID comparison
"""

import logging

import pandas as pd

logger = logging.getLogger(__name__)

TURNSTILE_DAILY_KEYS = ['turnstile_id', 'DATE', 'STATION', 'LINENAME', 'DIVISION', 'UNIT', 'C/A', 'SCP']
STATION_DAILY_KEYS = ['DATE', 'COMPLEX_ID', 'STATION']


def aggregate_turnstile_daily(intervals: pd.DataFrame) -> pd.DataFrame:
    """Sum ENTRIES_DIFF/EXITS_DIFF into one row per turnstile per date."""
    daily = intervals.groupby(TURNSTILE_DAILY_KEYS, sort=True, dropna=False).agg(
        ENTRIES=('ENTRIES_DIFF', 'sum'),
        EXITS=('EXITS_DIFF', 'sum'),
    ).reset_index()

    daily['ENTRIES'] = daily['ENTRIES'].astype('int64')
    daily['EXITS'] = daily['EXITS'].astype('int64')

    logger.info(f"Aggregated {len(intervals):,} intervals into {len(daily):,} turnstile-days")
    return daily


def aggregate_station_daily(records: pd.DataFrame) -> pd.DataFrame:
    """Roll ridership records up to one row per station per date.

    Turnstiles without a resolved complex are kept under a null COMPLEX_ID
    rather than dropped.
    """
    station_daily = records.groupby(STATION_DAILY_KEYS, sort=True, dropna=False).agg(
        STATION_NAME=('STATION_NAME', 'first'),
        ENTRIES=('ENTRIES', 'sum'),
        EXITS=('EXITS', 'sum'),
        TURNSTILE_COUNT=('turnstile_id', 'nunique'),
    ).reset_index()

    logger.info(f"Created {len(station_daily):,} station-day records")
    return station_daily


def aggregate_system_daily(records: pd.DataFrame) -> pd.DataFrame:
    """Total entries and exits across the whole system for each date."""
    system_daily = records.groupby('DATE', sort=True).agg(
        ENTRIES=('ENTRIES', 'sum'),
        EXITS=('EXITS', 'sum'),
    ).reset_index()

    if not system_daily.empty:
        logger.info(
            f"System totals for {len(system_daily):,} days "
            f"({system_daily['DATE'].min():%Y-%m-%d} to {system_daily['DATE'].max():%Y-%m-%d})"
        )
    return system_daily
