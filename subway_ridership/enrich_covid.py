"""
Join NYC COVID-19 case counts onto system-wide daily ridership.

Case counts come from the NYC Open Data "COVID-19 Daily Counts of Cases,
Hospitalizations, and Deaths" dataset (rc75-m7u3), either fetched through the
Socrata API or read from a downloaded CSV.

Dates with no reported cases (everything before 2020-02-29) are real zeros,
so missing counts are filled with 0. If the case data cannot be fetched at
all the ridership series is still produced, with CASE_COUNT = 0 throughout.

Moving averages use a trailing window of calendar days: the value for day N
is the mean of days N-6..N. Days without a full week of rows behind them
(the first six days, and any week containing a date with no turnstile data)
have no average and stay NaN so that charts draw a gap instead of a drop to
zero.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Sequence

import pandas as pd
import requests

from subway_ridership.utils.socrata import fetch_all_rows

logger = logging.getLogger(__name__)

CASE_COUNT_DATASET_ID = "rc75-m7u3"
MOVING_AVERAGE_WINDOW = 7
SMOOTHED_COLUMNS = ['ENTRIES', 'EXITS', 'CASE_COUNT']


def _empty_case_counts() -> pd.DataFrame:
    return pd.DataFrame({
        'DATE': pd.Series(dtype='datetime64[ns]'),
        'CASE_COUNT': pd.Series(dtype='int64'),
    })


def _tidy_case_counts(df: pd.DataFrame) -> pd.DataFrame:
    """Normalize column names/types to DATE (midnight) and integer CASE_COUNT."""
    df = df.rename(columns=str.lower)
    cases = pd.DataFrame({
        'DATE': pd.to_datetime(df['date_of_interest']).dt.normalize().astype('datetime64[ns]'),
        'CASE_COUNT': pd.to_numeric(df['case_count']).fillna(0).astype('int64'),
    })
    # One row per date; later rows win if the source repeats a date
    return cases.drop_duplicates(subset='DATE', keep='last').sort_values('DATE').reset_index(drop=True)


def fetch_case_counts(session: Optional[requests.Session] = None) -> pd.DataFrame:
    """Fetch daily NYC case counts; an unavailable API yields an empty table."""
    try:
        rows = fetch_all_rows(
            CASE_COUNT_DATASET_ID,
            select="date_of_interest, case_count",
            order="date_of_interest ASC",
            session=session,
        )
    except (RuntimeError, requests.RequestException) as exc:
        logger.warning(f"Could not fetch COVID case counts ({exc}); continuing without case data")
        return _empty_case_counts()

    if not rows:
        logger.warning("COVID case count dataset returned no rows")
        return _empty_case_counts()

    return _tidy_case_counts(pd.DataFrame(rows))


def load_case_counts(path: Path) -> pd.DataFrame:
    """Read case counts from a CSV export of the same dataset."""
    if not path.exists():
        raise FileNotFoundError(f"Case count file not found: {path}")
    cases = _tidy_case_counts(pd.read_csv(path))
    logger.info(f"Loaded {len(cases):,} daily case counts from {path}")
    return cases


def add_moving_averages(
    df: pd.DataFrame,
    columns: Sequence[str] = SMOOTHED_COLUMNS,
    window: int = MOVING_AVERAGE_WINDOW,
) -> pd.DataFrame:
    """Add trailing ``<col>_7DAY_AVG`` columns over calendar days.

    The window spans ``window`` calendar days ending on each row's DATE and
    needs a row for every one of those days; a window touching a missing date
    stays NaN.
    """
    df = df.sort_values('DATE').reset_index(drop=True)
    by_date = df.set_index('DATE')
    for column in columns:
        smoothed = by_date[column].rolling(f"{window}D", min_periods=window).mean()
        df[f"{column}_{window}DAY_AVG"] = smoothed.to_numpy()
    return df


def enrich_with_cases(system_daily: pd.DataFrame, cases: pd.DataFrame) -> pd.DataFrame:
    """Left-join case counts by date, fill gaps with 0 and smooth."""
    cases = cases[['DATE', 'CASE_COUNT']].astype({'DATE': system_daily['DATE'].dtype})
    enriched = system_daily.merge(cases, on='DATE', how='left')
    missing = enriched['CASE_COUNT'].isna().sum()
    enriched['CASE_COUNT'] = enriched['CASE_COUNT'].fillna(0).astype('int64')

    logger.info(
        f"Joined case counts onto {len(enriched):,} days "
        f"({missing:,} days without reported cases set to 0)"
    )
    return add_moving_averages(enriched)
