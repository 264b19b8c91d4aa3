#!/usr/bin/env python3
"""
Stage Weekly MTA Turnstile Files into Yearly Tables
===================================================

Purpose:
    The MTA publishes turnstile data as weekly files
    (turnstile_YYMMDD.txt, modern format from October 18, 2014). This stage
    combines the weekly files found in data/raw/turnstile/weekly/ and writes
    one table per analysis year to data/raw/turnstile/turnstile_<year>.csv.

    Rows are assigned to a year by their own DATE, not by the file they came
    from; a weekly file spanning New Year contributes to both years.

Usage:
    From project root:
        python -m subway_ridership.stage_turnstile_data
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Optional

import pandas as pd
from tqdm import tqdm

from subway_ridership.process_turnstile_year import COLUMN_NAMES, DATE_FORMAT

logger = logging.getLogger(__name__)

MODERN_FORMAT_START_DATE = 141018  # October 18, 2014
YEAR_SPILLOVER_DAYS = 7


def get_modern_format_files(weekly_dir: Path, years: Iterable[int]) -> List[Path]:
    """Weekly files in modern format that can contain rows for ``years``.

    A file is dated by the Saturday ending its week, so a file from the first
    week of the following January may still carry late-December rows. Later
    files of the following year are not read.
    """
    wanted = set(years)
    files = []
    for path in sorted(weekly_dir.glob("turnstile_*.txt")):
        date_str = path.stem.replace("turnstile_", "")
        if not date_str.isdigit() or len(date_str) != 6:
            continue
        file_date = int(date_str)
        if file_date < MODERN_FORMAT_START_DATE:
            continue
        file_year = 2000 + file_date // 10000
        month, day = divmod(file_date % 10000, 100)
        spills_back = month == 1 and day <= YEAR_SPILLOVER_DAYS
        if file_year in wanted or (spills_back and (file_year - 1) in wanted):
            files.append(path)

    logger.info(f"Found {len(files)} modern format weekly files in {weekly_dir}")
    return files


def read_weekly_file(path: Path) -> Optional[pd.DataFrame]:
    """Read one weekly file; files with an unexpected layout are skipped."""
    df = pd.read_csv(path, header=0, dtype=str)
    if len(df.columns) != len(COLUMN_NAMES):
        logger.warning(f"Unexpected column count in {path.name}: {len(df.columns)}; skipping")
        return None
    df.columns = COLUMN_NAMES
    return df


def stage_yearly_files(weekly_dir: Path, output_dir: Path, years: Iterable[int]) -> List[Path]:
    """Combine weekly files and write one CSV per requested year."""
    years = sorted(set(years))
    files = get_modern_format_files(weekly_dir, years)
    if not files:
        raise FileNotFoundError(f"No modern format weekly turnstile files in {weekly_dir}")

    frames = []
    for path in tqdm(files, desc="Reading weekly files"):
        df = read_weekly_file(path)
        if df is not None:
            frames.append(df)
    if not frames:
        raise ValueError("No data successfully read from weekly files")

    combined = pd.concat(frames, ignore_index=True)
    row_years = pd.to_datetime(combined['DATE'], format=DATE_FORMAT).dt.year

    output_dir.mkdir(parents=True, exist_ok=True)
    written = []
    for year in years:
        year_df = combined[row_years == year]
        if year_df.empty:
            logger.warning(f"No turnstile data found for year {year}")
            continue
        output_path = output_dir / f"turnstile_{year}.csv"
        year_df.to_csv(output_path, index=False)
        written.append(output_path)
        logger.info(f"Saved {year} data: {len(year_df):,} records to {output_path}")

    return written


def main() -> None:
    from subway_ridership.pipeline import ANALYSIS_YEARS
    from subway_ridership.utils.runtime import configure_logging, find_project_root

    base_dir = find_project_root()
    configure_logging(base_dir, "stage_turnstile_data")
    raw_dir = base_dir / "data" / "raw" / "turnstile"
    stage_yearly_files(raw_dir / "weekly", raw_dir, ANALYSIS_YEARS)


if __name__ == "__main__":
    main()
