"""
Subway Ridership vs. COVID-19 Pipeline
======================================

Steps:
    1. Stage yearly turnstile tables from weekly files if they are missing
    2. Load station locations and the curated station-complex mapping
    3. Per year: normalize counters, aggregate per turnstile/day, resolve stations
    4. Merge the three years and cache the snapshot
    5. Aggregate station/day and system/day totals
    6. Join COVID-19 case counts and compute 7-day averages
    7. Render the chart

Inputs:
    - data/raw/turnstile/turnstile_<year>.csv (or weekly files under weekly/)
    - data/raw/stations/stations.csv
    - references/stations/station_complex_mapping.csv (derived if absent)

Outputs:
    - data/processed/ridership_2019_2021.pkl (cached snapshot)
    - results/station_daily_ridership.csv
    - results/system_daily_ridership.csv
    - results/ridership_vs_cases.png
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Sequence

import pandas as pd

from subway_ridership.aggregate_ridership import aggregate_station_daily, aggregate_system_daily
from subway_ridership.enrich_covid import enrich_with_cases, fetch_case_counts
from subway_ridership.merge_years import SnapshotCache, merge_years, snapshot_key
from subway_ridership.normalize_counters import DEFAULT_CONFIG, NormalizerConfig
from subway_ridership.process_turnstile_year import (
    load_turnstile_year,
    process_turnstile_year,
    read_turnstile_file,
)
from subway_ridership.resolve_stations import (
    StationMappingStore,
    derive_station_mapping,
    load_station_locations,
)
from subway_ridership.stage_turnstile_data import stage_yearly_files
from subway_ridership.utils.runtime import find_project_root

logger = logging.getLogger(__name__)

ANALYSIS_YEARS = (2019, 2020, 2021)
MAPPING_REFERENCE_YEAR = 2021  # Most recent year reflects current unit/station naming


class RidershipPipeline:
    """Build the merged ridership snapshot and the enriched daily series."""

    def __init__(
        self,
        base_dir: Optional[Path] = None,
        years: Sequence[int] = ANALYSIS_YEARS,
        config: NormalizerConfig = DEFAULT_CONFIG,
        mapping_store: Optional[StationMappingStore] = None,
        snapshot: Optional[SnapshotCache] = None,
        mapping_reference_year: int = MAPPING_REFERENCE_YEAR,
    ):
        self.base_dir = base_dir or find_project_root()
        self.years = tuple(sorted(years))
        self.config = config
        self.mapping_reference_year = mapping_reference_year

        self.turnstile_dir = self.base_dir / "data" / "raw" / "turnstile"
        self.stations_file = self.base_dir / "data" / "raw" / "stations" / "stations.csv"
        self.processed_dir = self.base_dir / "data" / "processed"
        self.results_dir = self.base_dir / "results"

        self.mapping_store = mapping_store or StationMappingStore(
            self.base_dir / "references" / "stations" / "station_complex_mapping.csv"
        )
        self.snapshot = snapshot or SnapshotCache(self.processed_dir, snapshot_key(self.years))

    def turnstile_path(self, year: int) -> Path:
        return self.turnstile_dir / f"turnstile_{year}.csv"

    def ensure_yearly_files(self) -> None:
        """Stage yearly tables from weekly downloads when any are missing.

        The mapping reference year is only needed while no curated mapping exists.
        """
        needed = set(self.years)
        if not self.mapping_store.exists():
            needed.add(self.mapping_reference_year)
        missing = [year for year in sorted(needed) if not self.turnstile_path(year).is_file()]
        if not missing:
            return
        weekly_dir = self.turnstile_dir / "weekly"
        if not weekly_dir.is_dir():
            raise FileNotFoundError(
                f"Missing turnstile data for {', '.join(map(str, missing))} and no weekly files in {weekly_dir}"
            )
        logger.info(f"Staging yearly turnstile tables for {', '.join(map(str, missing))}")
        stage_yearly_files(weekly_dir, self.turnstile_dir, missing)

    def build_station_mapping(self, locations: pd.DataFrame) -> pd.DataFrame:
        """Curated mapping, derived from the reference year on first run."""
        def derive() -> pd.DataFrame:
            raw = read_turnstile_file(self.turnstile_path(self.mapping_reference_year))
            return derive_station_mapping(raw, locations)

        return self.mapping_store.load_or_derive(derive)

    def build_ridership(self) -> pd.DataFrame:
        """Run normalize/aggregate/resolve for every year and merge."""
        self.ensure_yearly_files()
        locations = load_station_locations(self.stations_file)
        mapping = self.build_station_mapping(locations)

        frames = {}
        for year in self.years:
            logger.info(f"Processing turnstile data for {year}")
            readings = load_turnstile_year(self.turnstile_path(year))
            frames[year] = process_turnstile_year(readings, mapping, locations, self.config)

        return merge_years(frames)

    def load_ridership(self) -> pd.DataFrame:
        """Merged ridership records, from the snapshot when one exists."""
        return self.snapshot.get_or_build(self.build_ridership)

    def run(self, cases: Optional[pd.DataFrame] = None) -> pd.DataFrame:
        """Produce the enriched system/day series and write result tables.

        ``cases`` defaults to a live fetch of NYC case counts.
        """
        records = self.load_ridership()

        self.results_dir.mkdir(parents=True, exist_ok=True)
        station_daily = aggregate_station_daily(records)
        station_daily.to_csv(self.results_dir / "station_daily_ridership.csv", index=False)

        system_daily = aggregate_system_daily(records)
        if cases is None:
            cases = fetch_case_counts()
        enriched = enrich_with_cases(system_daily, cases)

        output_file = self.results_dir / "system_daily_ridership.csv"
        enriched.to_csv(output_file, index=False, date_format='%Y-%m-%d')
        logger.info(f"Saved {len(enriched):,} enriched daily records to {output_file}")
        return enriched
