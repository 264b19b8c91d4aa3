#!/usr/bin/env python3
"""
Resolve Turnstiles to Station Complexes
=======================================

Purpose:
    Attach station-complex IDs, long-form station names and coordinates to
    daily turnstile totals.

Identifiers:
    - turnstile_id: UNIT + C/A + SCP (one physical turnstile across all time)
    - observation_id: turnstile_id + DATE + TIME (one reading)

Station complex mapping:
    The turnstile feed has no complex ID, and the MTA's published
    remote-unit crosswalk is out of date. A mapping of
    (UNIT, STATION, LINENAME, DIVISION) -> Complex ID is therefore derived once
    from a reference year and written to
    references/stations/station_complex_mapping.csv for manual curation.
    When that file exists it is loaded instead of being re-derived. Derived
    rows are seeded with a Complex ID only when the station name identifies
    exactly one complex in the station-location table.

Joins:
    1. daily totals LEFT JOIN mapping ON (STATION, UNIT)
    2. result LEFT JOIN station locations ON Complex ID
    3. keep the first row per (turnstile_id, DATE, STATION) in pre-join order

    Unmatched rows keep null complex/location fields so no ridership is lost.
    DIVISION always comes from the turnstile feed, never from the mapping.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Callable, Optional

import pandas as pd

logger = logging.getLogger(__name__)

SUBWAY_DIVISIONS = ["BMT", "IND", "IRT"]
MAPPING_COLUMNS = ['UNIT', 'STATION', 'LINENAME', 'DIVISION', 'Complex ID']
DEDUP_KEY = ['turnstile_id', 'DATE', 'STATION']

# Turnstile feed abbreviations vs. station-location spellings
NAME_ABBREVIATIONS = {
    'AVENUE': 'AV',
    'AVE': 'AV',
    'STREET': 'ST',
    'STATION': 'STA',
    'SQUARE': 'SQ',
    'PARKWAY': 'PKWY',
    'BOULEVARD': 'BLVD',
    'CENTER': 'CTR',
    'HEIGHTS': 'HTS',
}


def build_turnstile_id(df: pd.DataFrame) -> pd.Series:
    """Unit + C/A + SCP."""
    return df['UNIT'] + '_' + df['C/A'] + '_' + df['SCP']


def build_observation_id(df: pd.DataFrame) -> pd.Series:
    """turnstile_id + DATE + TIME, using the raw date text."""
    return df['turnstile_id'] + '_' + df['DATE_TEXT'] + '_' + df['TIME']


def canonical_linename(linename) -> str:
    """Sort the route letters so '123FLM' and 'LMF123' compare equal."""
    if pd.isna(linename):
        return ''
    return ''.join(sorted(str(linename).strip()))


def normalize_station_name(name) -> str:
    """Uppercase, strip punctuation and collapse common abbreviations."""
    if pd.isna(name):
        return ''
    tokens = re.sub(r'[^A-Z0-9]+', ' ', str(name).upper()).split()
    return ' '.join(NAME_ABBREVIATIONS.get(token, token) for token in tokens)


def load_station_locations(path: Path) -> pd.DataFrame:
    """Load the station-location reference table.

    One row per station; several rows may share a Complex ID. Route and
    accessibility metadata are dropped.
    """
    if not path.exists():
        raise FileNotFoundError(f"Station location table not found: {path}")

    df = pd.read_csv(path, dtype={'Stop Name': str})
    locations = df[['Complex ID', 'Stop Name', 'GTFS Latitude', 'GTFS Longitude']].rename(columns={
        'Complex ID': 'COMPLEX_ID',
        'Stop Name': 'STATION_NAME',
        'GTFS Latitude': 'LATITUDE',
        'GTFS Longitude': 'LONGITUDE',
    })
    locations['COMPLEX_ID'] = locations['COMPLEX_ID'].astype('Int64')

    logger.info(
        f"Loaded {len(locations):,} station locations "
        f"covering {locations['COMPLEX_ID'].nunique():,} complexes"
    )
    return locations


def suggest_complex_ids(mapping: pd.DataFrame, locations: pd.DataFrame) -> pd.Series:
    """Best-effort Complex ID per mapping row from an exact normalized-name match.

    Names that match no complex, or more than one, are left null for the
    curator.
    """
    names = locations[['COMPLEX_ID', 'STATION_NAME']].dropna().copy()
    names['NAME_KEY'] = names['STATION_NAME'].map(normalize_station_name)
    by_name = names.groupby('NAME_KEY')['COMPLEX_ID']
    complex_counts = by_name.nunique()
    unique_matches = by_name.first()[complex_counts == 1]

    keys = mapping['STATION'].map(normalize_station_name)
    return keys.map(unique_matches).astype('Int64')


def derive_station_mapping(raw: pd.DataFrame, locations: Optional[pd.DataFrame] = None) -> pd.DataFrame:
    """Build the (UNIT, STATION, LINENAME, DIVISION) mapping from one year's feed."""
    subway = raw[raw['DIVISION'].isin(SUBWAY_DIVISIONS)]
    mapping = subway[['UNIT', 'STATION', 'LINENAME', 'DIVISION']].copy()
    mapping['LINENAME'] = mapping['LINENAME'].map(canonical_linename)
    mapping = mapping.drop_duplicates().sort_values(['STATION', 'UNIT', 'LINENAME', 'DIVISION']).reset_index(drop=True)

    if locations is not None:
        mapping['Complex ID'] = suggest_complex_ids(mapping, locations)
        seeded = mapping['Complex ID'].notna().sum()
        logger.info(f"Seeded {seeded:,} of {len(mapping):,} mapping rows with a Complex ID")
    else:
        mapping['Complex ID'] = pd.Series(pd.NA, index=mapping.index, dtype='Int64')

    logger.info(f"Derived {len(mapping):,} unit/station/line combinations")
    return mapping


class StationMappingStore:
    """Curated station-complex mapping, loaded if present, else derived and saved.

    The file is meant to be edited by hand between runs; it is never
    overwritten once it exists.
    """

    def __init__(self, path: Path):
        self.path = path

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> pd.DataFrame:
        mapping = pd.read_csv(self.path, dtype=str, keep_default_na=False)
        missing = [col for col in MAPPING_COLUMNS if col not in mapping.columns]
        if missing:
            raise ValueError(f"Station mapping {self.path} is missing columns: {', '.join(missing)}")

        # Blank Complex ID cells are rows the curator has not resolved yet
        complex_ids = mapping['Complex ID'].str.strip()
        mapping['Complex ID'] = pd.to_numeric(complex_ids.where(complex_ids != '')).astype('Int64')
        return mapping[MAPPING_COLUMNS]

    def save(self, mapping: pd.DataFrame) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        mapping[MAPPING_COLUMNS].to_csv(self.path, index=False)

    def load_or_derive(self, derive: Callable[[], pd.DataFrame]) -> pd.DataFrame:
        """Return the curated mapping, deriving and persisting it on first use."""
        if self.exists():
            mapping = self.load()
            logger.info(f"Loaded curated station mapping ({len(mapping):,} rows) from {self.path}")
            return mapping

        mapping = derive()
        self.save(mapping)
        unresolved = mapping['Complex ID'].isna().sum()
        logger.warning(
            f"No curated station mapping found; wrote derived mapping to {self.path}. "
            f"{unresolved:,} rows have no Complex ID. Review the file before the next run."
        )
        return mapping[MAPPING_COLUMNS]


def deduplicate_first(df: pd.DataFrame, key: list, order_column: str) -> pd.DataFrame:
    """Keep the row with the lowest ``order_column`` for each ``key``."""
    ordered = df.sort_values(order_column, kind='mergesort')
    return ordered[~ordered.duplicated(subset=key, keep='first')]


def resolve_ridership(daily: pd.DataFrame, mapping: pd.DataFrame, locations: pd.DataFrame) -> pd.DataFrame:
    """Join daily turnstile totals to complexes and locations."""
    logger.info(f"Resolving {len(daily):,} turnstile-days to station complexes")

    left = daily.assign(_ORDER=range(len(daily)))
    complexes = mapping[['STATION', 'UNIT', 'Complex ID']].rename(
        columns={'Complex ID': 'COMPLEX_ID'}
    )
    complexes['COMPLEX_ID'] = complexes['COMPLEX_ID'].astype('Int64')

    joined = left.merge(complexes, on=['STATION', 'UNIT'], how='left')
    # pandas matches null keys to each other; unresolved rows must stay unmatched
    located = locations[locations['COMPLEX_ID'].notna()]
    joined = joined.merge(located, on='COMPLEX_ID', how='left')
    fanned_out = len(joined)

    resolved = deduplicate_first(joined, DEDUP_KEY, '_ORDER')
    resolved = resolved.drop(columns='_ORDER').reset_index(drop=True)

    logger.info(f"   Collapsed {fanned_out - len(resolved):,} fan-out rows from multi-matches")
    no_complex = resolved['COMPLEX_ID'].isna().sum()
    no_location = resolved['LATITUDE'].isna().sum()
    if no_complex:
        logger.warning(
            f"   {no_complex:,} of {len(resolved):,} turnstile-days have no Complex ID "
            f"({no_complex / len(resolved) * 100:.1f}%)"
        )
    if no_location > no_complex:
        logger.warning(f"   {no_location - no_complex:,} turnstile-days have a Complex ID with no location")

    return resolved[[
        'turnstile_id', 'DATE', 'STATION', 'STATION_NAME', 'LINENAME', 'DIVISION',
        'COMPLEX_ID', 'LATITUDE', 'LONGITUDE', 'ENTRIES', 'EXITS',
    ]]
