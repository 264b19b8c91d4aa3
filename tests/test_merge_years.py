import numpy as np
import pandas as pd
import pytest

from subway_ridership import merge_years
from subway_ridership.merge_years import SnapshotCache


def make_records(year: int, turnstiles=("T1", "T2")) -> pd.DataFrame:
    rows = []
    for day in (2, 1):
        for turnstile in turnstiles:
            rows.append((turnstile, pd.Timestamp(year, 1, day), "59 ST", 613 if turnstile == "T1" else None))
    df = pd.DataFrame(rows, columns=["turnstile_id", "DATE", "STATION", "COMPLEX_ID"])
    df["STATION_NAME"] = np.where(df["turnstile_id"] == "T1", "59 St", None)
    df["COMPLEX_ID"] = df["COMPLEX_ID"].astype("Int64")
    df["LATITUDE"] = np.where(df["turnstile_id"] == "T1", 40.762526, np.nan)
    df["ENTRIES"] = np.arange(len(df), dtype="int64") * 10
    df["EXITS"] = np.arange(len(df), dtype="int64")
    return df


def test_snapshot_key() -> None:
    assert merge_years.snapshot_key([2021, 2019, 2020]) == "2019_2021"


def test_merge_preserves_all_rows_in_year_order() -> None:
    frames = {2021: make_records(2021), 2019: make_records(2019), 2020: make_records(2020)}

    merged = merge_years.merge_years(frames)

    assert len(merged) == 12
    assert merged["DATE"].is_monotonic_increasing
    # Same turnstile recurs across years
    assert (merged["turnstile_id"] == "T1").sum() == 6
    assert merged.index.tolist() == list(range(12))


def test_merge_requires_input() -> None:
    with pytest.raises(ValueError):
        merge_years.merge_years({})


def test_snapshot_round_trip(tmp_path) -> None:
    merged = merge_years.merge_years({2019: make_records(2019), 2020: make_records(2020)})
    cache = SnapshotCache(tmp_path / "processed", "2019_2020")

    cache.save(merged)
    reloaded = cache.load()

    assert cache.path.name == "ridership_2019_2020.pkl"
    pd.testing.assert_frame_equal(reloaded, merged)


def test_get_or_build_only_builds_once(tmp_path) -> None:
    cache = SnapshotCache(tmp_path, "2019_2021")
    builds = []

    def build():
        builds.append(1)
        return make_records(2019)

    first = cache.get_or_build(build)
    second = cache.get_or_build(build)

    assert len(builds) == 1
    pd.testing.assert_frame_equal(first, second)


def test_invalidate_forces_rebuild(tmp_path) -> None:
    cache = SnapshotCache(tmp_path, "2019_2021")
    assert cache.invalidate() is False

    cache.save(make_records(2019))
    assert cache.invalidate() is True
    assert not cache.exists()

    rebuilt = cache.get_or_build(lambda: make_records(2020))
    assert rebuilt["DATE"].dt.year.unique().tolist() == [2020]
