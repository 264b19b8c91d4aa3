from unittest.mock import patch

import pandas as pd
import pytest

import run_pipeline
from subway_ridership import pipeline as pipeline_module
from subway_ridership.pipeline import RidershipPipeline


@pytest.fixture
def project_dir(tmp_path, write_turnstile_year, stations_file):
    base_dir = tmp_path / "project"
    turnstile_dir = base_dir / "data" / "raw" / "turnstile"
    for year in (2019, 2020, 2021):
        write_turnstile_year(turnstile_dir, year)
    stations_dir = base_dir / "data" / "raw" / "stations"
    stations_dir.mkdir(parents=True)
    (stations_dir / "stations.csv").write_text(stations_file.read_text())
    return base_dir


@pytest.fixture
def cases() -> pd.DataFrame:
    return pd.DataFrame({
        "DATE": pd.to_datetime(["2020-01-02", "2021-01-01"]),
        "CASE_COUNT": [0, 4000],
    })


def test_pipeline_builds_snapshot_mapping_and_results(project_dir, cases) -> None:
    pipeline = RidershipPipeline(base_dir=project_dir)

    enriched = pipeline.run(cases=cases)

    assert pipeline.snapshot.path == project_dir / "data" / "processed" / "ridership_2019_2021.pkl"
    assert pipeline.snapshot.exists()
    assert pipeline.mapping_store.exists()
    assert (project_dir / "results" / "station_daily_ridership.csv").is_file()
    assert (project_dir / "results" / "system_daily_ridership.csv").is_file()

    # 2 days per year, 3 years
    assert len(enriched) == 6
    assert enriched["ENTRIES"].tolist() == [50, 75] * 3
    assert enriched["EXITS"].tolist() == [20, 32] * 3
    assert enriched["CASE_COUNT"].tolist() == [0, 0, 0, 0, 4000, 0]
    assert enriched["ENTRIES_7DAY_AVG"].isna().all()

    records = pipeline.snapshot.load()
    assert len(records) == 18
    assert records["turnstile_id"].nunique() == 3


def test_pipeline_reuses_cached_snapshot(project_dir, cases) -> None:
    RidershipPipeline(base_dir=project_dir).run(cases=cases)

    for path in (project_dir / "data" / "raw" / "turnstile").glob("*.csv"):
        path.unlink()

    enriched = RidershipPipeline(base_dir=project_dir).run(cases=cases)
    assert len(enriched) == 6


def test_pipeline_uses_curated_mapping(project_dir, cases) -> None:
    mapping_file = project_dir / "references" / "stations" / "station_complex_mapping.csv"
    mapping_file.parent.mkdir(parents=True)
    mapping_file.write_text(
        "UNIT,STATION,LINENAME,DIVISION,Complex ID\n"
        "R051,59 ST,456NQRW,BMT,611\n"
        "R999,NOWHERE,Z,IND,\n"
    )

    pipeline = RidershipPipeline(base_dir=project_dir, years=(2021,))
    pipeline.run(cases=cases)

    records = pipeline.snapshot.load()
    assert set(records["COMPLEX_ID"].dropna()) == {611}
    assert set(records["STATION_NAME"].dropna()) == {"Times Sq-42 St"}


def test_curated_mapping_does_not_need_reference_year(project_dir, cases) -> None:
    mapping_file = project_dir / "references" / "stations" / "station_complex_mapping.csv"
    mapping_file.parent.mkdir(parents=True)
    mapping_file.write_text(
        "UNIT,STATION,LINENAME,DIVISION,Complex ID\n"
        "R051,59 ST,456NQRW,BMT,613\n"
    )
    (project_dir / "data" / "raw" / "turnstile" / "turnstile_2021.csv").unlink()

    pipeline = RidershipPipeline(base_dir=project_dir, years=(2019,))
    enriched = pipeline.run(cases=cases)

    assert enriched["DATE"].dt.year.unique().tolist() == [2019]
    assert not (project_dir / "data" / "raw" / "turnstile" / "turnstile_2021.csv").exists()


def test_missing_reference_year_without_mapping_raises(project_dir) -> None:
    (project_dir / "data" / "raw" / "turnstile" / "turnstile_2021.csv").unlink()

    pipeline = RidershipPipeline(base_dir=project_dir, years=(2019,))
    with pytest.raises(FileNotFoundError, match="2021"):
        pipeline.build_ridership()


def test_missing_turnstile_data_raises(tmp_path) -> None:
    pipeline = RidershipPipeline(base_dir=tmp_path)
    with pytest.raises(FileNotFoundError):
        pipeline.build_ridership()


def test_runner_exits_nonzero_on_missing_data(tmp_path) -> None:
    with patch.object(run_pipeline, "PROJECT_ROOT", tmp_path):
        assert run_pipeline.main(["--skip-plot"]) == 1


def test_runner_end_to_end_with_offline_cases(project_dir, tmp_path) -> None:
    cases_csv = tmp_path / "cases.csv"
    cases_csv.write_text("date_of_interest,CASE_COUNT\n01/01/2021,4000\n")

    with patch.object(run_pipeline, "PROJECT_ROOT", project_dir), \
            patch.object(pipeline_module, "fetch_case_counts") as fetch:
        assert run_pipeline.main(["--offline-cases", str(cases_csv)]) == 0

    fetch.assert_not_called()
    assert (project_dir / "results" / "ridership_vs_cases.png").is_file()
    assert list((project_dir / "logs").glob("run_pipeline_*.log"))
