from pathlib import Path

import pytest

# The MTA exports pad the last header with trailing spaces
TURNSTILE_HEADER = "C/A,UNIT,SCP,STATION,LINENAME,DIVISION,DATE,TIME,DESC,ENTRIES,EXITS" + " " * 20

STATIONS_CSV = (
    "Station ID,Complex ID,GTFS Stop ID,Division,Line,Stop Name,Borough,Daytime Routes,Structure,"
    "GTFS Latitude,GTFS Longitude,ADA\n"
    "6,613,R11,BMT,Broadway,Lexington Av/59 St,M,N R W,Subway,40.76266,-73.967258,0\n"
    "613,613,629,IRT,Lexington Av,59 St,M,4 5 6,Subway,40.762526,-73.967967,0\n"
    "25,611,R16,BMT,Broadway,Times Sq-42 St,M,N Q R W,Subway,40.754672,-73.986754,1\n"
)


def turnstile_rows(year: int) -> list:
    """Two turnstiles at 59 St and one unmapped booth over two days."""
    return [
        f"A002,R051,02-00-00,59 ST,NQR456W,BMT,01/01/{year},03:00:00,REGULAR,1000,500",
        f"A002,R051,02-00-00,59 ST,NQR456W,BMT,01/01/{year},07:00:00,REGULAR,1050,520",
        f"A002,R051,02-00-00,59 ST,NQR456W,BMT,01/02/{year},03:00:00,REGULAR,1100,540",
        f"A002,R051,02-00-01,59 ST,NQR456W,BMT,01/01/{year},03:00:00,REGULAR,7000,100",
        f"A002,R051,02-00-01,59 ST,NQR456W,BMT,01/02/{year},03:00:00,REGULAR,6990,110",
        f"N999,R999,00-00-00,NOWHERE,Z,IND,01/01/{year},03:00:00,REGULAR,10,10",
        f"N999,R999,00-00-00,NOWHERE,Z,IND,01/02/{year},03:00:00,REGULAR,25,12",
        f"PTH01,R540,00-00-00,NEWARK BM BW,1,PTH,01/01/{year},03:00:00,REGULAR,10,10",
        f"OB01,R459,00-00-00,ORCHARD BEACH,6,IRT,01/01/{year},03:00:00,REGULAR,10,10",
    ]


def write_turnstile_file(path: Path, rows: list) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join([TURNSTILE_HEADER, *rows]) + "\n")
    return path


@pytest.fixture
def turnstile_file(tmp_path) -> Path:
    return write_turnstile_file(tmp_path / "turnstile_2021.csv", turnstile_rows(2021))


@pytest.fixture
def stations_file(tmp_path) -> Path:
    path = tmp_path / "stations.csv"
    path.write_text(STATIONS_CSV)
    return path


@pytest.fixture
def write_turnstile_year():
    """Factory writing the standard rows for ``year`` under ``directory``."""
    def _write(directory: Path, year: int) -> Path:
        return write_turnstile_file(directory / f"turnstile_{year}.csv", turnstile_rows(year))
    return _write
