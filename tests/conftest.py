"""Shared test fixtures and sample DEX data."""

from __future__ import annotations

import json

import pytest

from dex_collector.storage.database import Database


@pytest.fixture
def tmp_db(tmp_path):
    """Create a temporary DuckDB database for testing."""
    db_path = str(tmp_path / "test.duckdb")
    with Database(db_path) as db:
        yield db


def dex(*lines: str) -> str:
    """Join segments the way a vending controller sends them."""
    return "\r\n".join(lines) + "\r\n"


SAMPLE_DEX = dex(
    "DXS*RST7654321*VA*V0/6*1",
    "ST*001*0001",
    "ID1*WE31  *VE5-ST   *1234**0**",
    "ID4*2*001*0",
    "CB1*WB3456*VE5*3.05",
    "VA1*166110*451*166110*451",
    "CA2*128*36*0*0",
    "CA3*52300*2100*30200*20000*52300*2100*30200*20000",
    "CA17*00*5*40",
    "CA17*01*10*35",
    "CA17*02*25*60",
    "DA2*4250*12",
    "PA1*10*360",
    "PA2*5*1800*5*1800*0*0",
    "PA1*11*150",
    "PA2*12*1800*12*1800",
    "PA1*12*200",
    "PA2*0*0*0*0",
    "PA1*13*225",
    "PA2*20*4500*20*4500",
    "EA1*EGS*250930*1237",
    "EA2*EGS*3*12",
    "MA5*DETECTED TEMPERATURE*38*F",
    "MA5*ERROR*UA09*UA10",
    "ZZ9*FOO*BAR",
    "G85*ABCD",
    "SE*25*0001",
    "DXE*1*1",
)

# Same machine a little later: door opened again, one column still faulted
LATER_DEX = dex(
    "DXS*RST7654321*VA*V0/6*1",
    "ID1*WE31  *VE5-ST   *1234**0**",
    "VA1*170000*470*170000*470",
    "EA1*EGS*250930*1415",
    "MA5*ERROR*UA09",
    "DXE*1*1",
)


@pytest.fixture
def sample_dex():
    return SAMPLE_DEX


def feed_row(dex_id: str, case_serial: str, created: str, row_id: str | None = None) -> dict:
    """A listing row in the operator platform's shape."""
    return {
        "DT_RowId": row_id if row_id is not None else f"row_{dex_id}",
        "dexRaw": {"id": dex_id, "created": created},
        "devices": {"caseSerial": case_serial},
    }


def write_feed(directory, rows: list[dict], raws: dict[str, str]) -> None:
    directory.mkdir(parents=True, exist_ok=True)
    (directory / "candidates.json").write_text(json.dumps({"data": rows}), encoding="utf-8")
    raw_dir = directory / "raw"
    raw_dir.mkdir(exist_ok=True)
    for dex_id, text in raws.items():
        (raw_dir / f"{dex_id}.txt").write_bytes(text.encode("utf-8"))


@pytest.fixture
def make_feed(tmp_path):
    """Factory writing a feed directory: make_feed(rows, raws) -> path."""
    def _make(rows: list[dict], raws: dict[str, str]):
        path = tmp_path / "feed"
        write_feed(path, rows, raws)
        return path
    return _make
