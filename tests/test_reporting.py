from __future__ import annotations

import json

import pandas as pd

from bidledger import BidLedgerService
from bidledger.config import OutputConfig
from bidledger.reporting import export_aggregates, export_validation_history, time_series_rows


def test_export_aggregates_writes_reports(tmp_path, service: BidLedgerService, seeded) -> None:
    output = OutputConfig(directory=tmp_path / "reports")

    paths = export_aggregates(
        service.compute_aggregates(),
        service.compute_time_series(),
        service.bidder_performance(),
        output,
        metadata={"source": "test"},
    )

    assert set(paths) == {"divisions", "timeseries", "bidders", "workbook", "audit"}
    for path in paths.values():
        assert path.exists()

    divisions = pd.read_csv(paths["divisions"], dtype={"csi_division": str})
    assert list(divisions["csi_division"].fillna("overall")) == ["03", "09", "overall"]

    workbook = pd.ExcelFile(paths["workbook"], engine="openpyxl")
    assert workbook.sheet_names == ["Divisions", "Time series", "Bidders"]

    audit = json.loads(paths["audit"].read_text(encoding="utf-8"))
    assert audit["source"] == "test"
    assert audit["basis"] == "median_bid"
    assert audit["bidder_count"] == 4


def test_time_series_rows_flatten_overall() -> None:
    rows = time_series_rows(
        {
            "series": [{"csi_division": "03", "points": [{"period": "2024-03", "package_count": 1}]}],
            "overall": [{"period": "2024-03", "package_count": 1}],
        }
    )

    assert [row["csi_division"] for row in rows] == ["03", "overall"]


def test_export_validation_history(tmp_path, service: BidLedgerService, seeded) -> None:
    service.create_validation_snapshot(seeded["project"].id, "JD")

    path = export_validation_history(service.validation_history(seeded["project"].id), tmp_path / "v.csv")

    frame = pd.read_csv(path)
    assert frame.loc[0, "validator"] == "JD"
    assert frame.loc[0, "selected_total"] == 170000
    assert bool(frame.loc[0, "is_current"]) is True
