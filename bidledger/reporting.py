"""Utilities for exporting aggregate outputs to disk."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import pandas as pd

from .aggregate import to_frame
from .config import OutputConfig
from .models import utc_now_iso

logger = logging.getLogger(__name__)


def time_series_rows(time_series: Mapping[str, Any]) -> List[Dict[str, Any]]:
    """Flatten per-division series plus the overall line into table rows."""

    rows: List[Dict[str, Any]] = []
    for entry in time_series.get("series", []):
        for point in entry.get("points", []):
            rows.append({"csi_division": entry.get("csi_division"), **point})
    for point in time_series.get("overall", []):
        rows.append({"csi_division": "overall", **point})
    return rows


def export_aggregates(
    aggregates: Mapping[str, Any],
    time_series: Mapping[str, Any],
    performance: Sequence[Mapping[str, Any]],
    output: OutputConfig,
    metadata: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Path]:
    """Persist aggregate artefacts to the configured output directory."""

    output_dir = Path(output.directory)
    output_dir.mkdir(parents=True, exist_ok=True)
    logger.info("Writing reports to %s", output_dir)

    divisions = to_frame(list(aggregates.get("divisions", [])) + [dict(aggregates.get("overall") or {})])
    series = to_frame(time_series_rows(time_series))
    bidders = to_frame(performance)

    paths: Dict[str, Path] = {}

    divisions_path = output_dir / output.divisions_report
    divisions.to_csv(divisions_path, index=False)
    paths["divisions"] = divisions_path

    series_path = output_dir / output.timeseries_report
    series.to_csv(series_path, index=False)
    paths["timeseries"] = series_path

    bidders_path = output_dir / output.bidders_report
    bidders.to_csv(bidders_path, index=False)
    paths["bidders"] = bidders_path

    workbook_path = output_dir / output.workbook
    with pd.ExcelWriter(workbook_path, engine="openpyxl") as writer:
        divisions.to_excel(writer, sheet_name="Divisions", index=False)
        series.to_excel(writer, sheet_name="Time series", index=False)
        bidders.to_excel(writer, sheet_name="Bidders", index=False)
    paths["workbook"] = workbook_path

    audit_payload: Dict[str, Any] = dict(metadata or {})
    audit_payload["generated_at"] = utc_now_iso()
    audit_payload["basis"] = aggregates.get("basis")
    audit_payload["overall"] = aggregates.get("overall")
    audit_payload["division_count"] = len(aggregates.get("divisions", []))
    audit_payload["bidder_count"] = len(performance)
    audit_path = output_dir / output.audit_log
    with audit_path.open("w", encoding="utf-8") as handle:
        json.dump(audit_payload, handle, ensure_ascii=False, indent=2, default=str)
    paths["audit"] = audit_path

    return paths


def export_validation_history(history: Sequence[Mapping[str, Any]], path: Path) -> Path:
    """Write a project's validation history as CSV, one metric per column."""

    rows = []
    for snapshot in history:
        row = {key: value for key, value in snapshot.items() if key != "metrics"}
        row.update(snapshot.get("metrics") or {})
        rows.append(row)
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    to_frame(rows).to_csv(path, index=False)
    logger.info("Wrote %d validation snapshots to %s", len(rows), path)
    return path


__all__ = ["export_aggregates", "export_validation_history", "time_series_rows"]
