"""Division, portfolio, project and time-series roll-ups of package costs."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

import pandas as pd

from .config import BASES
from .errors import ValidationError
from .models import Package, Project
from .normalize import name_key
from .statistics import cost_per_sf, gmp_comparison, to_finite
from .store import Store

logger = logging.getLogger(__name__)

UNCLASSIFIED = "unclassified"
FRAME_COLUMNS = [
    "project_id",
    "project_name",
    "project_date",
    "building_sf",
    "package_id",
    "package_code",
    "csi_division",
    "amount",
    "cost_per_sf",
]


@dataclass
class PackageFilter:
    """Selects the package set an aggregate is computed over.

    Date bounds are inclusive and apply to the owning project's date;
    projects without a date drop out once a bound is set.
    """

    project_ids: Optional[Sequence[int]] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    county_name: Optional[str] = None
    county_state: Optional[str] = None
    min_sf: Optional[float] = None
    max_sf: Optional[float] = None
    include_unclassified: bool = True

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "PackageFilter":
        data = dict(data or {})
        project_ids = data.get("project_ids")
        return cls(
            project_ids=[int(pid) for pid in project_ids] if project_ids is not None else None,
            start_date=data.get("start_date") or None,
            end_date=data.get("end_date") or None,
            county_name=data.get("county_name") or None,
            county_state=data.get("county_state") or None,
            min_sf=to_finite(data.get("min_sf")),
            max_sf=to_finite(data.get("max_sf")),
            include_unclassified=bool(data.get("include_unclassified", True)),
        )

    def accepts(self, project: Project) -> bool:
        if self.project_ids is not None and project.id not in set(self.project_ids):
            return False
        if self.start_date or self.end_date:
            when = _parse_date(project.project_date)
            if when is None:
                return False
            if self.start_date and when < _bound(self.start_date, "start_date"):
                return False
            if self.end_date and when > _bound(self.end_date, "end_date"):
                return False
        if self.county_name and name_key(project.county_name) != name_key(self.county_name):
            return False
        if self.county_state and name_key(project.county_state) != name_key(self.county_state):
            return False
        if self.min_sf is not None or self.max_sf is not None:
            sf = to_finite(project.building_sf)
            if sf is None:
                return False
            if self.min_sf is not None and sf < self.min_sf:
                return False
            if self.max_sf is not None and sf > self.max_sf:
                return False
        return True


def _parse_date(value: Any) -> Optional[pd.Timestamp]:
    if not value:
        return None
    parsed = pd.to_datetime(value, errors="coerce")
    if pd.isna(parsed):
        return None
    return parsed


def _bound(value: str, label: str) -> pd.Timestamp:
    parsed = _parse_date(value)
    if parsed is None:
        raise ValidationError(f"Invalid {label} {value!r}")
    return parsed


def check_basis(basis: Optional[str]) -> str:
    chosen = basis or "median_bid"
    if chosen not in BASES:
        raise ValidationError(f"Unknown basis {basis!r}; expected one of {', '.join(BASES)}")
    return chosen


def basis_amount(package: Package, basis: str) -> Optional[float]:
    """The package's representative cost on ``basis``.

    A package without a median bid falls back to its selected amount.
    """

    if basis == "selected_amount":
        return to_finite(package.selected_amount)
    median_bid = to_finite(package.median_bid)
    if median_bid is not None:
        return median_bid
    return to_finite(package.selected_amount)


def package_frame(store: Store, package_filter: Optional[PackageFilter] = None, basis: str = "median_bid") -> pd.DataFrame:
    """One row per filtered package with its basis amount and cost per SF."""

    package_filter = package_filter or PackageFilter()
    basis = check_basis(basis)
    rows: List[Dict[str, Any]] = []
    for project in sorted(store.projects.values(), key=lambda item: item.id):
        if not package_filter.accepts(project):
            continue
        for package in store.packages_for_project(project.id):
            division = package.csi_division or UNCLASSIFIED
            if division == UNCLASSIFIED and not package_filter.include_unclassified:
                continue
            amount = basis_amount(package, basis)
            rows.append(
                {
                    "project_id": project.id,
                    "project_name": project.name,
                    "project_date": project.project_date,
                    "building_sf": to_finite(project.building_sf),
                    "package_id": package.id,
                    "package_code": package.code,
                    "csi_division": division,
                    "amount": amount,
                    "cost_per_sf": cost_per_sf(amount, project.building_sf),
                }
            )
    frame = pd.DataFrame(rows, columns=FRAME_COLUMNS)
    frame["amount"] = pd.to_numeric(frame["amount"], errors="coerce")
    frame["cost_per_sf"] = pd.to_numeric(frame["cost_per_sf"], errors="coerce")
    return frame


def _describe(costs: pd.Series) -> Dict[str, Any]:
    values = costs.dropna()
    if values.empty:
        return {
            "package_count": 0,
            "median_cost_per_sf": None,
            "avg_cost_per_sf": None,
            "min_cost_per_sf": None,
            "max_cost_per_sf": None,
        }
    return {
        "package_count": int(values.count()),
        "median_cost_per_sf": float(values.median()),
        "avg_cost_per_sf": float(values.mean()),
        "min_cost_per_sf": float(values.min()),
        "max_cost_per_sf": float(values.max()),
    }


def compute_aggregates(
    store: Store,
    package_filter: Optional[PackageFilter] = None,
    basis: str = "median_bid",
) -> Dict[str, Any]:
    """Cost-per-SF statistics per CSI division plus a portfolio row.

    Packages whose cost per SF cannot be computed are excluded and counted
    in ``excluded_count``.
    """

    basis = check_basis(basis)
    frame = package_frame(store, package_filter, basis)
    usable = frame[frame["cost_per_sf"].notna()]

    divisions: List[Dict[str, Any]] = []
    for division, group in usable.groupby("csi_division", sort=True):
        row = {"csi_division": division}
        row.update(_describe(group["cost_per_sf"]))
        row["total_amount"] = float(group["amount"].sum())
        divisions.append(row)

    overall: Dict[str, Any] = {"csi_division": None}
    overall.update(_describe(usable["cost_per_sf"]))
    overall["total_amount"] = float(usable["amount"].sum()) if not usable.empty else None
    overall["project_count"] = int(usable["project_id"].nunique())
    overall["excluded_count"] = int(len(frame) - len(usable))
    return {"basis": basis, "divisions": divisions, "overall": overall}


def compute_time_series(
    store: Store,
    package_filter: Optional[PackageFilter] = None,
    basis: str = "median_bid",
) -> Dict[str, Any]:
    """Month-bucketed cost-per-SF statistics per division and overall.

    Buckets come from the owning project's date truncated to year-month;
    only months with data appear.
    """

    basis = check_basis(basis)
    frame = package_frame(store, package_filter, basis)
    frame = frame[frame["cost_per_sf"].notna()].copy()
    dates = pd.to_datetime(frame["project_date"], errors="coerce", format="%Y-%m-%d")
    invalid = dates.isna() & frame["project_date"].notna()
    if invalid.any():
        logger.warning(
            "Excluding %d packages with unparsable project dates from the time series",
            int(invalid.sum()),
        )
    frame = frame.loc[dates.notna()].copy()
    frame["period"] = dates.loc[dates.notna()].dt.to_period("M").astype(str)

    series: List[Dict[str, Any]] = []
    for division, group in frame.groupby("csi_division", sort=True):
        points = []
        for period, bucket in group.groupby("period", sort=True):
            point = {"period": period}
            point.update(_describe(bucket["cost_per_sf"]))
            points.append(point)
        series.append({"csi_division": division, "points": points})

    overall = []
    for period, bucket in frame.groupby("period", sort=True):
        point = {"period": period}
        point.update(_describe(bucket["cost_per_sf"]))
        overall.append(point)
    return {"basis": basis, "series": series, "overall": overall}


def project_totals(project: Project, packages: Sequence[Package]) -> Dict[str, Any]:
    """Sum-then-divide totals of one project's packages.

    Absent low/median bids fall back to the selected amount; a package
    without any usable amount contributes nothing, so an empty project
    totals 0.
    """

    totals: Dict[str, float] = {"selected_total": 0.0, "low_bid_total": 0.0, "median_bid_total": 0.0}
    gmp_total: Optional[float] = None

    def _add(key: str, value: Optional[float]) -> None:
        if value is None:
            return
        totals[key] += value

    for package in packages:
        selected = to_finite(package.selected_amount)
        low = to_finite(package.low_bid)
        median_bid = to_finite(package.median_bid)
        _add("selected_total", selected)
        _add("low_bid_total", low if low is not None else selected)
        _add("median_bid_total", median_bid if median_bid is not None else selected)
        gmp = to_finite(package.gmp_amount)
        if gmp is not None:
            gmp_total = (gmp_total or 0.0) + gmp

    building_sf = to_finite(project.building_sf)
    result: Dict[str, Any] = {
        "project_id": project.id,
        "building_sf": building_sf,
        "project_bid_date": project.project_date or None,
        "package_count": len(packages),
    }
    for key, total in totals.items():
        result[key] = total
        result[key.replace("_total", "_cost_per_sf")] = cost_per_sf(total, building_sf)
    result["gmp_total"] = gmp_total
    comparison = gmp_comparison(totals["selected_total"], gmp_total)
    result["gmp_delta"] = comparison["delta"]
    result["gmp_delta_pct"] = comparison["delta_pct"]
    return result


def package_gmp_deltas(store: Store, project_id: int, basis: str = "selected_amount") -> List[Dict[str, Any]]:
    """Per-package comparison of the basis amount with the GMP estimate."""

    basis = check_basis(basis)
    store.get_project(project_id)
    rows = []
    for package in store.packages_for_project(project_id):
        row = {"package_id": package.id, "package_code": package.code, "package_name": package.name}
        row.update(gmp_comparison(basis_amount(package, basis), package.gmp_amount))
        rows.append(row)
    return rows


def bidder_performance(store: Store, package_filter: Optional[PackageFilter] = None) -> List[Dict[str, Any]]:
    """Bid counts, wins and average bid per bidder over the filtered packages."""

    package_filter = package_filter or PackageFilter()
    allowed = {
        package.id
        for package in store.packages.values()
        if package.project_id in store.projects and package_filter.accepts(store.projects[package.project_id])
    }
    records = [
        {"bidder_id": bid.bidder_id, "amount": bid.amount, "was_selected": bool(bid.was_selected)}
        for bid in store.bids.values()
        if bid.package_id in allowed and bid.bidder_id in store.bidders
    ]
    if not records:
        return []

    frame = pd.DataFrame(records)
    grouped = frame.groupby("bidder_id").agg(
        bid_count=("amount", "size"),
        wins=("was_selected", "sum"),
        avg_bid_amount=("amount", "mean"),
    )
    rows = []
    for bidder_id, stats in grouped.iterrows():
        bid_count = int(stats["bid_count"])
        wins = int(stats["wins"])
        rows.append(
            {
                "bidder_id": int(bidder_id),
                "bidder_name": store.bidders[int(bidder_id)].canonical_name,
                "bid_count": bid_count,
                "wins": wins,
                "win_rate": round(wins / bid_count * 100, 1) if bid_count else None,
                "avg_bid_amount": float(stats["avg_bid_amount"]),
            }
        )
    rows.sort(key=lambda row: (-row["bid_count"], name_key(row["bidder_name"])))
    return rows


def to_frame(rows: Sequence[Mapping[str, Any]]) -> pd.DataFrame:
    """Tabular form of aggregate rows."""

    return pd.DataFrame(list(rows))


__all__ = [
    "PackageFilter",
    "UNCLASSIFIED",
    "basis_amount",
    "bidder_performance",
    "check_basis",
    "compute_aggregates",
    "compute_time_series",
    "package_frame",
    "package_gmp_deltas",
    "project_totals",
    "to_frame",
]
