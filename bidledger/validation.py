"""Append-only validation snapshots and the staleness comparator."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Union

from .aggregate import project_totals
from .config import ValidationConfig
from .errors import ValidationError
from .models import ValidationSnapshot
from .normalize import clean_text
from .statistics import round_money, to_finite
from .store import Store

logger = logging.getLogger(__name__)

NUMERIC_FIELDS = (
    "building_sf",
    "selected_total",
    "selected_cost_per_sf",
    "low_bid_total",
    "low_bid_cost_per_sf",
    "median_bid_total",
    "median_bid_cost_per_sf",
)
DATE_FIELDS = ("project_bid_date",)


def normalize_metrics(metrics: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
    """Restrict ``metrics`` to the compared fields, money rounded to cents."""

    if metrics is None:
        return None
    return {
        "building_sf": to_finite(metrics.get("building_sf")),
        "project_bid_date": metrics.get("project_bid_date") or None,
        "selected_total": round_money(metrics.get("selected_total")),
        "selected_cost_per_sf": round_money(metrics.get("selected_cost_per_sf")),
        "low_bid_total": round_money(metrics.get("low_bid_total")),
        "low_bid_cost_per_sf": round_money(metrics.get("low_bid_cost_per_sf")),
        "median_bid_total": round_money(metrics.get("median_bid_total")),
        "median_bid_cost_per_sf": round_money(metrics.get("median_bid_cost_per_sf")),
    }


def metrics_match(
    stored: Optional[Mapping[str, Any]],
    live: Optional[Mapping[str, Any]],
    tolerance: float = 0.005,
) -> bool:
    """True when every numeric field agrees within ``tolerance`` and dates match.

    A field absent on both sides agrees; absent on one side does not.
    """

    if stored is None and live is None:
        return True
    if stored is None or live is None:
        return False

    for key in DATE_FIELDS:
        if (stored.get(key) or None) != (live.get(key) or None):
            return False
    for key in NUMERIC_FIELDS:
        left = to_finite(stored.get(key))
        right = to_finite(live.get(key))
        if left is None and right is None:
            continue
        if left is None or right is None:
            return False
        if abs(left - right) > tolerance:
            return False
    return True


class ValidationLedger:
    """Records who signed off which project metrics, and when."""

    def __init__(self, store: Store, config: Optional[ValidationConfig] = None) -> None:
        self.store = store
        self.config = config or ValidationConfig()

    def current_metrics(self, project_id: int) -> Dict[str, Any]:
        project = self.store.get_project(project_id)
        totals = project_totals(project, self.store.packages_for_project(project.id))
        return normalize_metrics(totals)

    def create_snapshot(self, project_id: int, validator: str, notes: Optional[str] = None) -> ValidationSnapshot:
        identity = clean_text(validator).upper()[: int(self.config.identity_max_length)]
        if not identity:
            raise ValidationError("Validator identity is required")
        metrics = self.current_metrics(project_id)
        with self.store.transaction("create_validation_snapshot"):
            snapshot = ValidationSnapshot(
                id=self.store.next_id("validations"),
                project_id=int(project_id),
                validator=identity,
                metrics=metrics,
                notes=notes or None,
            )
            self.store.validations[snapshot.id] = snapshot
        logger.info("Recorded validation %s for project %s by %s", snapshot.id, project_id, identity)
        return snapshot

    def latest(self, project_id: int) -> Optional[ValidationSnapshot]:
        self.store.get_project(project_id)
        snapshots = self.store.validations_for_project(project_id)
        return snapshots[0] if snapshots else None

    def is_current(
        self,
        snapshot: Union[ValidationSnapshot, Mapping[str, Any]],
        live_metrics: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        if isinstance(snapshot, ValidationSnapshot):
            stored = snapshot.metrics
            if live_metrics is None:
                live_metrics = self.current_metrics(snapshot.project_id)
        else:
            stored = snapshot
            if live_metrics is None:
                raise ValueError("live_metrics are required when comparing raw metrics")
        return metrics_match(
            normalize_metrics(stored),
            normalize_metrics(live_metrics),
            tolerance=float(self.config.tolerance),
        )

    def is_project_current(self, project_id: int) -> bool:
        latest = self.latest(project_id)
        return latest is not None and self.is_current(latest)

    def validation_state(self, project_id: int) -> Dict[str, Any]:
        """``valid`` when the latest snapshot matches live metrics, else ``needs_review``."""

        live = self.current_metrics(project_id)
        latest = self.latest(project_id)
        current = latest is not None and self.is_current(latest, live)
        return {
            "state": "valid" if current else "needs_review",
            "is_valid": current,
            "needs_revalidation": not current,
            "metrics": live,
            "latest": latest.to_dict() if latest else None,
        }

    def history(self, project_id: int) -> List[Dict[str, Any]]:
        """All snapshots of a project, newest first, flagged against live metrics."""

        live = self.current_metrics(project_id)
        rows = []
        for snapshot in self.store.validations_for_project(project_id):
            row = snapshot.to_dict()
            row["is_current"] = self.is_current(snapshot, live)
            rows.append(row)
        return rows

    def delete_snapshot(self, snapshot_id: int) -> None:
        snapshot = self.store.get_validation(snapshot_id)
        with self.store.transaction("delete_validation_snapshot"):
            del self.store.validations[snapshot.id]
        logger.info("Deleted validation %s of project %s", snapshot.id, snapshot.project_id)


__all__ = [
    "DATE_FIELDS",
    "NUMERIC_FIELDS",
    "ValidationLedger",
    "metrics_match",
    "normalize_metrics",
]
