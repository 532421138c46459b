"""Derived per-package bid statistics."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

import numpy as np

from .errors import ValidationError


@dataclass(frozen=True)
class BidStats:
    """Low/median/high/average of one package's bid set.

    All four values are ``None`` when the bid set is empty.
    """

    low: Optional[float] = None
    median: Optional[float] = None
    high: Optional[float] = None
    average: Optional[float] = None
    count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "low": self.low,
            "median": self.median,
            "high": self.high,
            "average": self.average,
            "count": self.count,
        }


def to_finite(value: Any) -> Optional[float]:
    """Return ``value`` as a finite float or ``None``."""

    if value is None or isinstance(value, bool):
        return None
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(numeric):
        return None
    return numeric


def round_money(value: Any) -> Optional[float]:
    numeric = to_finite(value)
    if numeric is None:
        return None
    return round(numeric, 2)


def median(values: Iterable[float]) -> Optional[float]:
    """Median of ``values``; even counts average the two middle values."""

    ordered = sorted(values)
    if not ordered:
        return None
    mid = len(ordered) // 2
    if len(ordered) % 2 == 0:
        return (ordered[mid - 1] + ordered[mid]) / 2
    return ordered[mid]


def compute_bid_stats(amounts: Iterable[Any]) -> BidStats:
    """Compute low/median/high/average for a set of bid amounts.

    A non-finite entry raises :class:`ValidationError` carrying its index
    as ``row``.
    """

    values: List[float] = []
    for index, amount in enumerate(amounts):
        numeric = to_finite(amount)
        if numeric is None:
            raise ValidationError(f"Bid amount {amount!r} is not a finite number", row=index)
        values.append(numeric)

    if not values:
        return BidStats()
    if len(values) == 1:
        only = values[0]
        return BidStats(low=only, median=only, high=only, average=only, count=1)

    array = np.asarray(values, dtype=float)
    low = float(array.min())
    high = float(array.max())
    # the float mean of near-identical amounts can drift outside [low, high]
    average = min(max(float(array.mean()), low), high)
    return BidStats(
        low=low,
        median=float(median(values)),
        high=high,
        average=average,
        count=len(values),
    )


def cost_per_sf(amount: Any, building_sf: Any) -> Optional[float]:
    """``amount / building_sf`` when both are usable, else ``None``."""

    numerator = to_finite(amount)
    denominator = to_finite(building_sf)
    if numerator is None or denominator is None or denominator <= 0:
        return None
    return numerator / denominator


def gmp_delta(comparison_value: Any, gmp_amount: Any) -> Optional[float]:
    """Difference between an outcome (selected, median...) and the GMP."""

    comparison = to_finite(comparison_value)
    gmp = to_finite(gmp_amount)
    if comparison is None or gmp is None:
        return None
    return comparison - gmp


def gmp_delta_pct(comparison_value: Any, gmp_amount: Any) -> Optional[float]:
    """GMP delta as a fraction of the GMP; ``None`` for a zero or missing GMP."""

    gmp = to_finite(gmp_amount)
    if gmp is None or gmp == 0:
        return None
    delta = gmp_delta(comparison_value, gmp)
    if delta is None:
        return None
    return delta / gmp


def gmp_comparison(comparison_value: Any, gmp_amount: Any) -> Dict[str, Optional[float]]:
    return {
        "gmp_amount": to_finite(gmp_amount),
        "comparison_value": to_finite(comparison_value),
        "delta": gmp_delta(comparison_value, gmp_amount),
        "delta_pct": gmp_delta_pct(comparison_value, gmp_amount),
    }


__all__ = [
    "BidStats",
    "compute_bid_stats",
    "cost_per_sf",
    "gmp_comparison",
    "gmp_delta",
    "gmp_delta_pct",
    "median",
    "round_money",
    "to_finite",
]
