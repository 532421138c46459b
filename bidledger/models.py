"""Record types held by the in-memory store."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

from .utils import timestamp

PACKAGE_STATUSES = ("bid", "estimated", "bid-override")


def utc_now_iso() -> str:
    return timestamp()


def _optional_float(value: Any) -> Optional[float]:
    return None if value is None else float(value)


def _optional_int(value: Any) -> Optional[int]:
    return None if value is None else int(value)


@dataclass
class Project:
    id: int
    name: str
    building_sf: Optional[float] = None
    project_date: Optional[str] = None
    county_name: Optional[str] = None
    county_state: Optional[str] = None
    precon_notes: Optional[str] = None
    created_at: str = field(default_factory=utc_now_iso)
    modified_at: str = field(default_factory=utc_now_iso)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Project":
        return cls(
            id=int(data["id"]),
            name=str(data.get("name", "")),
            building_sf=_optional_float(data.get("building_sf")),
            project_date=data.get("project_date"),
            county_name=data.get("county_name"),
            county_state=data.get("county_state"),
            precon_notes=data.get("precon_notes"),
            created_at=str(data.get("created_at", utc_now_iso())),
            modified_at=str(data.get("modified_at", utc_now_iso())),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "building_sf": self.building_sf,
            "project_date": self.project_date,
            "county_name": self.county_name,
            "county_state": self.county_state,
            "precon_notes": self.precon_notes,
            "created_at": self.created_at,
            "modified_at": self.modified_at,
        }


@dataclass
class Bidder:
    """Canonical vendor identity with the name variants seen for it."""

    id: int
    canonical_name: str
    aliases: List[str] = field(default_factory=list)
    created_at: str = field(default_factory=utc_now_iso)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Bidder":
        return cls(
            id=int(data["id"]),
            canonical_name=str(data.get("canonical_name", "")),
            aliases=[str(alias) for alias in data.get("aliases", [])],
            created_at=str(data.get("created_at", utc_now_iso())),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "canonical_name": self.canonical_name,
            "aliases": list(self.aliases),
            "created_at": self.created_at,
        }


@dataclass
class NameMatch:
    """How one raw bidder name of an upload was resolved."""

    raw_name: str
    bidder_id: int
    score: float
    needs_review: bool
    method: str = "auto"
    created_bidder: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NameMatch":
        return cls(
            raw_name=str(data.get("raw_name", "")),
            bidder_id=int(data["bidder_id"]),
            score=float(data.get("score", 0.0)),
            needs_review=bool(data.get("needs_review", False)),
            method=str(data.get("method", "auto")),
            created_bidder=bool(data.get("created_bidder", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "raw_name": self.raw_name,
            "bidder_id": self.bidder_id,
            "score": self.score,
            "needs_review": self.needs_review,
            "method": self.method,
            "created_bidder": self.created_bidder,
        }


@dataclass
class BidEvent:
    """One upload batch; the unit of bidder review."""

    id: int
    project_id: int
    source: Optional[str] = None
    created_at: str = field(default_factory=utc_now_iso)
    matches: List[NameMatch] = field(default_factory=list)

    def match_for(self, raw_name: str) -> Optional[NameMatch]:
        for match in self.matches:
            if match.raw_name == raw_name:
                return match
        return None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BidEvent":
        return cls(
            id=int(data["id"]),
            project_id=int(data["project_id"]),
            source=data.get("source"),
            created_at=str(data.get("created_at", utc_now_iso())),
            matches=[NameMatch.from_dict(item) for item in data.get("matches", [])],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "source": self.source,
            "created_at": self.created_at,
            "matches": [match.to_dict() for match in self.matches],
        }


@dataclass
class Package:
    id: int
    project_id: int
    code: str
    name: str
    csi_division: Optional[str] = None
    status: str = "bid"
    bid_event_id: Optional[int] = None
    selected_bidder_id: Optional[int] = None
    selected_amount: Optional[float] = None
    gmp_amount: Optional[float] = None
    low_bid: Optional[float] = None
    median_bid: Optional[float] = None
    high_bid: Optional[float] = None
    average_bid: Optional[float] = None
    cost_per_sf: Optional[float] = None
    override_flag: bool = False
    notes: Optional[str] = None
    created_at: str = field(default_factory=utc_now_iso)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Package":
        return cls(
            id=int(data["id"]),
            project_id=int(data["project_id"]),
            code=str(data.get("code", "")),
            name=str(data.get("name", data.get("code", ""))),
            csi_division=data.get("csi_division"),
            status=str(data.get("status", "bid")),
            bid_event_id=_optional_int(data.get("bid_event_id")),
            selected_bidder_id=_optional_int(data.get("selected_bidder_id")),
            selected_amount=_optional_float(data.get("selected_amount")),
            gmp_amount=_optional_float(data.get("gmp_amount")),
            low_bid=_optional_float(data.get("low_bid")),
            median_bid=_optional_float(data.get("median_bid")),
            high_bid=_optional_float(data.get("high_bid")),
            average_bid=_optional_float(data.get("average_bid")),
            cost_per_sf=_optional_float(data.get("cost_per_sf")),
            override_flag=bool(data.get("override_flag", False)),
            notes=data.get("notes"),
            created_at=str(data.get("created_at", utc_now_iso())),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "code": self.code,
            "name": self.name,
            "csi_division": self.csi_division,
            "status": self.status,
            "bid_event_id": self.bid_event_id,
            "selected_bidder_id": self.selected_bidder_id,
            "selected_amount": self.selected_amount,
            "gmp_amount": self.gmp_amount,
            "low_bid": self.low_bid,
            "median_bid": self.median_bid,
            "high_bid": self.high_bid,
            "average_bid": self.average_bid,
            "cost_per_sf": self.cost_per_sf,
            "override_flag": self.override_flag,
            "notes": self.notes,
            "created_at": self.created_at,
        }


@dataclass
class Bid:
    id: int
    package_id: int
    bidder_id: int
    amount: float
    was_selected: bool = False
    raw_name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Bid":
        return cls(
            id=int(data["id"]),
            package_id=int(data["package_id"]),
            bidder_id=int(data["bidder_id"]),
            amount=float(data["amount"]),
            was_selected=bool(data.get("was_selected", False)),
            raw_name=data.get("raw_name"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "package_id": self.package_id,
            "bidder_id": self.bidder_id,
            "amount": self.amount,
            "was_selected": self.was_selected,
            "raw_name": self.raw_name,
        }


@dataclass(frozen=True)
class ValidationSnapshot:
    """Immutable record of project metrics signed off by a validator."""

    id: int
    project_id: int
    validator: str
    metrics: Mapping[str, Any]
    notes: Optional[str] = None
    created_at: str = field(default_factory=utc_now_iso)

    def __post_init__(self) -> None:
        object.__setattr__(self, "metrics", MappingProxyType(dict(self.metrics)))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ValidationSnapshot":
        return cls(
            id=int(data["id"]),
            project_id=int(data["project_id"]),
            validator=str(data.get("validator", "")),
            metrics=dict(data.get("metrics") or {}),
            notes=data.get("notes"),
            created_at=str(data.get("created_at", utc_now_iso())),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "validator": self.validator,
            "metrics": dict(self.metrics),
            "notes": self.notes,
            "created_at": self.created_at,
        }


__all__ = [
    "PACKAGE_STATUSES",
    "Bid",
    "BidEvent",
    "Bidder",
    "NameMatch",
    "Package",
    "Project",
    "ValidationSnapshot",
    "utc_now_iso",
]
