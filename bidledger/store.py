"""Explicitly owned in-memory store with scoped, atomic mutations."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from .errors import NotFoundError
from .models import Bid, BidEvent, Bidder, Package, Project, ValidationSnapshot
from .persistence import PersistenceGateway

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1.0"
TABLES = ("projects", "bid_events", "bidders", "packages", "bids", "validations")
_RECORD_TYPES = {
    "projects": Project,
    "bid_events": BidEvent,
    "bidders": Bidder,
    "packages": Package,
    "bids": Bid,
    "validations": ValidationSnapshot,
}


class Store:
    """Single source of truth for one writer process.

    Every mutating operation runs inside :meth:`transaction`; the state is
    restored when the block raises and flushed through the persistence
    gateway when it exits either way.
    """

    def __init__(self, persistence: Optional[PersistenceGateway] = None) -> None:
        self.persistence = persistence
        self.projects: Dict[int, Project] = {}
        self.bid_events: Dict[int, BidEvent] = {}
        self.bidders: Dict[int, Bidder] = {}
        self.packages: Dict[int, Package] = {}
        self.bids: Dict[int, Bid] = {}
        self.validations: Dict[int, ValidationSnapshot] = {}
        self.next_ids: Dict[str, int] = {table: 1 for table in TABLES}
        self._depth = 0

    @classmethod
    def open(cls, persistence: PersistenceGateway) -> "Store":
        """Load the persisted snapshot or start an empty store."""

        store = cls(persistence)
        snapshot = persistence.load()
        if snapshot is None:
            logger.info("No persisted store found; starting empty")
            store.flush()
        else:
            store._restore(snapshot)
        return store

    # ------------ Snapshot helpers ------------
    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "schema_version": SCHEMA_VERSION,
            "next_ids": dict(self.next_ids),
        }
        for table in TABLES:
            records = getattr(self, table)
            payload[table] = [records[key].to_dict() for key in sorted(records)]
        return payload

    def _restore(self, snapshot: Dict[str, Any]) -> None:
        for table in TABLES:
            record_type = _RECORD_TYPES[table]
            records = [record_type.from_dict(item) for item in snapshot.get(table, [])]
            setattr(self, table, {record.id: record for record in records})
        next_ids = snapshot.get("next_ids") or {}
        for table in TABLES:
            existing = getattr(self, table)
            floor = max(existing, default=0) + 1
            self.next_ids[table] = max(int(next_ids.get(table, 1)), floor)

    def flush(self) -> None:
        if self.persistence is not None:
            self.persistence.flush(self.to_dict())

    @contextmanager
    def transaction(self, label: str) -> Iterator["Store"]:
        """All-or-nothing scope around one mutating operation.

        Nested calls join the outermost transaction.
        """

        if self._depth:
            yield self
            return

        backup = self.to_dict()
        self._depth += 1
        try:
            yield self
        except BaseException:
            self._restore(backup)
            logger.warning("Rolled back '%s'", label)
            raise
        finally:
            self._depth -= 1
            self.flush()

    def next_id(self, table: str) -> int:
        value = self.next_ids[table]
        self.next_ids[table] = value + 1
        return value

    # ------------ Lookups ------------
    def get_project(self, project_id: int) -> Project:
        return _require(self.projects, project_id, "Project")

    def get_bidder(self, bidder_id: int) -> Bidder:
        return _require(self.bidders, bidder_id, "Bidder")

    def get_package(self, package_id: int) -> Package:
        return _require(self.packages, package_id, "Package")

    def get_bid_event(self, bid_event_id: int) -> BidEvent:
        return _require(self.bid_events, bid_event_id, "Bid event")

    def get_validation(self, snapshot_id: int) -> ValidationSnapshot:
        return _require(self.validations, snapshot_id, "Validation snapshot")

    def packages_for_project(self, project_id: int) -> List[Package]:
        packages = [pkg for pkg in self.packages.values() if pkg.project_id == project_id]
        return sorted(packages, key=lambda pkg: (pkg.code, pkg.id))

    def packages_for_event(self, bid_event_id: int) -> List[Package]:
        packages = [pkg for pkg in self.packages.values() if pkg.bid_event_id == bid_event_id]
        return sorted(packages, key=lambda pkg: (pkg.code, pkg.id))

    def bids_for_package(self, package_id: int) -> List[Bid]:
        bids = [bid for bid in self.bids.values() if bid.package_id == package_id]
        return sorted(bids, key=lambda bid: (bid.amount, bid.id))

    def bids_for_bidder(self, bidder_id: int) -> List[Bid]:
        return [bid for bid in self.bids.values() if bid.bidder_id == bidder_id]

    def validations_for_project(self, project_id: int) -> List[ValidationSnapshot]:
        """Snapshots of ``project_id``, newest first."""

        snapshots = [snap for snap in self.validations.values() if snap.project_id == project_id]
        return sorted(snapshots, key=lambda snap: (snap.created_at, snap.id), reverse=True)

    def bidder_is_referenced(self, bidder_id: int) -> bool:
        if any(bid.bidder_id == bidder_id for bid in self.bids.values()):
            return True
        return any(pkg.selected_bidder_id == bidder_id for pkg in self.packages.values())

    # ------------ Cascades ------------
    def delete_package(self, package_id: int) -> None:
        self.get_package(package_id)
        for bid in self.bids_for_package(package_id):
            del self.bids[bid.id]
        del self.packages[package_id]

    def delete_project(self, project_id: int) -> None:
        self.get_project(project_id)
        for package in self.packages_for_project(project_id):
            self.delete_package(package.id)
        for event_id in [eid for eid, event in self.bid_events.items() if event.project_id == project_id]:
            del self.bid_events[event_id]
        for snapshot in self.validations_for_project(project_id):
            del self.validations[snapshot.id]
        del self.projects[project_id]


def _require(table: Dict[int, Any], record_id: Any, label: str) -> Any:
    try:
        key = int(record_id)
    except (TypeError, ValueError):
        raise NotFoundError(f"{label} {record_id!r} not found") from None
    record = table.get(key)
    if record is None:
        raise NotFoundError(f"{label} {record_id} not found")
    return record


__all__ = ["SCHEMA_VERSION", "Store", "TABLES"]
