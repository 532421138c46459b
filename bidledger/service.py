"""Facade exposing the engine's operations to callers (CLI, web layer)."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from . import ingest
from .aggregate import (
    PackageFilter,
    bidder_performance,
    check_basis,
    compute_aggregates,
    compute_time_series,
    package_gmp_deltas,
)
from .config import AppConfig
from .directory import BidderDirectory
from .models import Bidder, Package, Project, ValidationSnapshot
from .persistence import JsonFilePersistence, MemoryPersistence, PersistenceGateway
from .resolver import IdentityResolver
from .similarity import SimilarityScorer
from .statistics import compute_bid_stats
from .store import Store
from .validation import ValidationLedger

logger = logging.getLogger(__name__)

FilterLike = Union[PackageFilter, Mapping[str, Any], None]


class BidLedgerService:
    """Owns one :class:`Store` and wires the components around it."""

    def __init__(
        self,
        store: Store,
        config: Optional[AppConfig] = None,
        scorer: Optional[SimilarityScorer] = None,
    ) -> None:
        self.store = store
        self.config = config or AppConfig()
        self.directory = BidderDirectory(store)
        self.resolver = IdentityResolver(store, self.config.matching, scorer=scorer)
        self.ledger = ValidationLedger(store, self.config.validation)

    @classmethod
    def open(cls, config: AppConfig, persistence: Optional[PersistenceGateway] = None) -> "BidLedgerService":
        """Load-or-create the store configured in ``config``."""

        gateway = persistence or JsonFilePersistence(config.storage.path)
        return cls(Store.open(gateway), config)

    @classmethod
    def in_memory(cls, config: Optional[AppConfig] = None) -> "BidLedgerService":
        return cls(Store.open(MemoryPersistence()), config)

    def close(self) -> None:
        self.store.flush()

    def __enter__(self) -> "BidLedgerService":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ------------ Projects ------------
    def create_project(self, name: str, **fields: Any) -> Project:
        return ingest.create_project(self.store, name, **fields)

    def update_project(self, project_id: int, **changes: Any) -> Project:
        return ingest.update_project(self.store, project_id, **changes)

    def delete_project(self, project_id: int) -> None:
        ingest.delete_project(self.store, project_id)

    def list_projects(self) -> List[Dict[str, Any]]:
        projects = sorted(self.store.projects.values(), key=lambda item: (item.created_at, item.id), reverse=True)
        return [project.to_dict() for project in projects]

    def get_project(self, project_id: int) -> Dict[str, Any]:
        """Project with its packages, live metrics and validation state."""

        project = self.store.get_project(project_id)
        payload = project.to_dict()
        packages = []
        for package in self.store.packages_for_project(project.id):
            row = package.to_dict()
            bidder = self.store.bidders.get(package.selected_bidder_id) if package.selected_bidder_id else None
            row["bidder_name"] = bidder.canonical_name if bidder else None
            packages.append(row)
        payload["packages"] = packages
        validation = self.ledger.validation_state(project.id)
        payload["metrics"] = validation.pop("metrics")
        payload["validation"] = validation
        return payload

    # ------------ Uploads and review ------------
    def import_bid_event(
        self,
        project_id: int,
        rows: Sequence[Mapping[str, Any]],
        source: Optional[str] = None,
    ) -> Dict[str, Any]:
        return ingest.import_bid_event(self.store, self.resolver, project_id, rows, source=source)

    def resolve_bidder_review(self, bid_event_id: int) -> Dict[str, Any]:
        return self.resolver.review(bid_event_id)

    def apply_bidder_decisions(self, bid_event_id: int, decisions: Sequence[Any]) -> Dict[str, Any]:
        return self.resolver.apply_decisions(bid_event_id, decisions)

    # ------------ Bidders ------------
    def create_bidder(self, canonical_name: str, aliases: Iterable[str] = ()) -> Bidder:
        return self.directory.create_bidder(canonical_name, aliases)

    def list_bidders(self) -> List[Dict[str, Any]]:
        return self.directory.list_bidders()

    def bidder_history(self, bidder_id: int) -> List[Dict[str, Any]]:
        return self.directory.bidder_history(bidder_id)

    def merge_bidders(self, keep_id: int, merge_id: int) -> None:
        self.directory.merge(keep_id, merge_id)

    # ------------ Packages ------------
    def add_estimated_package(self, project_id: int, package_code: str, package_name: str, selected_amount: Any, notes: Optional[str] = None) -> Package:
        return ingest.add_estimated_package(self.store, project_id, package_code, package_name, selected_amount, notes)

    def update_package(self, package_id: int, **changes: Any) -> Package:
        return ingest.update_package(self.store, package_id, **changes)

    def delete_package(self, package_id: int) -> None:
        ingest.delete_package(self.store, package_id)

    def package_bids(self, package_id: int) -> List[Dict[str, Any]]:
        self.store.get_package(package_id)
        rows = []
        for bid in self.store.bids_for_package(package_id):
            row = bid.to_dict()
            bidder = self.store.bidders.get(bid.bidder_id)
            row["bidder_name"] = bidder.canonical_name if bidder else None
            rows.append(row)
        return rows

    # ------------ Analytics ------------
    @staticmethod
    def compute_package_stats(amounts: Iterable[Any]) -> Dict[str, Any]:
        return compute_bid_stats(amounts).to_dict()

    def compute_aggregates(self, package_filter: FilterLike = None, basis: Optional[str] = None) -> Dict[str, Any]:
        return compute_aggregates(self.store, self._filter(package_filter), self._basis(basis))

    def compute_time_series(self, package_filter: FilterLike = None, basis: Optional[str] = None) -> Dict[str, Any]:
        return compute_time_series(self.store, self._filter(package_filter), self._basis(basis))

    def bidder_performance(self, package_filter: FilterLike = None) -> List[Dict[str, Any]]:
        return bidder_performance(self.store, self._filter(package_filter))

    def package_gmp_deltas(self, project_id: int, basis: str = "selected_amount") -> List[Dict[str, Any]]:
        return package_gmp_deltas(self.store, project_id, basis)

    def _filter(self, package_filter: FilterLike) -> PackageFilter:
        if isinstance(package_filter, PackageFilter):
            return package_filter
        data = dict(package_filter or {})
        data.setdefault("include_unclassified", self.config.aggregation.include_unclassified)
        return PackageFilter.from_dict(data)

    def _basis(self, basis: Optional[str]) -> str:
        return check_basis(basis or self.config.aggregation.default_basis)

    # ------------ Validation ------------
    def create_validation_snapshot(self, project_id: int, identity: str, notes: Optional[str] = None) -> ValidationSnapshot:
        return self.ledger.create_snapshot(project_id, identity, notes)

    def is_project_current(self, project_id: int) -> bool:
        return self.ledger.is_project_current(project_id)

    def validation_history(self, project_id: int) -> List[Dict[str, Any]]:
        return self.ledger.history(project_id)

    def delete_validation_snapshot(self, snapshot_id: int) -> None:
        self.ledger.delete_snapshot(snapshot_id)


__all__ = ["BidLedgerService"]
