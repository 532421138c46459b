"""Directory of canonical bidders and their aliases."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from .errors import ConflictError, ValidationError
from .models import Bidder
from .normalize import clean_text, name_key
from .statistics import cost_per_sf
from .store import Store

logger = logging.getLogger(__name__)


class BidderDirectory:
    """Canonical bidder store operations on top of :class:`Store`."""

    def __init__(self, store: Store) -> None:
        self.store = store

    # ------------ Lookups ------------
    def get(self, bidder_id: int) -> Bidder:
        return self.store.get_bidder(bidder_id)

    def all(self) -> List[Bidder]:
        return sorted(self.store.bidders.values(), key=lambda bidder: (name_key(bidder.canonical_name), bidder.id))

    def find_by_name(self, name: str) -> Optional[Bidder]:
        key = name_key(name)
        if not key:
            return None
        for bidder in self.store.bidders.values():
            if name_key(bidder.canonical_name) == key:
                return bidder
        return None

    # ------------ Mutations ------------
    def create_bidder(self, canonical_name: str, aliases: Iterable[str] = ()) -> Bidder:
        """Create a bidder; canonical names are unique ignoring case."""

        name = clean_text(canonical_name)
        if not name:
            raise ValidationError("Bidder canonical name is required")
        existing = self.find_by_name(name)
        if existing is not None:
            raise ConflictError(
                f"Bidder '{existing.canonical_name}' already exists (id {existing.id})"
            )
        with self.store.transaction("create_bidder"):
            bidder = Bidder(id=self.store.next_id("bidders"), canonical_name=name)
            self.store.bidders[bidder.id] = bidder
            for alias in aliases:
                self.add_alias(bidder, alias)
        logger.info("Created bidder %s '%s'", bidder.id, bidder.canonical_name)
        return bidder

    def add_alias(self, bidder: Bidder, alias: str) -> bool:
        """Record ``alias`` for ``bidder`` unless it is already known."""

        text = clean_text(alias)
        key = name_key(text)
        if not key or key == name_key(bidder.canonical_name):
            return False
        if any(name_key(existing) == key for existing in bidder.aliases):
            return False
        bidder.aliases.append(text)
        return True

    def merge(self, keep_id: int, merge_id: int) -> Bidder:
        """Fold bidder ``merge_id`` into ``keep_id`` atomically.

        Bids, package selections and upload name matches pointing at the
        merged bidder are rewritten, its names become aliases of the kept
        bidder, and the merged record is deleted.
        """

        if keep_id == merge_id:
            raise ValidationError("Cannot merge a bidder into itself")
        keep = self.store.get_bidder(keep_id)
        merged = self.store.get_bidder(merge_id)

        with self.store.transaction("merge_bidders"):
            for bid in self.store.bids_for_bidder(merged.id):
                bid.bidder_id = keep.id
            for package in self.store.packages.values():
                if package.selected_bidder_id == merged.id:
                    package.selected_bidder_id = keep.id
            for event in self.store.bid_events.values():
                for match in event.matches:
                    if match.bidder_id == merged.id:
                        match.bidder_id = keep.id
                        match.created_bidder = False
            for name in [merged.canonical_name, *merged.aliases]:
                self.add_alias(keep, name)
            del self.store.bidders[merged.id]

        logger.info(
            "Merged bidder %s '%s' into %s '%s'",
            merged.id,
            merged.canonical_name,
            keep.id,
            keep.canonical_name,
        )
        return keep

    def delete_if_unreferenced(self, bidder_id: int) -> bool:
        if bidder_id not in self.store.bidders or self.store.bidder_is_referenced(bidder_id):
            return False
        for event in self.store.bid_events.values():
            if any(match.bidder_id == bidder_id for match in event.matches):
                return False
        del self.store.bidders[bidder_id]
        logger.info("Removed unreferenced bidder %s", bidder_id)
        return True

    # ------------ Reporting ------------
    def list_bidders(self) -> List[Dict[str, Any]]:
        """Bidders with aliases, bid counts, wins and package codes."""

        rows: List[Dict[str, Any]] = []
        for bidder in self.all():
            bids = [bid for bid in self.store.bids_for_bidder(bidder.id) if bid.package_id in self.store.packages]
            codes = sorted({self.store.packages[bid.package_id].code for bid in bids})
            rows.append(
                {
                    "id": bidder.id,
                    "canonical_name": bidder.canonical_name,
                    "aliases": sorted(set(bidder.aliases)),
                    "bid_count": len(bids),
                    "wins": sum(1 for bid in bids if bid.was_selected),
                    "packages": codes,
                }
            )
        return rows

    def bidder_history(self, bidder_id: int) -> List[Dict[str, Any]]:
        """Every bid of a bidder with its placement inside the package."""

        self.store.get_bidder(bidder_id)
        history: List[Dict[str, Any]] = []
        for bid in self.store.bids_for_bidder(bidder_id):
            package = self.store.packages.get(bid.package_id)
            if package is None:
                continue
            project = self.store.projects.get(package.project_id)
            competing = self.store.bids_for_package(package.id)
            rank = 1 + sum(1 for other in competing if other.amount < bid.amount)
            selected = package.selected_amount
            percent = None
            if selected is not None and selected > 0:
                percent = (bid.amount - selected) * 100.0 / selected
            history.append(
                {
                    "project_id": package.project_id,
                    "project_name": project.name if project else None,
                    "project_date": project.project_date if project else None,
                    "package_code": package.code,
                    "package_name": package.name,
                    "bid_amount": bid.amount,
                    "cost_per_sf": cost_per_sf(bid.amount, project.building_sf if project else None),
                    "was_selected": bid.was_selected,
                    "placement_rank": rank,
                    "placement_total": len(competing),
                    "percent_from_selected": percent,
                }
            )
        dated = sorted(
            (row for row in history if row["project_date"]),
            key=lambda row: row["package_code"],
        )
        dated.sort(key=lambda row: row["project_date"], reverse=True)
        undated = sorted((row for row in history if not row["project_date"]), key=lambda row: row["package_code"])
        return dated + undated


__all__ = ["BidderDirectory"]
