from __future__ import annotations

import pytest

from bidledger import BidLedgerService
from bidledger.errors import ConflictError, NotFoundError, ValidationError


def test_canonical_names_are_unique_ignoring_case(service: BidLedgerService) -> None:
    service.create_bidder("Delta Builders")

    with pytest.raises(ConflictError):
        service.create_bidder("DELTA  builders")
    with pytest.raises(ValidationError):
        service.create_bidder("   ")


def test_add_alias_skips_known_names(service: BidLedgerService) -> None:
    bidder = service.create_bidder("Delta Builders", aliases=["Delta Builders LLC"])

    assert service.directory.add_alias(bidder, "delta builders llc") is False
    assert service.directory.add_alias(bidder, "DELTA BUILDERS") is False
    assert service.directory.add_alias(bidder, "Delta Bldrs") is True
    assert bidder.aliases == ["Delta Builders LLC", "Delta Bldrs"]


def test_merge_rewrites_every_reference(service: BidLedgerService, seeded) -> None:
    keep = service.directory.find_by_name("Delta Builders")
    merged = service.directory.find_by_name("Smith Drywall")
    drywall = seeded["packages"]["09A"]

    service.merge_bidders(keep.id, merged.id)

    assert merged.id not in service.store.bidders
    assert drywall.selected_bidder_id == keep.id
    assert len(service.store.bids_for_bidder(keep.id)) == 3
    assert service.store.bids_for_bidder(merged.id) == []
    assert {"Smith Drywall", "Smith Drywall LLC"} <= set(keep.aliases)
    event = service.store.get_bid_event(seeded["summary"]["bid_event_id"])
    assert event.match_for("Smith Drywall LLC").bidder_id == keep.id


def test_merge_edge_cases(service: BidLedgerService, seeded) -> None:
    keep = service.directory.find_by_name("Delta Builders")
    merged = service.directory.find_by_name("Smith Drywall")

    with pytest.raises(ValidationError):
        service.merge_bidders(keep.id, keep.id)
    with pytest.raises(NotFoundError):
        service.merge_bidders(keep.id, 999)

    service.merge_bidders(keep.id, merged.id)
    with pytest.raises(NotFoundError):
        service.merge_bidders(keep.id, merged.id)


def test_list_bidders_counts(service: BidLedgerService, seeded) -> None:
    rows = {row["canonical_name"]: row for row in service.list_bidders()}

    assert list(rows) == ["ABC Concrete", "Delta Builders", "Omega Concrete", "Smith Drywall"]
    assert rows["Delta Builders"]["bid_count"] == 2
    assert rows["Delta Builders"]["wins"] == 1
    assert rows["Delta Builders"]["packages"] == ["03A", "09A"]
    assert rows["ABC Concrete"]["aliases"] == ["ABC Concrete Inc"]


def test_bidder_history_places_each_bid(service: BidLedgerService, seeded) -> None:
    delta = service.directory.find_by_name("Delta Builders")

    history = service.bidder_history(delta.id)

    assert [row["package_code"] for row in history] == ["03A", "09A"]
    concrete, drywall = history
    assert concrete["placement_rank"] == 3
    assert concrete["placement_total"] == 3
    assert concrete["was_selected"] is True
    assert concrete["percent_from_selected"] == 0
    assert concrete["cost_per_sf"] == 12.0
    assert drywall["placement_rank"] == 2
    assert drywall["percent_from_selected"] == pytest.approx(20.0)
