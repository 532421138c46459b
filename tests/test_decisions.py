from __future__ import annotations

import pytest

from bidledger import BidLedgerService
from bidledger.errors import ConflictError, NotFoundError, ValidationError


def _event_id(seeded) -> int:
    return seeded["summary"]["bid_event_id"]


def test_assign_moves_bids_and_drops_provisional_bidder(service: BidLedgerService, seeded) -> None:
    abc = service.directory.find_by_name("ABC Concrete")
    omega = service.directory.find_by_name("Omega Concrete")

    review = service.apply_bidder_decisions(
        _event_id(seeded), [{"raw_name": "Omega Concrete", "action": "assign", "bidder_id": abc.id}]
    )

    assert omega.id not in service.store.bidders
    assert "Omega Concrete" in abc.aliases
    amounts = sorted(bid.amount for bid in service.store.bids_for_bidder(abc.id))
    assert amounts == [80000, 100000]
    name = next(item for item in review["names"] if item["raw_name"] == "Omega Concrete")
    assert name["bidder_id"] == abc.id
    assert name["method"] == "manual"
    assert name["needs_review"] is False
    assert review["summary"]["needs_review"] == 3


def test_applying_decisions_twice_is_idempotent(service: BidLedgerService, seeded) -> None:
    abc = service.directory.find_by_name("ABC Concrete")
    decisions = [
        {"raw_name": "Omega Concrete", "action": "assign", "bidder_id": abc.id},
        {"raw_name": "Delta Builders", "action": "create"},
        {"raw_name": "Smith Drywall LLC", "action": "keep"},
    ]

    service.apply_bidder_decisions(_event_id(seeded), decisions)
    first = service.store.to_dict()
    service.apply_bidder_decisions(_event_id(seeded), decisions)

    assert service.store.to_dict() == first


def test_create_rehomes_selection(service: BidLedgerService, seeded) -> None:
    old = service.directory.find_by_name("Delta Builders")

    service.apply_bidder_decisions(
        _event_id(seeded),
        [{"raw_name": "Delta Builders", "action": "create", "canonical_name": "Delta Builders Group"}],
    )

    new = service.directory.find_by_name("Delta Builders Group")
    assert new is not None
    assert old.id not in service.store.bidders
    assert seeded["packages"]["03A"].selected_bidder_id == new.id
    assert len(service.store.bids_for_bidder(new.id)) == 2


def test_conflicting_create_rolls_back(service: BidLedgerService, seeded) -> None:
    abc = service.directory.find_by_name("ABC Concrete")
    before = service.store.to_dict()

    with pytest.raises(ConflictError) as excinfo:
        service.apply_bidder_decisions(
            _event_id(seeded),
            [
                {"raw_name": "Omega Concrete", "action": "assign", "bidder_id": abc.id},
                {"raw_name": "Delta Builders", "action": "create", "canonical_name": "smith drywall"},
            ],
        )

    assert excinfo.value.row == 1
    assert service.store.to_dict() == before


def test_malformed_decision_rejected_before_any_change(service: BidLedgerService, seeded) -> None:
    before = service.store.to_dict()

    with pytest.raises(ValidationError) as excinfo:
        service.apply_bidder_decisions(
            _event_id(seeded),
            [{"raw_name": "Omega Concrete", "action": "keep"}, {"raw_name": "Omega Concrete", "action": "rename"}],
        )

    assert excinfo.value.row == 1
    assert service.store.to_dict() == before


def test_unknown_raw_name_is_rejected(service: BidLedgerService, seeded) -> None:
    with pytest.raises(ValidationError):
        service.apply_bidder_decisions(_event_id(seeded), [{"raw_name": "Nobody Inc", "action": "keep"}])


def test_assign_to_missing_bidder_reports_row(service: BidLedgerService, seeded) -> None:
    with pytest.raises(NotFoundError) as excinfo:
        service.apply_bidder_decisions(
            _event_id(seeded), [{"raw_name": "Omega Concrete", "action": "assign", "bidder_id": 999}]
        )

    assert excinfo.value.row == 0
    assert excinfo.value.to_dict()["error"] == "not_found"


def test_unknown_bid_event(service: BidLedgerService) -> None:
    with pytest.raises(NotFoundError):
        service.resolve_bidder_review(42)
