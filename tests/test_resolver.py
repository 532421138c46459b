from __future__ import annotations

import json

from bidledger import BidLedgerService
from bidledger.config import AppConfig, MatchingConfig


def test_legal_suffix_variant_auto_matches(service: BidLedgerService) -> None:
    bidder = service.create_bidder("ABC Electrical Inc")

    result = service.resolver.match_name("ABC ELECTRICAL, INC.")

    assert result.needs_review is False
    assert result.bidder_id == bidder.id
    assert result.score == 1.0
    assert result.suggestions == []


def test_unknown_name_with_empty_directory_needs_review(service: BidLedgerService) -> None:
    result = service.resolver.match_name("J Smith Co")

    assert result.needs_review is True
    assert result.bidder_id is None
    assert result.score == 0.0
    assert result.suggestions == []


def test_alias_counts_towards_candidate_score(service: BidLedgerService) -> None:
    bidder = service.create_bidder("Northwind Mechanical", aliases=["NW Mech Services"])

    ranked = service.resolver.rank_candidates("NW Mech Services LLC")

    assert ranked[0].bidder_id == bidder.id
    assert ranked[0].matched_name == "NW Mech Services"
    assert ranked[0].score == 1.0


def test_suggestions_are_capped_and_ordered() -> None:
    service = BidLedgerService.in_memory(AppConfig(matching=MatchingConfig(suggestion_limit=6)))
    for index in range(10):
        service.create_bidder(f"Bidder {index:02d}")

    result = service.resolver.match_name("Zenith Glazing")

    assert result.needs_review is True
    assert len(result.suggestions) == 6
    scores = [candidate.score for candidate in result.suggestions]
    assert scores == sorted(scores, reverse=True)


def test_resolve_names_matches_each_distinct_name_once(service: BidLedgerService) -> None:
    service.create_bidder("Delta Builders")

    results = service.resolver.resolve_names(["Delta Builders", "Delta Builders", "Omega Concrete"])

    assert list(results) == ["Delta Builders", "Omega Concrete"]
    assert results["Delta Builders"].needs_review is False
    assert results["Omega Concrete"].needs_review is True


def test_matching_log_written(tmp_path) -> None:
    log_file = tmp_path / "matching.jsonl"
    service = BidLedgerService.in_memory(AppConfig(matching=MatchingConfig(log_path=log_file)))
    service.create_bidder("Delta Builders")

    service.resolver.match_name("DELTA BUILDERS LLC")
    service.resolver.match_name("Omega Concrete")

    lines = log_file.read_text(encoding="utf-8").strip().splitlines()
    assert len(lines) == 2
    first = json.loads(lines[0])
    assert first["status"] == "auto_accepted"
    assert json.loads(lines[1])["status"] == "needs_review"


def test_import_creates_provisional_bidders(seeded) -> None:
    summary = seeded["summary"]

    assert summary["packages_added"] == 2
    assert summary["needs_review"] == 4


def test_second_upload_reuses_directory(service: BidLedgerService, seeded) -> None:
    project = service.create_project("Tower B", building_sf=5000)
    rows = [
        {
            "package_code": "03A",
            "package_name": "Concrete",
            "bids": [
                {"raw_bidder_name": "ABC CONCRETE, INC.", "amount": 40000},
                {"raw_bidder_name": "Brand New Masonry", "amount": 45000},
            ],
        }
    ]
    bidder_count = len(service.store.bidders)

    summary = service.import_bid_event(project.id, rows)

    assert summary["needs_review"] == 1
    assert len(service.store.bidders) == bidder_count + 1
    abc = service.directory.find_by_name("ABC Concrete")
    assert abc is not None
    assert any(bid.amount == 40000 for bid in service.store.bids_for_bidder(abc.id))


def test_review_recomputes_suggestions(service: BidLedgerService, seeded) -> None:
    review = service.resolve_bidder_review(seeded["summary"]["bid_event_id"])

    assert review["summary"]["needs_review"] == 4
    assert review["summary"]["package_count"] == 2
    assert review["summary"]["bid_count"] == 5
    assert len(review["all_bidders"]) == 4
    for name in review["names"]:
        assert name["needs_review"] is True
        assert name["bidder_id"] not in {item["bidder_id"] for item in name["suggestions"]}
        assert len(name["suggestions"]) <= 6

    concrete = next(pkg for pkg in review["packages"] if pkg["package_code"] == "03A")
    assert [bid["amount"] for bid in concrete["bids"]] == [80000, 100000, 120000]


def test_names_sharing_a_prefix_stay_separate_bidders(service: BidLedgerService) -> None:
    project = service.create_project("Food Hall", building_sf=2000)
    rows = [
        {
            "package_code": "11A",
            "package_name": "Kitchen Equipment",
            "bids": [
                {"raw_bidder_name": "Sysco", "amount": 30000},
                {"raw_bidder_name": "Sys", "amount": 31000},
            ],
        }
    ]

    summary = service.import_bid_event(project.id, rows)

    names = [bidder.canonical_name for bidder in service.directory.all()]
    assert names == ["Sys", "Sysco"]
    assert summary["needs_review"] == 2
    package = service.store.packages_for_project(project.id)[0]
    owners = {bid.raw_name: bid.bidder_id for bid in service.store.bids_for_package(package.id)}
    assert owners["Sysco"] != owners["Sys"]
