from __future__ import annotations

import pytest

from conftest import upload_rows

from bidledger import BidLedgerService
from bidledger.errors import ConflictError, NotFoundError, ValidationError
from bidledger.ingest import csi_division_from_code, parse_amount, parse_project_date, validate_rows


def test_import_derives_package_statistics(seeded) -> None:
    concrete = seeded["packages"]["03A"]

    assert concrete.csi_division == "03"
    assert (concrete.low_bid, concrete.median_bid, concrete.high_bid) == (80000, 100000, 120000)
    assert concrete.selected_amount == 120000
    assert concrete.override_flag is True
    assert concrete.status == "bid-override"
    assert concrete.cost_per_sf == 12.0


def test_import_without_selection_uses_low_bid(seeded) -> None:
    drywall = seeded["packages"]["09A"]

    assert drywall.selected_amount == 50000
    assert drywall.override_flag is False
    assert drywall.status == "bid"
    assert drywall.gmp_amount == 52000


def test_duplicate_bids_collapse(service: BidLedgerService) -> None:
    project = service.create_project("Dupes", building_sf=100)
    rows = [
        {
            "package_code": "05A",
            "package_name": "Steel",
            "bids": [
                {"raw_bidder_name": "Iron Works Inc", "amount": 1000},
                {"raw_bidder_name": "IRON WORKS, INC.", "amount": "1,000", "was_selected": True},
                {"raw_bidder_name": "Beam Co", "amount": 1100},
            ],
        }
    ]

    service.import_bid_event(project.id, rows)

    package = service.store.packages_for_project(project.id)[0]
    bids = service.store.bids_for_package(package.id)
    assert len(bids) == 2
    assert bids[0].was_selected is True
    assert package.selected_amount == 1000
    assert package.override_flag is False


@pytest.mark.parametrize(
    "mutate, row",
    [
        (lambda rows: rows[1].update(package_code=""), 1),
        (lambda rows: rows[1].update(bids=[]), 1),
        (lambda rows: rows[0]["bids"][0].update(amount="abc"), 0),
        (lambda rows: rows[0]["bids"][0].update(amount=-5), 0),
        (lambda rows: rows[1].update(package_code="03a"), 1),
        (lambda rows: rows[0]["bids"][0].update(was_selected=True), 0),
        (lambda rows: rows[1].update(gmp_amount="lots"), 1),
    ],
)
def test_invalid_rows_rejected_with_position(service: BidLedgerService, mutate, row) -> None:
    project = service.create_project("Tower A", building_sf=10000)
    rows = upload_rows()
    mutate(rows)
    before = service.store.to_dict()

    with pytest.raises(ValidationError) as excinfo:
        service.import_bid_event(project.id, rows)

    assert excinfo.value.row == row
    assert service.store.to_dict() == before


def test_empty_upload_rejected() -> None:
    with pytest.raises(ValidationError):
        validate_rows([])


def test_reimport_of_existing_code_conflicts(service: BidLedgerService, seeded) -> None:
    with pytest.raises(ConflictError) as excinfo:
        service.import_bid_event(seeded["project"].id, upload_rows())

    assert excinfo.value.row == 0
    assert len(service.store.bid_events) == 1


def test_import_into_missing_project(service: BidLedgerService) -> None:
    with pytest.raises(NotFoundError):
        service.import_bid_event(99, upload_rows())


def test_estimated_package(service: BidLedgerService, seeded) -> None:
    package = service.add_estimated_package(seeded["project"].id, "22A", "Plumbing", "$45,000", notes="budget")

    assert package.status == "estimated"
    assert package.csi_division == "22"
    assert package.low_bid == package.median_bid == package.high_bid == package.gmp_amount == 45000
    assert package.cost_per_sf == 4.5
    with pytest.raises(ConflictError):
        service.add_estimated_package(seeded["project"].id, "22a", "Plumbing again", 1)
    with pytest.raises(ValidationError):
        service.add_estimated_package(seeded["project"].id, "23A", "HVAC", "tbd")


def test_update_package_reprices_and_rederives(service: BidLedgerService, seeded) -> None:
    concrete = seeded["packages"]["03A"]

    service.update_package(concrete.id, selected_amount=80000)
    assert concrete.override_flag is False
    assert concrete.status == "bid"
    assert concrete.cost_per_sf == 8.0

    service.update_package(concrete.id, code="04A")
    assert concrete.csi_division == "04"


def test_update_package_guards(service: BidLedgerService, seeded) -> None:
    concrete = seeded["packages"]["03A"]

    with pytest.raises(ValidationError):
        service.update_package(concrete.id, low_bid=130000)
    with pytest.raises(ValidationError):
        service.update_package(concrete.id, colour="red")
    with pytest.raises(ConflictError):
        service.update_package(concrete.id, code="09a")
    with pytest.raises(NotFoundError):
        service.update_package(concrete.id, selected_bidder_id=999)


def test_building_sf_change_reprices_packages(service: BidLedgerService, seeded) -> None:
    service.update_project(seeded["project"].id, building_sf=20000)

    assert seeded["packages"]["03A"].cost_per_sf == 6.0
    assert seeded["packages"]["09A"].cost_per_sf == 2.5


def test_delete_package_removes_bids(service: BidLedgerService, seeded) -> None:
    concrete = seeded["packages"]["03A"]

    service.delete_package(concrete.id)

    assert all(bid.package_id != concrete.id for bid in service.store.bids.values())
    assert [pkg["code"] for pkg in service.get_project(seeded["project"].id)["packages"]] == ["09A"]


def test_project_validation(service: BidLedgerService) -> None:
    with pytest.raises(ValidationError):
        service.create_project("  ")
    with pytest.raises(ValidationError):
        service.create_project("Tower", building_sf=0)
    with pytest.raises(ValidationError):
        service.create_project("Tower", project_date="03/15/2024")


@pytest.mark.parametrize(
    "value, expected",
    [("$1,250.50", 1250.5), ("(1,000)", -1000.0), (" 2 000 ", 2000.0), ("n/a", None), (None, None), (12, 12.0)],
)
def test_parse_amount(value, expected) -> None:
    assert parse_amount(value) == expected


def test_small_helpers() -> None:
    assert csi_division_from_code("03A") == "03"
    assert csi_division_from_code("GC") is None
    assert parse_project_date("2024-03-15") == "2024-03-15"
    assert parse_project_date("") is None
