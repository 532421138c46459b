from __future__ import annotations

import json

import pytest

from bidledger import BidLedgerService
from bidledger.config import AppConfig, StorageConfig
from bidledger.errors import NotFoundError
from bidledger.models import Project
from bidledger.persistence import JsonFilePersistence, MemoryPersistence
from bidledger.store import Store


def test_open_creates_empty_store() -> None:
    persistence = MemoryPersistence()

    store = Store.open(persistence)

    assert store.projects == {}
    assert persistence.flush_count == 1
    assert persistence.snapshot["schema_version"] == "1.0"


def test_transaction_rolls_back_and_still_flushes() -> None:
    persistence = MemoryPersistence()
    store = Store.open(persistence)

    with pytest.raises(RuntimeError):
        with store.transaction("failing"):
            project = Project(id=store.next_id("projects"), name="Ghost")
            store.projects[project.id] = project
            raise RuntimeError("boom")

    assert store.projects == {}
    assert store.next_ids["projects"] == 1
    assert persistence.flush_count == 2
    assert persistence.snapshot["projects"] == []


def test_nested_transactions_join_the_outer_scope() -> None:
    persistence = MemoryPersistence()
    store = Store.open(persistence)

    with pytest.raises(ValueError):
        with store.transaction("outer"):
            with store.transaction("inner"):
                store.projects[1] = Project(id=store.next_id("projects"), name="Inner")
            raise ValueError("outer fails")

    assert store.projects == {}
    assert persistence.flush_count == 2


def test_lookups_raise_not_found() -> None:
    store = Store.open(MemoryPersistence())

    with pytest.raises(NotFoundError):
        store.get_project(7)
    with pytest.raises(NotFoundError):
        store.get_bidder("x")


def test_restore_keeps_id_sequences_ahead_of_records() -> None:
    snapshot = {"projects": [{"id": 5, "name": "Old"}], "next_ids": {"projects": 2}}

    store = Store.open(MemoryPersistence(snapshot))

    assert store.next_id("projects") == 6


def test_delete_project_cascades(service: BidLedgerService, seeded) -> None:
    project = seeded["project"]
    service.create_validation_snapshot(project.id, "jd")

    service.delete_project(project.id)

    assert service.store.packages == {}
    assert service.store.bids == {}
    assert service.store.bid_events == {}
    assert service.store.validations == {}
    assert len(service.store.bidders) == 4


def test_json_persistence_round_trip(tmp_path) -> None:
    path = tmp_path / "state" / "ledger.json"
    config = AppConfig(storage=StorageConfig(path=path))

    with BidLedgerService.open(config) as service:
        project = service.create_project("Tower A", building_sf=1000)
        service.create_validation_snapshot(project.id, "ab")

    assert json.loads(path.read_text(encoding="utf-8"))["projects"][0]["name"] == "Tower A"
    assert [item.name for item in path.parent.iterdir()] == ["ledger.json"]

    reopened = BidLedgerService.open(config)
    assert reopened.store.get_project(project.id).building_sf == 1000
    assert reopened.validation_history(project.id)[0]["validator"] == "AB"


def test_json_persistence_missing_file(tmp_path) -> None:
    assert JsonFilePersistence(tmp_path / "absent.json").load() is None


def test_json_persistence_rejects_non_object(tmp_path) -> None:
    path = tmp_path / "bad.json"
    path.write_text("[1, 2]", encoding="utf-8")

    with pytest.raises(ValueError):
        JsonFilePersistence(path).load()
