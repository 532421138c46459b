from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List
import sys

import pytest

# Ensure project root is on sys.path for absolute imports
ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from bidledger import BidLedgerService


def upload_rows() -> List[Dict[str, Any]]:
    return [
        {
            "package_code": "03A",
            "package_name": "Cast-in-place Concrete",
            "bids": [
                {"raw_bidder_name": "ABC Concrete Inc", "amount": 100000},
                {"raw_bidder_name": "Delta Builders", "amount": "$120,000", "was_selected": True},
                {"raw_bidder_name": "Omega Concrete", "amount": 80000},
            ],
        },
        {
            "package_code": "09A",
            "package_name": "Drywall",
            "gmp_amount": 52000,
            "bids": [
                {"raw_bidder_name": "Smith Drywall LLC", "amount": 50000, "was_selected": "Yes"},
                {"raw_bidder_name": "Delta Builders", "amount": 60000},
            ],
        },
    ]


@pytest.fixture
def service() -> BidLedgerService:
    return BidLedgerService.in_memory()


@pytest.fixture
def seeded(service: BidLedgerService) -> Dict[str, Any]:
    """One dated 10,000 SF project with a two-package upload."""

    project = service.create_project("Tower A", building_sf=10000, project_date="2024-03-15", county_state="TX")
    summary = service.import_bid_event(project.id, upload_rows(), source="tower-a.xlsx")
    packages = {pkg.code: pkg for pkg in service.store.packages_for_project(project.id)}
    return {"project": project, "summary": summary, "packages": packages}
