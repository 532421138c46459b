"""Upload-row ingestion and manual project/package maintenance."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .errors import ConflictError, ValidationError
from .models import PACKAGE_STATUSES, Bid, BidEvent, NameMatch, Package, Project, utc_now_iso
from .normalize import clean_text, normalize_name
from .resolver import IdentityResolver
from .statistics import compute_bid_stats, cost_per_sf, to_finite
from .store import Store

logger = logging.getLogger(__name__)

_CURRENCY_CHARS_RE = re.compile(r"[$,\s]")
PROJECT_FIELDS = ("name", "building_sf", "project_date", "county_name", "county_state", "precon_notes")
PACKAGE_FIELDS = (
    "code",
    "name",
    "selected_amount",
    "gmp_amount",
    "low_bid",
    "median_bid",
    "high_bid",
    "average_bid",
    "status",
    "selected_bidder_id",
    "notes",
)


@dataclass
class BidRow:
    raw_bidder_name: str
    amount: float
    was_selected: bool = False


@dataclass
class PackageRow:
    """One validated package row handed over by the spreadsheet reader."""

    package_code: str
    package_name: str
    csi_division: Optional[str]
    gmp_amount: Optional[float]
    bids: List[BidRow] = field(default_factory=list)


def csi_division_from_code(code: Any) -> Optional[str]:
    """Leading digits of a package code ("03A" -> "03")."""

    match = re.match(r"^\d+", clean_text(code))
    return match.group(0) if match else None


def parse_amount(value: Any) -> Optional[float]:
    """Parse a monetary cell; ``None`` when it is not a finite number."""

    if isinstance(value, str):
        text = _CURRENCY_CHARS_RE.sub("", value)
        if text.startswith("(") and text.endswith(")"):
            text = "-" + text[1:-1]
        return to_finite(text) if text else None
    return to_finite(value)


def parse_flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower().startswith("y") or value.strip().lower() == "true"
    return bool(value)


def parse_project_date(value: Any) -> Optional[str]:
    """Return an ISO ``YYYY-MM-DD`` date string or ``None``."""

    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = clean_text(value)
    try:
        return datetime.strptime(text[:10], "%Y-%m-%d").date().isoformat()
    except ValueError:
        raise ValidationError(f"Invalid project date {value!r}; expected YYYY-MM-DD") from None


def _parse_building_sf(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    numeric = parse_amount(value)
    if numeric is None or numeric <= 0:
        raise ValidationError(f"Invalid building_sf {value!r}; expected a positive number")
    return numeric


# ------------ Projects ------------
def create_project(
    store: Store,
    name: str,
    building_sf: Any = None,
    project_date: Any = None,
    county_name: Optional[str] = None,
    county_state: Optional[str] = None,
    precon_notes: Optional[str] = None,
) -> Project:
    project_name = clean_text(name)
    if not project_name:
        raise ValidationError("Project name is required")
    sf = _parse_building_sf(building_sf)
    bid_date = parse_project_date(project_date)
    with store.transaction("create_project"):
        project = Project(
            id=store.next_id("projects"),
            name=project_name,
            building_sf=sf,
            project_date=bid_date,
            county_name=clean_text(county_name) or None,
            county_state=clean_text(county_state) or None,
            precon_notes=precon_notes,
        )
        store.projects[project.id] = project
    logger.info("Created project %s '%s'", project.id, project.name)
    return project


def update_project(store: Store, project_id: int, **changes: Any) -> Project:
    """Update project fields; a new building SF re-prices every package."""

    project = store.get_project(project_id)
    unknown = sorted(set(changes) - set(PROJECT_FIELDS))
    if unknown:
        raise ValidationError(f"Unknown project fields: {', '.join(unknown)}")
    if not changes:
        raise ValidationError("No valid fields provided for update")

    parsed: Dict[str, Any] = {}
    for key, value in changes.items():
        if key == "name":
            parsed[key] = clean_text(value)
            if not parsed[key]:
                raise ValidationError("Project name is required")
        elif key == "building_sf":
            parsed[key] = _parse_building_sf(value)
        elif key == "project_date":
            parsed[key] = parse_project_date(value)
        elif key in {"county_name", "county_state"}:
            parsed[key] = clean_text(value) or None
        else:
            parsed[key] = value

    with store.transaction("update_project"):
        for key, value in parsed.items():
            setattr(project, key, value)
        project.modified_at = utc_now_iso()
        if "building_sf" in parsed:
            for package in store.packages_for_project(project.id):
                package.cost_per_sf = cost_per_sf(package.selected_amount, project.building_sf)
    logger.info("Updated project %s (%s)", project.id, ", ".join(sorted(parsed)))
    return project


def delete_project(store: Store, project_id: int) -> None:
    with store.transaction("delete_project"):
        store.delete_project(project_id)
    logger.info("Deleted project %s", project_id)


# ------------ Upload rows ------------
def validate_rows(rows: Sequence[Mapping[str, Any]]) -> List[PackageRow]:
    """Validate every upload row before anything is written."""

    if not rows:
        raise ValidationError("Upload contains no package rows")

    parsed: List[PackageRow] = []
    seen_codes: Dict[str, int] = {}
    for index, row in enumerate(rows):
        if not isinstance(row, Mapping):
            raise ValidationError("Row must be a mapping", row=index)
        code = clean_text(row.get("package_code"))
        if not code:
            raise ValidationError("Missing package_code", row=index)
        if code.upper() in seen_codes:
            raise ValidationError(
                f"Package code '{code}' repeats row {seen_codes[code.upper()]}", row=index
            )
        seen_codes[code.upper()] = index

        gmp_raw = row.get("gmp_amount")
        gmp_amount = None
        if gmp_raw is not None and gmp_raw != "":
            gmp_amount = parse_amount(gmp_raw)
            if gmp_amount is None:
                raise ValidationError(f"Non-numeric gmp_amount {gmp_raw!r}", row=index)

        raw_bids = row.get("bids")
        if not isinstance(raw_bids, Sequence) or isinstance(raw_bids, (str, bytes)) or not raw_bids:
            raise ValidationError(f"Package '{code}' has no bids", row=index)

        bids: List[BidRow] = []
        for bid in raw_bids:
            if not isinstance(bid, Mapping):
                raise ValidationError(f"Bid entry in package '{code}' must be a mapping", row=index)
            bidder_name = clean_text(bid.get("raw_bidder_name"))
            if not bidder_name:
                raise ValidationError(f"Bid in package '{code}' is missing raw_bidder_name", row=index)
            amount = parse_amount(bid.get("amount"))
            if amount is None:
                raise ValidationError(
                    f"Non-numeric amount {bid.get('amount')!r} for '{bidder_name}'", row=index
                )
            if amount <= 0:
                raise ValidationError(f"Bid amount for '{bidder_name}' must be positive", row=index)
            bids.append(BidRow(bidder_name, amount, parse_flag(bid.get("was_selected", False))))

        bids = _dedupe_bids(bids)
        if sum(1 for bid in bids if bid.was_selected) > 1:
            raise ValidationError(f"Package '{code}' has more than one selected bid", row=index)

        parsed.append(
            PackageRow(
                package_code=code,
                package_name=clean_text(row.get("package_name")) or code,
                csi_division=clean_text(row.get("csi_division")) or csi_division_from_code(code),
                gmp_amount=gmp_amount,
                bids=bids,
            )
        )
    return parsed


def _dedupe_bids(bids: List[BidRow]) -> List[BidRow]:
    """Collapse repeated (bidder, amount) pairs, keeping the selected flag."""

    unique: Dict[tuple, BidRow] = {}
    ordered: List[BidRow] = []
    for bid in bids:
        dedupe_key = (normalize_name(bid.raw_bidder_name), bid.amount)
        existing = unique.get(dedupe_key)
        if existing is not None:
            existing.was_selected = existing.was_selected or bid.was_selected
            continue
        unique[dedupe_key] = bid
        ordered.append(bid)
    return ordered


def import_bid_event(
    store: Store,
    resolver: IdentityResolver,
    project_id: int,
    rows: Sequence[Mapping[str, Any]],
    source: Optional[str] = None,
) -> Dict[str, Any]:
    """Create a bid event with its packages and bids from upload rows."""

    project = store.get_project(project_id)
    package_rows = validate_rows(rows)
    existing_codes = {pkg.code.upper() for pkg in store.packages_for_project(project.id)}
    for index, package_row in enumerate(package_rows):
        if package_row.package_code.upper() in existing_codes:
            raise ConflictError(
                f"Package '{package_row.package_code}' already exists in project {project.id}", row=index
            )

    added: List[Dict[str, Any]] = []
    with store.transaction("import_bid_event"):
        event = BidEvent(id=store.next_id("bid_events"), project_id=project.id, source=source)
        store.bid_events[event.id] = event
        matches: Dict[str, NameMatch] = {}

        for package_row in package_rows:
            for bid_row in package_row.bids:
                if bid_row.raw_bidder_name not in matches:
                    matches[bid_row.raw_bidder_name] = resolver.assign(bid_row.raw_bidder_name)
            package = _create_bid_package(store, project, event, package_row, matches)
            added.append(
                {
                    "package_id": package.id,
                    "package_code": package.code,
                    "package_name": package.name,
                    "bid_count": len(package_row.bids),
                    "gmp_amount": package.gmp_amount,
                }
            )
        event.matches = list(matches.values())

    needs_review = sum(1 for match in event.matches if match.needs_review)
    logger.info(
        "Imported bid event %s into project %s: %d packages, %d names need review",
        event.id,
        project.id,
        len(added),
        needs_review,
    )
    return {
        "bid_event_id": event.id,
        "project_id": project.id,
        "packages_added": len(added),
        "packages": added,
        "needs_review": needs_review,
    }


def _create_bid_package(
    store: Store,
    project: Project,
    event: BidEvent,
    row: PackageRow,
    matches: Mapping[str, NameMatch],
) -> Package:
    stats = compute_bid_stats(bid.amount for bid in row.bids)
    selected = next((bid for bid in row.bids if bid.was_selected), None)
    selected_amount = selected.amount if selected else stats.low
    override = selected is not None and selected.amount != stats.low

    package = Package(
        id=store.next_id("packages"),
        project_id=project.id,
        code=row.package_code,
        name=row.package_name,
        csi_division=row.csi_division,
        status="bid-override" if override else "bid",
        bid_event_id=event.id,
        selected_bidder_id=matches[selected.raw_bidder_name].bidder_id if selected else None,
        selected_amount=selected_amount,
        gmp_amount=row.gmp_amount,
        low_bid=stats.low,
        median_bid=stats.median,
        high_bid=stats.high,
        average_bid=stats.average,
        cost_per_sf=cost_per_sf(selected_amount, project.building_sf),
        override_flag=override,
    )
    store.packages[package.id] = package
    for bid_row in row.bids:
        bid = Bid(
            id=store.next_id("bids"),
            package_id=package.id,
            bidder_id=matches[bid_row.raw_bidder_name].bidder_id,
            amount=bid_row.amount,
            was_selected=bid_row.was_selected,
            raw_name=bid_row.raw_bidder_name,
        )
        store.bids[bid.id] = bid
    return package


# ------------ Packages ------------
def add_estimated_package(
    store: Store,
    project_id: int,
    package_code: str,
    package_name: str,
    selected_amount: Any,
    notes: Optional[str] = None,
) -> Package:
    """Manual package without bids; every statistic equals the estimate."""

    project = store.get_project(project_id)
    code = clean_text(package_code)
    name = clean_text(package_name)
    amount = parse_amount(selected_amount)
    if not code or not name:
        raise ValidationError("package_code and package_name are required")
    if amount is None:
        raise ValidationError(f"Non-numeric selected_amount {selected_amount!r}")
    _check_unique_code(store, project.id, code)

    with store.transaction("add_estimated_package"):
        package = Package(
            id=store.next_id("packages"),
            project_id=project.id,
            code=code,
            name=name,
            csi_division=csi_division_from_code(code),
            status="estimated",
            selected_amount=amount,
            gmp_amount=amount,
            low_bid=amount,
            median_bid=amount,
            high_bid=amount,
            average_bid=amount,
            cost_per_sf=cost_per_sf(amount, project.building_sf),
            notes=notes,
        )
        store.packages[package.id] = package
    logger.info("Added estimated package %s '%s' to project %s", package.id, code, project.id)
    return package


def update_package(store: Store, package_id: int, **changes: Any) -> Package:
    """Edit or override a package.

    A new selected amount re-prices the package and, for bid packages,
    re-derives the override flag against the low bid unless a status is
    given explicitly.
    """

    package = store.get_package(package_id)
    unknown = sorted(set(changes) - set(PACKAGE_FIELDS))
    if unknown:
        raise ValidationError(f"Unknown package fields: {', '.join(unknown)}")
    if not changes:
        raise ValidationError("No valid fields provided for update")

    parsed: Dict[str, Any] = {}
    for key, value in changes.items():
        if key in {"code", "name"}:
            parsed[key] = clean_text(value)
            if not parsed[key]:
                raise ValidationError(f"Package {key} must not be empty")
        elif key == "status":
            if value not in PACKAGE_STATUSES:
                raise ValidationError(f"Invalid status {value!r}; expected one of {', '.join(PACKAGE_STATUSES)}")
            parsed[key] = value
        elif key == "selected_bidder_id":
            parsed[key] = None if value is None else store.get_bidder(value).id
        elif key == "notes":
            parsed[key] = value
        else:
            amount = None if value is None or value == "" else parse_amount(value)
            if amount is None and value not in (None, ""):
                raise ValidationError(f"Non-numeric {key} {value!r}")
            parsed[key] = amount

    if "code" in parsed and parsed["code"].upper() != package.code.upper():
        _check_unique_code(store, package.project_id, parsed["code"])

    low = parsed.get("low_bid", package.low_bid)
    median_value = parsed.get("median_bid", package.median_bid)
    high = parsed.get("high_bid", package.high_bid)
    if None not in (low, median_value, high) and not low <= median_value <= high:
        raise ValidationError("Package statistics must satisfy low <= median <= high")

    project = store.get_project(package.project_id)
    with store.transaction("update_package"):
        for key, value in parsed.items():
            setattr(package, key, value)
        if "code" in parsed:
            package.csi_division = csi_division_from_code(package.code)
        if "selected_amount" in parsed:
            package.cost_per_sf = cost_per_sf(package.selected_amount, project.building_sf)
            if "status" not in parsed and package.status != "estimated":
                package.override_flag = (
                    package.selected_amount is not None
                    and package.low_bid is not None
                    and package.selected_amount != package.low_bid
                )
                package.status = "bid-override" if package.override_flag else "bid"
        elif "status" in parsed:
            package.override_flag = package.status == "bid-override"
    logger.info("Updated package %s (%s)", package.id, ", ".join(sorted(parsed)))
    return package


def delete_package(store: Store, package_id: int) -> None:
    with store.transaction("delete_package"):
        store.delete_package(package_id)
    logger.info("Deleted package %s", package_id)


def _check_unique_code(store: Store, project_id: int, code: str) -> None:
    for package in store.packages_for_project(project_id):
        if package.code.upper() == code.upper():
            raise ConflictError(f"Package '{code}' already exists in project {project_id}")


__all__ = [
    "BidRow",
    "PackageRow",
    "add_estimated_package",
    "create_project",
    "csi_division_from_code",
    "delete_package",
    "delete_project",
    "import_bid_event",
    "parse_amount",
    "parse_project_date",
    "update_package",
    "update_project",
    "validate_rows",
]
