"""Command line interface for the bid ledger."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import yaml

from .config import BASES, AppConfig, load_config
from .errors import BidLedgerError
from .reporting import export_aggregates, export_validation_history
from .service import BidLedgerService

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/config.yaml")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Reconcile subcontractor bids and analyse package costs")
    parser.add_argument("--config", type=Path, help="Path to YAML configuration")
    parser.add_argument("--storage", type=Path, help="Override path to the JSON store")
    parser.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, WARNING)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    create = subparsers.add_parser("project-create", help="Create a project")
    create.add_argument("--name", required=True)
    create.add_argument("--building-sf", help="Gross building square footage")
    create.add_argument("--date", dest="project_date", help="Project bid date (YYYY-MM-DD)")
    create.add_argument("--county", dest="county_name")
    create.add_argument("--state", dest="county_state")
    create.add_argument("--notes", dest="precon_notes")

    upload = subparsers.add_parser("import", help="Import a bid event from a JSON or YAML rows file")
    upload.add_argument("--project-id", type=int, required=True)
    upload.add_argument("--rows", type=Path, required=True)
    upload.add_argument("--source", help="Label recorded on the bid event (defaults to the file name)")

    review = subparsers.add_parser("review", help="Show the bidder review of a bid event")
    review.add_argument("--bid-event-id", type=int, required=True)

    decide = subparsers.add_parser("decide", help="Apply bidder decisions from a JSON or YAML file")
    decide.add_argument("--bid-event-id", type=int, required=True)
    decide.add_argument("--decisions", type=Path, required=True)

    merge = subparsers.add_parser("merge", help="Merge one bidder into another")
    merge.add_argument("--keep", type=int, required=True, dest="keep_id")
    merge.add_argument("--merge", type=int, required=True, dest="merge_id")

    for name, help_text in (
        ("aggregates", "Cost per SF by CSI division"),
        ("timeseries", "Monthly cost per SF by CSI division"),
        ("export", "Write aggregate reports to the output directory"),
    ):
        command = subparsers.add_parser(name, help=help_text)
        _add_filter_arguments(command)
        if name == "export":
            command.add_argument("--output-dir", type=Path, help="Directory for generated reports")

    validate = subparsers.add_parser("validate", help="Record a validation snapshot of a project")
    validate.add_argument("--project-id", type=int, required=True)
    validate.add_argument("--identity", required=True, help="Validator initials")
    validate.add_argument("--notes")

    validations = subparsers.add_parser("validations", help="List validation snapshots of a project")
    validations.add_argument("--project-id", type=int, required=True)
    validations.add_argument("--csv", type=Path, help="Also write the history to this CSV file")
    return parser


def _add_filter_arguments(command: argparse.ArgumentParser) -> None:
    command.add_argument("--basis", choices=BASES, help="Amount used as the package cost")
    command.add_argument("--project-id", type=int, action="append", dest="project_ids")
    command.add_argument("--start-date")
    command.add_argument("--end-date")
    command.add_argument("--county", dest="county_name")
    command.add_argument("--state", dest="county_state")
    command.add_argument("--min-sf", type=float)
    command.add_argument("--max-sf", type=float)
    command.add_argument("--exclude-unclassified", action="store_true")


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

    try:
        config = _load(args)
    except Exception as exc:  # pragma: no cover - CLI validation
        logger.error("Failed to load configuration: %s", exc)
        return 1

    try:
        with BidLedgerService.open(config) as service:
            result = _run(service, config, args)
    except BidLedgerError as exc:
        logger.error("%s failed: %s", args.command, exc)
        _emit({"error": exc.to_dict()})
        return 2
    except (OSError, ValueError, yaml.YAMLError) as exc:
        logger.exception("%s failed: %s", args.command, exc)
        return 1

    _emit(result)
    return 0


def _load(args: argparse.Namespace) -> AppConfig:
    if args.config is not None:
        config = load_config(args.config)
    elif DEFAULT_CONFIG_PATH.exists():
        config = load_config(DEFAULT_CONFIG_PATH)
    else:
        logger.info("No configuration at %s; using defaults", DEFAULT_CONFIG_PATH)
        config = AppConfig()
    if args.storage:
        config.storage.path = _resolve_override_path(args.storage)
    if getattr(args, "output_dir", None):
        config.output.directory = _resolve_override_path(args.output_dir)
    return config


def _run(service: BidLedgerService, config: AppConfig, args: argparse.Namespace) -> Any:
    command = args.command
    if command == "project-create":
        project = service.create_project(
            args.name,
            building_sf=args.building_sf,
            project_date=args.project_date,
            county_name=args.county_name,
            county_state=args.county_state,
            precon_notes=args.precon_notes,
        )
        return project.to_dict()
    if command == "import":
        rows = _read_records(args.rows, "rows")
        return service.import_bid_event(args.project_id, rows, source=args.source or args.rows.name)
    if command == "review":
        return service.resolve_bidder_review(args.bid_event_id)
    if command == "decide":
        decisions = _read_records(args.decisions, "decisions")
        return service.apply_bidder_decisions(args.bid_event_id, decisions)
    if command == "merge":
        service.merge_bidders(args.keep_id, args.merge_id)
        return {"kept": args.keep_id, "merged": args.merge_id}
    if command == "aggregates":
        return service.compute_aggregates(_filter(args), args.basis)
    if command == "timeseries":
        return service.compute_time_series(_filter(args), args.basis)
    if command == "validate":
        return service.create_validation_snapshot(args.project_id, args.identity, args.notes).to_dict()
    if command == "validations":
        history = service.validation_history(args.project_id)
        if args.csv:
            export_validation_history(history, args.csv)
        return history
    if command == "export":
        package_filter = _filter(args)
        aggregates = service.compute_aggregates(package_filter, args.basis)
        time_series = service.compute_time_series(package_filter, args.basis)
        performance = service.bidder_performance(package_filter)
        metadata = {"filter": package_filter, "storage": str(config.storage.path)}
        paths = export_aggregates(aggregates, time_series, performance, config.output, metadata)
        return {name: str(path) for name, path in paths.items()}
    raise ValueError(f"Unknown command {command!r}")


def _filter(args: argparse.Namespace) -> Dict[str, Any]:
    package_filter: Dict[str, Any] = {
        "project_ids": args.project_ids,
        "start_date": args.start_date,
        "end_date": args.end_date,
        "county_name": args.county_name,
        "county_state": args.county_state,
        "min_sf": args.min_sf,
        "max_sf": args.max_sf,
    }
    package_filter = {key: value for key, value in package_filter.items() if value is not None}
    if args.exclude_unclassified:
        package_filter["include_unclassified"] = False
    return package_filter


def _read_records(path: Path, key: str) -> List[Dict[str, Any]]:
    """Records from a JSON or YAML file holding a list or ``{key: [...]}``."""

    with Path(path).open("r", encoding="utf-8") as handle:
        payload = yaml.safe_load(handle)
    if isinstance(payload, dict):
        payload = payload.get(key)
    if not isinstance(payload, list):
        raise ValueError(f"{path} must contain a list of {key}")
    return payload


def _resolve_override_path(path: Path) -> Path:
    path = Path(path).expanduser()
    if path.is_absolute():
        return path
    return (Path.cwd() / path).resolve()


def _emit(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


if __name__ == "__main__":  # pragma: no cover - manual execution entry point
    raise SystemExit(main())
