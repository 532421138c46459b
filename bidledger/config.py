"""Configuration loading utilities for the bid ledger."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

BASES = ("median_bid", "selected_amount")


@dataclass
class StorageConfig:
    """Where the whole-store JSON snapshot lives."""

    path: Path = Path("data") / "bid_ledger.json"

    def resolved(self, base_path: Path) -> "StorageConfig":
        return StorageConfig(path=_resolve_path(self.path, base_path))


@dataclass
class MatchingConfig:
    """Thresholds for bidder identity resolution."""

    auto_match_threshold: float = 0.9
    suggestion_limit: int = 6
    min_suggestion_score: float = 0.0
    scorer: str = "token_blend"
    log_path: Optional[Path] = None

    def resolved(self, base_path: Path) -> "MatchingConfig":
        log_path = _resolve_path(self.log_path, base_path) if self.log_path else None
        return MatchingConfig(
            auto_match_threshold=self.auto_match_threshold,
            suggestion_limit=self.suggestion_limit,
            min_suggestion_score=self.min_suggestion_score,
            scorer=self.scorer,
            log_path=log_path,
        )


@dataclass
class ValidationConfig:
    """Staleness comparison settings for validation snapshots."""

    tolerance: float = 0.005
    identity_max_length: int = 6


@dataclass
class AggregationConfig:
    default_basis: str = "median_bid"
    include_unclassified: bool = True


@dataclass
class OutputConfig:
    """Paths describing where reports should be written."""

    directory: Path = Path("output")
    divisions_report: str = "divisions.csv"
    timeseries_report: str = "timeseries.csv"
    bidders_report: str = "bidders.csv"
    workbook: str = "aggregates.xlsx"
    audit_log: str = "aggregates_audit.json"

    def resolved(self, base_path: Path) -> "OutputConfig":
        return OutputConfig(
            directory=_resolve_path(self.directory, base_path),
            divisions_report=self.divisions_report,
            timeseries_report=self.timeseries_report,
            bidders_report=self.bidders_report,
            workbook=self.workbook,
            audit_log=self.audit_log,
        )


@dataclass
class AppConfig:
    """Container for all configuration used by the service and the CLI."""

    storage: StorageConfig = field(default_factory=StorageConfig)
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)
    aggregation: AggregationConfig = field(default_factory=AggregationConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    def resolved(self, base_path: Path) -> "AppConfig":
        return AppConfig(
            storage=self.storage.resolved(base_path),
            matching=self.matching.resolved(base_path),
            validation=self.validation,
            aggregation=self.aggregation,
            output=self.output.resolved(base_path),
        )


def load_config(path: Path) -> AppConfig:
    """Load :class:`AppConfig` from a YAML file."""

    config_path = Path(path).expanduser()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file '{config_path}' does not exist")

    with config_path.open("r", encoding="utf-8") as stream:
        raw_config = yaml.safe_load(stream) or {}

    if not isinstance(raw_config, Mapping):
        raise ValueError("Configuration root must be a mapping")

    storage = StorageConfig(**_parse_paths(_section(raw_config, "storage", StorageConfig), ("path",)))
    matching = MatchingConfig(
        **_parse_paths(_section(raw_config, "matching", MatchingConfig), ("log_path",))
    )
    validation = ValidationConfig(**_section(raw_config, "validation", ValidationConfig))
    aggregation = AggregationConfig(**_section(raw_config, "aggregation", AggregationConfig))
    output = OutputConfig(**_parse_paths(_section(raw_config, "output", OutputConfig), ("directory",)))

    _check_ranges(matching, validation, aggregation)

    config = AppConfig(
        storage=storage,
        matching=matching,
        validation=validation,
        aggregation=aggregation,
        output=output,
    )
    return config.resolved(config_path.parent)


def _section(raw_config: Mapping[str, Any], name: str, schema: type) -> Dict[str, Any]:
    section = raw_config.get(name) or {}
    if not isinstance(section, Mapping):
        raise ValueError(f"Configuration section '{name}' must be a mapping")
    allowed = {field_info.name for field_info in fields(schema)}
    unknown = sorted(set(section) - allowed)
    if unknown:
        raise ValueError(f"Unknown keys in '{name}' section: {', '.join(unknown)}")
    return dict(section)


def _parse_paths(section: Dict[str, Any], keys: tuple[str, ...]) -> Dict[str, Any]:
    for key in keys:
        if section.get(key) is not None:
            section[key] = Path(section[key])
    return section


def _check_ranges(
    matching: MatchingConfig,
    validation: ValidationConfig,
    aggregation: AggregationConfig,
) -> None:
    if not 0.0 < float(matching.auto_match_threshold) <= 1.0:
        raise ValueError("matching.auto_match_threshold must be within (0, 1]")
    if int(matching.suggestion_limit) < 0:
        raise ValueError("matching.suggestion_limit must not be negative")
    if float(validation.tolerance) < 0:
        raise ValueError("validation.tolerance must not be negative")
    if aggregation.default_basis not in BASES:
        raise ValueError(f"aggregation.default_basis must be one of {', '.join(BASES)}")


def _resolve_path(path: Path, base_path: Path) -> Path:
    expanded = Path(path).expanduser()
    if expanded.is_absolute():
        return expanded
    return (base_path / expanded).resolve()


__all__ = [
    "AggregationConfig",
    "AppConfig",
    "BASES",
    "MatchingConfig",
    "OutputConfig",
    "StorageConfig",
    "ValidationConfig",
    "load_config",
]
