"""Utility helpers shared across the ledger modules."""
from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Mapping


def ensure_directories(paths: Iterable[str | Path]) -> None:
    """Create directories if they do not already exist."""

    for path in paths:
        Path(path).mkdir(parents=True, exist_ok=True)


def clean_text(value: Any) -> str:
    """Normalise textual values for matching and display."""

    if value is None:
        return ""
    if isinstance(value, (int, float)):
        return str(value)
    text = str(value)
    text = re.sub(r"\s+", " ", text.strip())
    return text


def log_match_decision(path: str | Path, record: Mapping[str, Any]) -> None:
    """Append a record to the JSONL matching log."""

    ensure_directories([Path(path).parent])
    with Path(path).open("a", encoding="utf-8") as handle:
        handle.write(json.dumps(record, ensure_ascii=False) + "\n")


def timestamp() -> str:
    """Return an ISO-8601 timestamp string."""

    return datetime.now(timezone.utc).replace(microsecond=0, tzinfo=None).isoformat() + "Z"


__all__ = ["clean_text", "ensure_directories", "log_match_decision", "timestamp"]
