"""Whole-state load/flush boundary for the in-memory store."""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class PersistenceGateway(ABC):
    """Collaborator that stores complete store snapshots."""

    @abstractmethod
    def load(self) -> Optional[Dict[str, Any]]:
        """Return the last flushed snapshot, or ``None`` when there is none."""

    @abstractmethod
    def flush(self, snapshot: Dict[str, Any]) -> None:
        """Durably replace the stored snapshot with ``snapshot``."""


class JsonFilePersistence(PersistenceGateway):
    """JSON file on disk, replaced atomically on every flush."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path).expanduser()

    def load(self) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            return None
        with self.path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
        if not isinstance(data, dict):
            raise ValueError(f"Store file '{self.path}' does not contain a JSON object")
        logger.info("Loaded store from %s", self.path)
        return data

    def flush(self, snapshot: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(snapshot, handle, ensure_ascii=False, indent=2)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug("Flushed store to %s", self.path)


class MemoryPersistence(PersistenceGateway):
    """Keeps the last flushed snapshot in memory."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self.snapshot = copy.deepcopy(initial) if initial is not None else None
        self.flush_count = 0

    def load(self) -> Optional[Dict[str, Any]]:
        return copy.deepcopy(self.snapshot) if self.snapshot is not None else None

    def flush(self, snapshot: Dict[str, Any]) -> None:
        self.snapshot = copy.deepcopy(snapshot)
        self.flush_count += 1


__all__ = ["JsonFilePersistence", "MemoryPersistence", "PersistenceGateway"]
