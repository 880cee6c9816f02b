"""Persistence codecs: load a whole snapshot, flush a whole snapshot.

Codecs raise PersistenceError; the store decides whether that is fatal.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Optional, Protocol

from .errors import PersistenceError
from .schema import clone_json

logger = logging.getLogger(__name__)


def empty_snapshot() -> dict[str, list]:
    return {"nodes": [], "relations": []}


class GraphCodec(Protocol):
    """Narrow persistence interface used by GraphStore."""

    def load(self) -> dict[str, Any]: ...

    def flush(self, nodes: list[dict[str, Any]], relations: list[dict[str, Any]]) -> None: ...


class InMemoryCodec:
    """Keeps the last flushed snapshot in memory.

    Useful for ephemeral graphs and tests; `flush_count` records how many
    flushes happened.
    """

    def __init__(self, snapshot: Optional[dict[str, Any]] = None):
        self.snapshot = clone_json(snapshot) if snapshot is not None else empty_snapshot()
        self.flush_count = 0

    def load(self) -> dict[str, Any]:
        return clone_json(self.snapshot)

    def flush(self, nodes: list[dict[str, Any]], relations: list[dict[str, Any]]) -> None:
        self.snapshot = {"nodes": clone_json(nodes), "relations": clone_json(relations)}
        self.flush_count += 1


class JsonFileCodec:
    """JSON file on disk, replaced atomically on every flush."""

    def __init__(self, path: Path | str):
        self.path = Path(path).expanduser()

    def load(self) -> dict[str, Any]:
        """Read the snapshot file; a missing file is an empty graph."""
        if not self.path.exists():
            logger.debug(f"No graph file at {self.path}; starting empty")
            return empty_snapshot()
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, json.JSONDecodeError) as err:
            raise PersistenceError(f"Failed to read graph file {self.path}: {err}") from err
        if not isinstance(data, dict):
            raise PersistenceError(f"Graph file {self.path} does not contain an object")
        return data

    def flush(self, nodes: list[dict[str, Any]], relations: list[dict[str, Any]]) -> None:
        payload = {"nodes": nodes, "relations": relations}
        tmp_name: Optional[str] = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2)
            os.replace(tmp_name, self.path)
            tmp_name = None
        except (OSError, TypeError, ValueError) as err:
            raise PersistenceError(f"Failed to write graph file {self.path}: {err}") from err
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
        logger.debug(f"Flushed {len(nodes)} nodes, {len(relations)} relations to {self.path}")
