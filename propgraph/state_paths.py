"""Shared helpers for resolving propgraph state paths.

Every component (store, CLI, logging) resolves its files through here so the
graph file and logs always land in the same state directory.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

DEFAULT_STATE_DIR = Path.home() / ".local" / "state" / "propgraph"

DEFAULT_GRAPH_FILE = "graph.json"


def _expand(value: str) -> Path:
    # Expand both $VAR and ~ in the path
    return Path(os.path.expandvars(value)).expanduser()


def resolve_state_dir(base_dir: Optional[Path] = None) -> Path:
    """Resolve the propgraph base state directory.

    Handles both ~ and $HOME/$VAR expansion for compatibility with
    systemd EnvironmentFile and shell scripts.
    """
    if base_dir is not None:
        return _expand(str(base_dir))
    env_dir = os.getenv("STATE_DIR") or os.getenv("PROPGRAPH_STATE_DIR")
    if env_dir:
        return _expand(env_dir)
    return DEFAULT_STATE_DIR


def resolve_state_subdir(name: str, base_dir: Optional[Path] = None) -> Path:
    """Resolve a named subdirectory within the state directory."""
    return resolve_state_dir(base_dir) / name


def resolve_graph_path(base_dir: Optional[Path] = None) -> Path:
    """Resolve the graph snapshot file.

    PROPGRAPH_DATA_PATH wins when set; otherwise the file is
    `<state_dir>/graph.json`. The directory is not created here; the JSON
    codec creates it on first flush.
    """
    env_path = os.getenv("PROPGRAPH_DATA_PATH")
    if env_path:
        return _expand(env_path)
    return resolve_state_dir(base_dir) / DEFAULT_GRAPH_FILE
