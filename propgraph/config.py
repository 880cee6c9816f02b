"""Configuration management for propgraph"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .errors import ValidationError
from .state_paths import resolve_graph_path, resolve_state_subdir

ID_STRATEGIES = ("uuid", "sequential")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def parse_bool(value: Optional[str], default: bool) -> bool:
    """Parse a boolean environment value.

    Raises:
        ValidationError: value is set but not a recognised boolean
    """
    if value is None or not value.strip():
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValidationError(f"Invalid boolean value: {value!r}")


@dataclass
class GraphConfig:
    """Configuration for a file-backed graph store"""

    data_path: Path
    auto_flush: bool = True
    id_strategy: str = "uuid"
    log_level: str = "INFO"
    log_dir: Optional[Path] = None

    def __post_init__(self) -> None:
        self.data_path = Path(self.data_path).expanduser()
        if self.id_strategy not in ID_STRATEGIES:
            raise ValidationError(
                f"id_strategy must be one of {', '.join(ID_STRATEGIES)}, got {self.id_strategy!r}"
            )
        self.log_level = self.log_level.upper()
        if self.log_level not in LOG_LEVELS:
            raise ValidationError(f"Invalid log level: {self.log_level!r}")
        if self.log_dir is not None:
            self.log_dir = Path(self.log_dir).expanduser()

    @property
    def numeric_log_level(self) -> int:
        return getattr(logging, self.log_level)

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None, load_env_file: bool = True) -> "GraphConfig":
        """Load configuration from environment variables (and a .env file)"""
        if load_env_file:
            load_dotenv(env_file)

        log_dir_value = os.getenv("PROPGRAPH_LOG_DIR")
        log_dir = Path(os.path.expandvars(log_dir_value)) if log_dir_value else resolve_state_subdir("logs")

        return cls(
            data_path=resolve_graph_path(),
            auto_flush=parse_bool(os.getenv("PROPGRAPH_AUTO_FLUSH"), True),
            id_strategy=os.getenv("PROPGRAPH_ID_STRATEGY", "uuid").strip().lower(),
            log_level=os.getenv("PROPGRAPH_LOG_LEVEL", "INFO").strip(),
            log_dir=log_dir,
        )
