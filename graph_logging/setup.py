"""
Logging Setup
Configures file and console logging for propgraph applications.

Library modules only call logging.getLogger(__name__); handlers are attached
here by whoever owns the process (the CLI, an embedding application).
"""
import logging
import logging.handlers
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from propgraph.state_paths import resolve_state_dir

DETAILED_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(filename)s:%(lineno)d | %(message)s"
SIMPLE_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"


def setup_logging(
    component: str,
    log_dir: Optional[Union[str, Path]] = None,
    log_level: str = "INFO",
    console_output: bool = True,
) -> logging.Logger:
    """
    Setup logging for a component.

    Creates rotating file handler and optional console handler on the logger
    named `component` (e.g. "propgraph", so every propgraph.* module logger
    feeds into it).

    Args:
        component: Logger name
        log_dir: Directory for log files (defaults to <state_dir>/logs/{component}/)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        console_output: Whether to also log to the console (stderr)

    Returns:
        Configured logger instance

    Example:
        >>> from graph_logging import setup_logging
        >>> logger = setup_logging("propgraph", log_level="DEBUG")
        >>> logger.info("Graph loaded")
    """
    if log_dir is None:
        log_dir = resolve_state_dir() / "logs" / component.lower()
    else:
        log_dir = Path(os.path.expanduser(str(log_dir)))

    os.makedirs(log_dir, exist_ok=True)

    level = getattr(logging, log_level.upper(), logging.INFO)
    logger = logging.getLogger(component)
    logger.setLevel(level)

    # Clear existing handlers to avoid duplicates
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    log_file = Path(log_dir) / f"{component.lower()}_{datetime.now().strftime('%Y%m%d')}.log"

    file_handler = logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=10 * 1024 * 1024,  # 10 MB
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(fmt=DETAILED_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    logger.addHandler(file_handler)

    # stdout is reserved for command output
    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(logging.Formatter(fmt=SIMPLE_FORMAT, datefmt="%H:%M:%S"))
        logger.addHandler(console_handler)

    logger.propagate = False

    logger.debug(f"{component} logging initialized, log file: {log_file}")

    return logger


def get_component_logger(component: str) -> logging.Logger:
    """
    Get or create logger for a component.

    Args:
        component: Logger name

    Returns:
        Logger instance, configured with defaults on first use
    """
    logger = logging.getLogger(component)

    if not logger.handlers:
        setup_logging(component, log_level=os.getenv("PROPGRAPH_LOG_LEVEL", "INFO"))

    return logger
