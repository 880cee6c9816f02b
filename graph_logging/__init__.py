"""Logging package."""
from .setup import get_component_logger, setup_logging

__all__ = ["setup_logging", "get_component_logger"]
