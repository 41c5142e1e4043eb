"""Shared utilities for FormFlow."""

from .logger import setup_logger, configure_from_settings

__all__ = ["setup_logger", "configure_from_settings"]
