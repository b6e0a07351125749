"""
Core package for configuration, logging, and shared exceptions.
"""

from funnel.core.config import Settings, settings
from funnel.core.logging import configure_structlog, get_structlog_logger

__all__ = [
    "Settings",
    "settings",
    "configure_structlog",
    "get_structlog_logger",
]
