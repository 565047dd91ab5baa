"""
Categorized logging for the crudx layers.

Usage:
    from crudx.utils.logging_utils import get_logger
    log = get_logger("query")
    log.info("query built", extra={"model": "Widget"})
"""

from .manager import (
    LoggerManager,
    get_logger,
    init_logger,
    log_context,
    shutdown_logger,
)

__all__ = [
    "LoggerManager",
    "get_logger",
    "log_context",
    "init_logger",
    "shutdown_logger",
]
