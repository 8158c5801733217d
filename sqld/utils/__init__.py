"""
Utilities package for sqld.

Exports shared helpers for logging and other cross-cutting concerns.
Keep this package lightweight and free of query-specific logic.
"""

from sqld.utils.logging import JsonFormatter, configure_logging, get_logger

__all__ = [
    "JsonFormatter",
    "configure_logging",
    "get_logger",
]
