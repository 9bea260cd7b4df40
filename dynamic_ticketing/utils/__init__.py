"""
Utilities package for the dynamic ticketing core.

Exports shared helpers for logging, profiling, and other cross-cutting concerns.
Keep this package lightweight and free of domain-specific logic.
"""

from dynamic_ticketing.utils.logging import configure_logging, get_logger
from dynamic_ticketing.utils.profiler import ProfileStats, profile_block

__all__ = [
    "configure_logging",
    "get_logger",
    "ProfileStats",
    "profile_block",
]
