"""
Infrastructure package for the dynamic ticketing core.

Centralizes database connectivity concerns (DSN, pooling, retrying connects).
Keep this layer focused on I/O and resource management, decoupled from
pricing and booking logic.
"""

from dynamic_ticketing.infrastructure.db_factory import (
    PoolManager,
    apply_lock_timeout,
    build_dsn,
    create_pool,
    get_sync_connection,
    get_sync_pool,
)

__all__ = [
    "PoolManager",
    "apply_lock_timeout",
    "build_dsn",
    "create_pool",
    "get_sync_connection",
    "get_sync_pool",
]
