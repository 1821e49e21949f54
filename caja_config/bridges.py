"""
Config -> Kernel Bridges.

Functions that turn ``Settings`` into kernel objects.  These live in
caja_config (the producer) because the kernel must NEVER import caja_config.

Usage:
    from caja_config import get_settings
    from caja_config.bridges import build_clock, init_engine_from_settings

    settings = get_settings()
    init_engine_from_settings(settings)
    clock = build_clock(settings)
"""

from __future__ import annotations

from sqlalchemy.engine import Engine

from caja_config.loader import Settings
from caja_kernel.db.engine import init_engine_from_url
from caja_kernel.domain.clock import SystemClock, fixed_offset
from caja_kernel.logging_config import configure_logging


def init_engine_from_settings(settings: Settings) -> Engine:
    """Configure logging and the global engine from settings."""
    configure_logging(level=settings.log_level)
    return init_engine_from_url(
        settings.database_url,
        echo=settings.echo_sql,
        pool_size=settings.pool_size,
        max_overflow=settings.max_overflow,
        lock_timeout_ms=settings.lock_timeout_ms,
    )


def build_clock(settings: Settings) -> SystemClock:
    return SystemClock(fixed_offset(settings.utc_offset_hours))
