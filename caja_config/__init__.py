"""
caja_config -- single public entrypoint for runtime settings.

Responsibility:
    Provides ``get_settings()``, the only way the CLI and tooling obtain
    configuration.  Services never read settings; they receive their inputs
    (clock, counter key, default opening balance) as constructor arguments.

Architecture position:
    Configuration -- sits above ``caja_kernel``.  The kernel MUST NEVER
    import from ``caja_config``; ``caja_config.bridges`` translates settings
    into kernel objects.

Failure modes:
    - ``FileNotFoundError`` -- the settings file named by ``CAJA_SETTINGS``
      does not exist.
    - ``yaml.YAMLError`` -- malformed settings file.
    - ``ValueError`` -- unknown key or bad value.
"""

from __future__ import annotations

import logging
import os
import threading

from caja_config.loader import Settings, load_settings

_logger = logging.getLogger("caja_kernel.config")

_settings: Settings | None = None
_lock = threading.Lock()


def get_settings() -> Settings:
    """
    Return the process-wide settings, loading them on first call.

    The settings file path is taken from ``CAJA_SETTINGS`` when set.
    """
    global _settings
    with _lock:
        if _settings is None:
            _settings = load_settings(os.environ.get("CAJA_SETTINGS") or None)
            _logger.info(
                "settings_loaded",
                extra={
                    "database_backend": _settings.database_url.split(":", 1)[0],
                    "utc_offset_hours": _settings.utc_offset_hours,
                    "log_level": _settings.log_level,
                },
            )
        return _settings


def reset_settings() -> None:
    """Drop the cached settings. FOR TESTING ONLY."""
    global _settings
    with _lock:
        _settings = None


__all__ = ["Settings", "get_settings", "load_settings", "reset_settings"]
