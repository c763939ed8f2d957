# -*- coding: utf-8 -*-
"""
rolegraph Configuration

Centralized configuration for the authorization engine covering:
- Permission matrix caching and cache TTL
- Hierarchy traversal depth bound
- Access request default lifetime
- Role template defaults
- Import/export bundle version
- Default catalog seeding and decision logging

All settings can be overridden via environment variables with the
``ROLEGRAPH_`` prefix (e.g. ``ROLEGRAPH_MAX_HIERARCHY_DEPTH``).

Example:
    >>> from rolegraph.config import get_config
    >>> cfg = get_config()
    >>> print(cfg.cache_enabled, cfg.max_hierarchy_depth)
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from typing import Any, Optional

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Environment variable prefix
# ---------------------------------------------------------------------------

_ENV_PREFIX = "ROLEGRAPH_"


# ---------------------------------------------------------------------------
# RBACConfig
# ---------------------------------------------------------------------------


@dataclass
class RBACConfig:
    """Complete configuration for the rolegraph engine.

    All attributes can be overridden via environment variables using the
    ``ROLEGRAPH_`` prefix.

    Attributes:
        cache_enabled: Memoize per-user permission matrices.
        matrix_cache_ttl_seconds: Matrix lifetime in seconds (0 = until invalidated).
        max_hierarchy_depth: Depth bound for inherited-permission traversal.
        access_request_ttl_days: Default lifetime of a new access request.
        default_template_priority: Priority of roles created from templates.
        bundle_version: Only accepted import/export bundle version.
        seed_defaults: Seed the default catalog and system roles on startup.
        log_decisions: Log every permission decision at DEBUG level.
    """

    # -- Caching -------------------------------------------------------------
    cache_enabled: bool = True
    matrix_cache_ttl_seconds: int = 0

    # -- Resolution ----------------------------------------------------------
    max_hierarchy_depth: int = 64

    # -- Workflow ------------------------------------------------------------
    access_request_ttl_days: int = 30

    # -- Templates -----------------------------------------------------------
    default_template_priority: int = 50

    # -- Import / export -----------------------------------------------------
    bundle_version: str = "1.0"

    # -- Startup / diagnostics -----------------------------------------------
    seed_defaults: bool = False
    log_decisions: bool = False

    # ------------------------------------------------------------------
    # Factory helpers
    # ------------------------------------------------------------------

    @classmethod
    def from_env(cls) -> RBACConfig:
        """Build an RBACConfig from environment variables.

        Every field can be overridden via ``ROLEGRAPH_<FIELD_UPPER>``.
        Boolean values accept ``true/1/yes`` (case-insensitive).
        Integer values are parsed via ``int()``.

        Returns:
            Populated RBACConfig instance.
        """
        prefix = _ENV_PREFIX

        def _env(name: str, default: Any = None) -> Optional[str]:
            return os.environ.get(f"{prefix}{name}", default)

        def _bool(name: str, default: bool) -> bool:
            val = _env(name)
            if val is None:
                return default
            return val.lower() in ("true", "1", "yes")

        def _int(name: str, default: int) -> int:
            val = _env(name)
            if val is None:
                return default
            try:
                return int(val)
            except ValueError:
                logger.warning(
                    "Invalid integer for %s%s=%s, using default %d",
                    prefix, name, val, default,
                )
                return default

        def _str(name: str, default: str) -> str:
            val = _env(name)
            if val is None or not val.strip():
                return default
            return val.strip()

        config = cls(
            cache_enabled=_bool("CACHE_ENABLED", cls.cache_enabled),
            matrix_cache_ttl_seconds=_int(
                "MATRIX_CACHE_TTL_SECONDS", cls.matrix_cache_ttl_seconds,
            ),
            max_hierarchy_depth=_int(
                "MAX_HIERARCHY_DEPTH", cls.max_hierarchy_depth,
            ),
            access_request_ttl_days=_int(
                "ACCESS_REQUEST_TTL_DAYS", cls.access_request_ttl_days,
            ),
            default_template_priority=_int(
                "DEFAULT_TEMPLATE_PRIORITY", cls.default_template_priority,
            ),
            bundle_version=_str("BUNDLE_VERSION", cls.bundle_version),
            seed_defaults=_bool("SEED_DEFAULTS", cls.seed_defaults),
            log_decisions=_bool("LOG_DECISIONS", cls.log_decisions),
        )

        logger.info(
            "RBACConfig loaded: cache=%s, ttl=%ds, max_depth=%d, "
            "request_ttl=%dd, seed_defaults=%s",
            config.cache_enabled,
            config.matrix_cache_ttl_seconds,
            config.max_hierarchy_depth,
            config.access_request_ttl_days,
            config.seed_defaults,
        )
        return config


# ---------------------------------------------------------------------------
# Thread-safe singleton accessor
# ---------------------------------------------------------------------------

_config_instance: Optional[RBACConfig] = None
_config_lock = threading.Lock()


def get_config() -> RBACConfig:
    """Return the singleton RBACConfig, creating from env if needed.

    Returns:
        RBACConfig singleton instance.
    """
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = RBACConfig.from_env()
    return _config_instance


def set_config(config: RBACConfig) -> None:
    """Replace the singleton RBACConfig (useful for testing).

    Args:
        config: New configuration to install.
    """
    global _config_instance
    with _config_lock:
        _config_instance = config
    logger.info("RBACConfig replaced programmatically")


def reset_config() -> None:
    """Reset the singleton (primarily for test teardown)."""
    global _config_instance
    with _config_lock:
        _config_instance = None


__all__ = [
    "RBACConfig",
    "get_config",
    "set_config",
    "reset_config",
]
