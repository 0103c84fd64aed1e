"""Configuration loading from environment variables."""

from __future__ import annotations

import os

from rbacviz.models.config import (
    APIConfig,
    CacheConfig,
    GraphConfig,
    LayoutConfig,
    LayoutDirection,
    LogConfig,
    RBACVizConfig,
)


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"RBACVIZ_{key}", default)


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_float(key: str, default: float, min_val: float = 0.0) -> float:
    return max(float(_env(key, str(default))), min_val)


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def _validate_prefix(value: str) -> str:
    if not value.strip():
        raise ValueError("System role prefix must not be empty")
    return value


def load_config() -> RBACVizConfig:
    """Load configuration from RBACVIZ_* environment variables."""
    return RBACVizConfig(
        layout=LayoutConfig(
            direction=LayoutDirection.parse(_env("LAYOUT_DIRECTION", "TB")),
            node_separation=_env_float("LAYOUT_NODE_SEPARATION", 200.0),
            rank_separation=_env_float("LAYOUT_RANK_SEPARATION", 300.0),
            orphan_columns=_env_int("LAYOUT_ORPHAN_COLUMNS", 5, min_val=1, max_val=20),
            crossing_passes=_env_int("LAYOUT_CROSSING_PASSES", 4, min_val=0, max_val=24),
        ),
        graph=GraphConfig(
            system_role_prefix=_validate_prefix(_env("SYSTEM_ROLE_PREFIX", "system:")),
            default_service_account=_env("DEFAULT_SERVICE_ACCOUNT", "default") or "default",
        ),
        cache=CacheConfig(
            max_entries=_env_int("CACHE_MAX_ENTRIES", 32, min_val=1, max_val=1024),
        ),
        api=APIConfig(
            port=_env_int("API_PORT", 8080, min_val=1024, max_val=65535),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
        ),
    )
