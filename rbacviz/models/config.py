"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum


class LayoutDirection(StrEnum):
    """Primary axis of the layered layout."""

    TOP_TO_BOTTOM = "TB"
    LEFT_TO_RIGHT = "LR"

    @classmethod
    def parse(cls, value: str) -> LayoutDirection:
        """Accept ``TB``/``LR`` as well as ``top-to-bottom``/``left-to-right``."""
        normalized = value.strip().lower()
        if normalized in ("tb", "top-to-bottom"):
            return cls.TOP_TO_BOTTOM
        if normalized in ("lr", "left-to-right"):
            return cls.LEFT_TO_RIGHT
        raise ValueError(f"Invalid layout direction: {value}")


@dataclass(frozen=True)
class LayoutConfig:
    """Layered layout configuration."""

    direction: LayoutDirection = LayoutDirection.TOP_TO_BOTTOM
    node_separation: float = 200.0
    rank_separation: float = 300.0
    margin: float = 150.0
    orphan_columns: int = 5
    orphan_spacing_x: float = 350.0
    orphan_spacing_y: float = 180.0
    crossing_passes: int = 4


@dataclass(frozen=True)
class GraphConfig:
    """Graph construction configuration."""

    system_role_prefix: str = "system:"
    default_service_account: str = "default"


@dataclass
class CacheConfig:
    """Pipeline memoization configuration."""

    max_entries: int = 32


@dataclass
class APIConfig:
    """REST API configuration."""

    port: int = 8080


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass
class RBACVizConfig:
    """Top-level RBACViz configuration."""

    layout: LayoutConfig = field(default_factory=LayoutConfig)
    graph: GraphConfig = field(default_factory=GraphConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    api: APIConfig = field(default_factory=APIConfig)
    log: LogConfig = field(default_factory=LogConfig)
