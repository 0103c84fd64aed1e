"""Core data structures for RBACViz."""

from rbacviz.models.config import GraphConfig, LayoutConfig, LayoutDirection, RBACVizConfig
from rbacviz.models.resources import (
    AccessBinding,
    AccessRole,
    AggregationSelector,
    BindingKind,
    Container,
    PermissionRule,
    ResourceSnapshot,
    RoleKind,
    RoleRef,
    Subject,
    SubjectKind,
    WorkloadInstance,
)

__all__ = [
    "AccessBinding",
    "AccessRole",
    "AggregationSelector",
    "BindingKind",
    "Container",
    "GraphConfig",
    "LayoutConfig",
    "LayoutDirection",
    "PermissionRule",
    "RBACVizConfig",
    "ResourceSnapshot",
    "RoleKind",
    "RoleRef",
    "Subject",
    "SubjectKind",
    "WorkloadInstance",
]
