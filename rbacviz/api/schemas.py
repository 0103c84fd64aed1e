"""Request and response models for the REST API.

Field names follow the dashboard's camelCase wire format; Python code
uses the snake_case attribute names.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from rbacviz.graph.filters import FilterState, FilterType
from rbacviz.models.config import LayoutConfig, LayoutDirection


# Keeps accumulated coordinates finite for JSON output.
_MAX_SPACING = 10_000.0


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ErrorResponse(BaseModel):
    """Error envelope returned for every 4xx/5xx response."""

    error: str
    detail: str = ""


class FilterStateModel(_WireModel):
    filter_type: str | None = Field(default=None, alias="filterType")
    filter_value: str | None = Field(default=None, alias="filterValue")
    search_term: str | None = Field(default=None, alias="searchTerm")
    namespace_scope: str | None = Field(
        default=None,
        validation_alias=AliasChoices("namespaceScope", "namespace", "namespace_scope"),
    )
    show_bindings: bool = Field(default=True, alias="showBindings")
    show_service_identities: bool = Field(
        default=True,
        validation_alias=AliasChoices("showServiceIdentities", "showServiceAccounts", "show_service_identities"),
    )
    show_users: bool = Field(default=True, alias="showUsers")
    show_groups: bool = Field(default=True, alias="showGroups")
    show_system_roles: bool = Field(default=False, alias="showSystemRoles")
    show_workloads: bool = Field(
        default=True,
        validation_alias=AliasChoices("showWorkloads", "showPods", "show_workloads"),
    )

    def to_state(self) -> FilterState:
        """Convert to the engine's FilterState.

        Raises:
            ValueError: unknown filter type.
        """
        filter_type = FilterType.parse(self.filter_type) if self.filter_type else None
        return FilterState(
            filter_type=filter_type,
            filter_value=self.filter_value or None,
            search_term=self.search_term or None,
            namespace_scope=self.namespace_scope,
            show_bindings=self.show_bindings,
            show_service_identities=self.show_service_identities,
            show_users=self.show_users,
            show_groups=self.show_groups,
            show_system_roles=self.show_system_roles,
            show_workloads=self.show_workloads,
        )


class LayoutModel(_WireModel):
    """Per-request overrides of the server's layout configuration."""

    direction: str | None = None
    node_separation: float | None = Field(default=None, ge=0, le=_MAX_SPACING, alias="nodeSeparation")
    rank_separation: float | None = Field(default=None, ge=0, le=_MAX_SPACING, alias="rankSeparation")
    margin: float | None = Field(default=None, ge=0, le=_MAX_SPACING)
    orphan_columns: int | None = Field(default=None, ge=1, le=20, alias="orphanColumns")
    orphan_spacing_x: float | None = Field(default=None, ge=0, le=_MAX_SPACING, alias="orphanSpacingX")
    orphan_spacing_y: float | None = Field(default=None, ge=0, le=_MAX_SPACING, alias="orphanSpacingY")
    crossing_passes: int | None = Field(default=None, ge=0, le=24, alias="crossingPasses")

    def apply_to(self, base: LayoutConfig) -> LayoutConfig:
        overrides: dict[str, Any] = {
            name: value
            for name, value in self.model_dump(exclude={"direction"}).items()
            if value is not None
        }
        if self.direction:
            overrides["direction"] = LayoutDirection.parse(self.direction)
        return replace(base, **overrides)


class GraphRequest(_WireModel):
    """Body of ``POST /rbac/graph``."""

    resources: dict[str, Any]
    filters: FilterStateModel = Field(default_factory=FilterStateModel)
    layout: LayoutModel | None = None
    expanded: list[str] = Field(default_factory=list)


class GraphResponse(BaseModel):
    nodes: list[dict[str, Any]]
    edges: list[dict[str, Any]]
    context: str
    node_count: int = Field(serialization_alias="nodeCount")
    edge_count: int = Field(serialization_alias="edgeCount")


class MatrixRequest(_WireModel):
    resources: dict[str, Any]
    namespace: str | None = None


class PermissionEntryModel(BaseModel):
    subject: str
    namespace: str
    role: str
    verbs: list[str]
    resources: list[str]


class MatrixResponse(BaseModel):
    permissions: list[PermissionEntryModel]
    total: int


class RoleDetailsRequest(_WireModel):
    resources: dict[str, Any]
    kind: str = "ClusterRole"
    name: str = Field(min_length=1)
    namespace: str | None = None


class SubjectPermissionsRequest(_WireModel):
    resources: dict[str, Any]
    kind: str = "ServiceAccount"
    name: str = Field(min_length=1)
    namespace: str | None = None


class HealthResponse(BaseModel):
    status: str
    version: str
