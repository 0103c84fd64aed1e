"""RBAC resource data structures.

Immutable records built from a snapshot of the cluster's access-control
objects. Every downstream stage (index, filters, builder, layout) consumes
these and never mutates them.
"""

from __future__ import annotations

import hashlib
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, is_dataclass
from enum import StrEnum
from functools import cached_property

# Namespace placeholder used in identity keys for cluster-scoped objects.
CLUSTER_SCOPE = ""


class RoleKind(StrEnum):
    """Kind of a permission bundle."""

    ROLE = "Role"
    CLUSTER_ROLE = "ClusterRole"


class BindingKind(StrEnum):
    """Kind of a binding object."""

    ROLE_BINDING = "RoleBinding"
    CLUSTER_ROLE_BINDING = "ClusterRoleBinding"


class SubjectKind(StrEnum):
    """Kind of identity a binding can grant permissions to."""

    USER = "User"
    GROUP = "Group"
    SERVICE_ACCOUNT = "ServiceAccount"


@dataclass(frozen=True)
class PermissionRule:
    """A single policy rule of a role."""

    verbs: tuple[str, ...] = ()
    api_groups: tuple[str, ...] = ()
    resources: tuple[str, ...] = ()
    resource_names: tuple[str, ...] = ()
    non_resource_urls: tuple[str, ...] = ()


@dataclass(frozen=True)
class AggregationSelector:
    """Label selectors that pull rules from other cluster roles.

    A cluster role matches when every label of at least one selector is
    present on it with the same value.
    """

    cluster_role_selectors: tuple[dict[str, str], ...] = ()

    def matches(self, labels: dict[str, str]) -> bool:
        for selector in self.cluster_role_selectors:
            if selector and all(labels.get(k) == v for k, v in selector.items()):
                return True
        return False


@dataclass(frozen=True)
class AccessRole:
    """A Role (namespaced) or ClusterRole (namespace is None)."""

    name: str
    namespace: str | None = None
    rules: tuple[PermissionRule, ...] = ()
    labels: dict[str, str] = field(default_factory=dict)
    aggregation: AggregationSelector | None = None
    uid: str = ""
    created: str = ""

    @property
    def kind(self) -> RoleKind:
        return RoleKind.ROLE if self.namespace else RoleKind.CLUSTER_ROLE

    @property
    def key(self) -> tuple[str, str, str]:
        """Return the unique key for this role."""
        return (self.kind.value, self.namespace or CLUSTER_SCOPE, self.name)


@dataclass(frozen=True)
class RoleRef:
    """Reference from a binding to the role it grants."""

    kind: RoleKind
    name: str


@dataclass(frozen=True)
class Subject:
    """An identity referenced by a binding.

    Users and groups are cluster-scoped and carry no namespace; service
    accounts always carry one once loaded.
    """

    kind: SubjectKind
    name: str
    namespace: str | None = None

    @property
    def key(self) -> tuple[str, str, str]:
        """Return the identity key used for node deduplication."""
        return (self.kind.value, self.namespace or CLUSTER_SCOPE, self.name)

    @property
    def qualified_name(self) -> str:
        return f"{self.namespace}/{self.name}" if self.namespace else self.name


@dataclass(frozen=True)
class AccessBinding:
    """A RoleBinding (namespaced) or ClusterRoleBinding (namespace is None)."""

    name: str
    role_ref: RoleRef
    namespace: str | None = None
    subjects: tuple[Subject, ...] = ()
    uid: str = ""

    @property
    def kind(self) -> BindingKind:
        return BindingKind.ROLE_BINDING if self.namespace else BindingKind.CLUSTER_ROLE_BINDING

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.kind.value, self.namespace or CLUSTER_SCOPE, self.name)


@dataclass(frozen=True)
class Container:
    """Summary of one container of a workload instance."""

    name: str
    image: str = "unknown"
    ready: bool = False
    restart_count: int = 0
    state: str = "Unknown"


@dataclass(frozen=True)
class WorkloadInstance:
    """A running pod and the service account it runs as.

    ``name`` may be empty for malformed records; the graph builder drops
    those with a diagnostic.
    """

    name: str
    namespace: str
    service_identity: str | None = None
    containers: tuple[Container, ...] = ()
    phase: str = "Unknown"
    node_name: str = ""
    pod_ip: str = ""
    host_ip: str = ""
    start_time: str = ""
    uid: str = ""

    def identity_key(self, default_identity: str = "default") -> tuple[str, str, str]:
        """Return the identity key of the service account this pod runs as."""
        return (SubjectKind.SERVICE_ACCOUNT.value, self.namespace, self.service_identity or default_identity)


@dataclass(frozen=True)
class ResourceSnapshot:
    """All access-control objects of one cluster context at one point in time.

    The resource lists are stored as tuples so the cached fingerprint can
    never go stale.
    """

    cluster_roles: tuple[AccessRole, ...] = ()
    roles: tuple[AccessRole, ...] = ()
    cluster_bindings: tuple[AccessBinding, ...] = ()
    bindings: tuple[AccessBinding, ...] = ()
    workloads: tuple[WorkloadInstance, ...] | None = None
    context: str = "default"

    def __post_init__(self) -> None:
        for name in ("cluster_roles", "roles", "cluster_bindings", "bindings"):
            object.__setattr__(self, name, tuple(getattr(self, name)))
        if self.workloads is not None:
            object.__setattr__(self, "workloads", tuple(self.workloads))

    @cached_property
    def fingerprint(self) -> str:
        """Content hash of the snapshot, stable across equal snapshots.

        Label maps are hashed in sorted order, so insertion order does not
        change the result.
        """
        digest = hashlib.sha256()
        for part in (
            self.context,
            self.cluster_roles,
            self.roles,
            self.cluster_bindings,
            self.bindings,
            self.workloads,
        ):
            digest.update(repr(_canonical(part)).encode("utf-8"))
            digest.update(b"\x00")
        return digest.hexdigest()


def _canonical(value: object) -> object:
    if is_dataclass(value) and not isinstance(value, type):
        return (type(value).__name__, tuple(_canonical(getattr(value, f.name)) for f in fields(value)))
    if isinstance(value, Mapping):
        return tuple(sorted((str(k), _canonical(v)) for k, v in value.items()))
    if isinstance(value, list | tuple):
        return tuple(_canonical(v) for v in value)
    return value
