"""Selection and visibility filtering over a resource snapshot.

Filtering runs in two phases:

1. Exclusions that hide roles outright (system prefix, search term,
   namespace scope). These run first so a hidden role can never re-enter
   the graph through a binding that references it.
2. Reachability from the selected identity, role or cluster role.

The per-subject gate (``subject_visible``) is exported so the graph builder
can re-apply it to each subject of a surviving binding.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from rbacviz.graph.index import Key, binding_role_key
from rbacviz.models.config import GraphConfig
from rbacviz.models.resources import (
    AccessBinding,
    AccessRole,
    ResourceSnapshot,
    RoleKind,
    Subject,
    SubjectKind,
    WorkloadInstance,
)

_ALL_NAMESPACES = ("", "all")


class FilterType(StrEnum):
    """What a selection value names."""

    IDENTITY = "identity"
    ROLE = "role"
    CLUSTER_ROLE = "cluster-role"

    @classmethod
    def parse(cls, value: str) -> FilterType:
        """Parse a filter type, accepting the dashboard's camelCase aliases."""
        normalized = value.strip().lower().replace("_", "-")
        aliases = {
            "identity": cls.IDENTITY,
            "subject": cls.IDENTITY,
            "serviceaccount": cls.IDENTITY,
            "service-account": cls.IDENTITY,
            "role": cls.ROLE,
            "cluster-role": cls.CLUSTER_ROLE,
            "clusterrole": cls.CLUSTER_ROLE,
        }
        try:
            return aliases[normalized]
        except KeyError:
            raise ValueError(f"Invalid filter type: {value}") from None


@dataclass(frozen=True)
class FilterState:
    """Selection, search and visibility toggles for one graph build."""

    filter_type: FilterType | None = None
    filter_value: str | None = None
    search_term: str | None = None
    namespace_scope: str | None = None
    show_bindings: bool = True
    show_service_identities: bool = True
    show_users: bool = True
    show_groups: bool = True
    show_system_roles: bool = False
    show_workloads: bool = True

    @property
    def scope(self) -> str | None:
        """Namespace scope, or None when every namespace is in scope."""
        if self.namespace_scope is None or self.namespace_scope.strip().lower() in _ALL_NAMESPACES:
            return None
        return self.namespace_scope


@dataclass(frozen=True)
class Selection:
    """A parsed ``(filter_type, filter_value)`` pair."""

    type: FilterType
    name: str
    namespace: str | None = None
    subject_kind: SubjectKind = SubjectKind.SERVICE_ACCOUNT

    def matches_subject(self, subject: Subject) -> bool:
        if self.type is not FilterType.IDENTITY:
            return False
        if subject.kind is not self.subject_kind or subject.name != self.name:
            return False
        # Users and groups are cluster-scoped: a namespace in the value is ignored.
        if self.namespace is None or subject.kind is not SubjectKind.SERVICE_ACCOUNT:
            return True
        return subject.namespace == self.namespace


def split_qualified_name(value: str) -> tuple[str | None, str]:
    """Split ``namespace/name``.

    Without a separator the whole value is the name and no namespace is
    implied. With several separators the first segment is the namespace
    and the last segment is the name.
    """
    if "/" not in value:
        return None, value
    parts = value.split("/")
    return parts[0] or None, parts[-1]


def parse_selection(filter_type: FilterType | None, filter_value: str | None) -> Selection | None:
    """Parse a selection; return None when either half is missing."""
    if filter_type is None or not filter_value:
        return None

    if filter_type is FilterType.CLUSTER_ROLE:
        return Selection(type=filter_type, name=filter_value)

    subject_kind = SubjectKind.SERVICE_ACCOUNT
    value = filter_value
    if filter_type is FilterType.IDENTITY:
        prefix, sep, rest = value.partition(":")
        if sep and prefix in {k.value for k in SubjectKind}:
            subject_kind = SubjectKind(prefix)
            value = rest
        if subject_kind is not SubjectKind.SERVICE_ACCOUNT:
            # User and group names may legitimately contain a slash.
            return Selection(type=filter_type, name=value, subject_kind=subject_kind)

    namespace, name = split_qualified_name(value)
    return Selection(type=filter_type, name=name, namespace=namespace, subject_kind=subject_kind)


@dataclass
class FilteredResources:
    """Reduced resource lists produced by ``apply_filters``."""

    cluster_roles: list[AccessRole] = field(default_factory=list)
    roles: list[AccessRole] = field(default_factory=list)
    cluster_bindings: list[AccessBinding] = field(default_factory=list)
    bindings: list[AccessBinding] = field(default_factory=list)
    workloads: list[WorkloadInstance] | None = None
    selection: Selection | None = None

    @property
    def all_bindings(self) -> list[AccessBinding]:
        return [*self.cluster_bindings, *self.bindings]


def _matches_search(text: str, search_term: str | None) -> bool:
    if not search_term:
        return True
    return search_term.lower() in text.lower()


def _in_scope(namespace: str | None, scope: str | None) -> bool:
    # Cluster-scoped objects are visible from every namespace.
    return scope is None or namespace is None or namespace == scope


def role_visible(role: AccessRole, state: FilterState, config: GraphConfig | None = None) -> bool:
    """Apply system-prefix, search and namespace exclusions to a role."""
    config = config or GraphConfig()
    if not state.show_system_roles and role.name.startswith(config.system_role_prefix):
        return False
    if not _matches_search(role.name, state.search_term):
        return False
    return _in_scope(role.namespace, state.scope)


def subject_visible(subject: Subject, state: FilterState, selection: Selection | None = None) -> bool:
    """Per-subject gate: kind toggles plus the identity selection."""
    if subject.kind is SubjectKind.SERVICE_ACCOUNT and not state.show_service_identities:
        return False
    if subject.kind is SubjectKind.USER and not state.show_users:
        return False
    if subject.kind is SubjectKind.GROUP and not state.show_groups:
        return False
    if selection is not None and selection.type is FilterType.IDENTITY:
        return selection.matches_subject(subject)
    return True


def _references(binding: AccessBinding, kind: RoleKind, name: str) -> bool:
    return binding.role_ref.kind is kind and binding.role_ref.name == name


def apply_filters(
    snapshot: ResourceSnapshot,
    state: FilterState | None = None,
    config: GraphConfig | None = None,
) -> FilteredResources:
    """Reduce a snapshot to the resources reachable from the selection."""
    state = state or FilterState()
    config = config or GraphConfig()
    scope = state.scope
    selection = parse_selection(state.filter_type, state.filter_value)

    cluster_roles = [r for r in snapshot.cluster_roles if role_visible(r, state, config)]
    roles = [r for r in snapshot.roles if role_visible(r, state, config)]
    cluster_bindings = list(snapshot.cluster_bindings)
    bindings = [b for b in snapshot.bindings if _in_scope(b.namespace, scope)]

    if selection is None:
        pass
    elif selection.type is FilterType.IDENTITY:
        surviving: set[Key] = {r.key for r in (*cluster_roles, *roles)}

        def grants_identity(binding: AccessBinding) -> bool:
            return binding_role_key(binding) in surviving and any(
                selection.matches_subject(s) for s in binding.subjects
            )

        cluster_bindings = [b for b in cluster_bindings if grants_identity(b)]
        bindings = [b for b in bindings if grants_identity(b)]
        referenced = {binding_role_key(b) for b in (*cluster_bindings, *bindings)}
        cluster_roles = [r for r in cluster_roles if r.key in referenced]
        roles = [r for r in roles if r.key in referenced]
    elif selection.type is FilterType.ROLE:
        # Role selection is strictly namespace-local.
        roles = [
            r
            for r in roles
            if r.name == selection.name and (selection.namespace is None or r.namespace == selection.namespace)
        ]
        bindings = [
            b
            for b in bindings
            if _references(b, RoleKind.ROLE, selection.name)
            and (selection.namespace is None or b.namespace == selection.namespace)
        ]
        cluster_roles = []
        cluster_bindings = []
    else:
        cluster_roles = [r for r in cluster_roles if r.name == selection.name]
        cluster_bindings = [b for b in cluster_bindings if _references(b, RoleKind.CLUSTER_ROLE, selection.name)]
        bindings = [b for b in bindings if _references(b, RoleKind.CLUSTER_ROLE, selection.name)]
        roles = []

    if selection is not None:
        # A binding to an excluded role must not carry its subjects' workloads in.
        kept: set[Key] = {r.key for r in (*cluster_roles, *roles)}
        cluster_bindings = [b for b in cluster_bindings if binding_role_key(b) in kept]
        bindings = [b for b in bindings if binding_role_key(b) in kept]

    workloads: list[WorkloadInstance] | None = None
    if snapshot.workloads is not None:
        workloads = []
        if state.show_workloads and state.show_service_identities:
            workloads = [
                w
                for w in snapshot.workloads
                if _in_scope(w.namespace, scope) and _matches_search(w.name, state.search_term)
            ]
        if selection is not None and workloads:
            reachable = {
                s.key
                for b in (*cluster_bindings, *bindings)
                for s in b.subjects
                if subject_visible(s, state, selection)
            }
            workloads = [w for w in workloads if w.identity_key(config.default_service_account) in reachable]

    return FilteredResources(
        cluster_roles=cluster_roles,
        roles=roles,
        cluster_bindings=cluster_bindings,
        bindings=bindings,
        workloads=workloads,
        selection=selection,
    )
