"""Permission queries over a snapshot.

Flat views that complement the graph: who holds which verbs on which
resources, what a role grants and who it is bound to, and everything a
given subject has been granted.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field

from rbacviz.graph.index import ResourceIndex, build_index
from rbacviz.models.resources import (
    AccessBinding,
    AccessRole,
    PermissionRule,
    ResourceSnapshot,
    RoleKind,
    SubjectKind,
)

CLUSTER_WIDE = "cluster-wide"


@dataclass(frozen=True)
class PermissionEntry:
    """One row of the permission matrix."""

    subject: str  # "Kind:name"
    namespace: str  # binding namespace or "cluster-wide"
    role: str
    verbs: tuple[str, ...]
    resources: tuple[str, ...]


@dataclass(frozen=True)
class EffectiveRules:
    """A role's own rules plus those pulled in through aggregation."""

    rules: tuple[PermissionRule, ...]
    aggregated_from: tuple[str, ...] = ()


@dataclass
class RoleDetails:
    role: AccessRole
    bindings: list[AccessBinding] = field(default_factory=list)
    effective: EffectiveRules = field(default_factory=lambda: EffectiveRules(rules=()))


@dataclass(frozen=True)
class SubjectPermission:
    role: str
    role_kind: RoleKind
    namespace: str
    rules: tuple[PermissionRule, ...]
    binding_name: str
    binding_kind: str


@dataclass
class SubjectPermissions:
    subject: str
    kind: SubjectKind
    permissions: list[SubjectPermission] = field(default_factory=list)


def _index(snapshot: ResourceSnapshot) -> ResourceIndex:
    return build_index(snapshot.cluster_roles, snapshot.roles, snapshot.cluster_bindings, snapshot.bindings)


def effective_rules(role: AccessRole, index: ResourceIndex) -> EffectiveRules:
    """Resolve aggregation transitively; aggregation cycles are visited once."""
    rules: list[PermissionRule] = list(role.rules)
    seen_rules = set(rules)
    contributors: list[str] = []
    visited = {role.name} if role.kind is RoleKind.CLUSTER_ROLE else set()
    queue = deque([role])
    while queue:
        current = queue.popleft()
        if current.aggregation is None:
            continue
        for name in sorted(index.cluster_roles_by_name):
            member = index.cluster_roles_by_name[name]
            if name in visited or not current.aggregation.matches(member.labels):
                continue
            visited.add(name)
            contributors.append(name)
            queue.append(member)
            for rule in member.rules:
                if rule not in seen_rules:
                    seen_rules.add(rule)
                    rules.append(rule)
    return EffectiveRules(rules=tuple(rules), aggregated_from=tuple(contributors))


def permission_matrix(snapshot: ResourceSnapshot, namespace: str | None = None) -> list[PermissionEntry]:
    """One entry per (subject, rule) granted through a resolvable binding.

    With ``namespace`` set, RoleBindings outside it are skipped;
    ClusterRoleBindings are always included.
    """
    index = _index(snapshot)
    entries: list[PermissionEntry] = []
    for binding in (*snapshot.cluster_bindings, *snapshot.bindings):
        if namespace and binding.namespace and binding.namespace != namespace:
            continue
        role = index.resolve_role(binding)
        if role is None:
            continue
        scope = binding.namespace or CLUSTER_WIDE
        for subject in binding.subjects:
            for rule in role.rules:
                entries.append(
                    PermissionEntry(
                        subject=f"{subject.kind.value}:{subject.name}",
                        namespace=scope,
                        role=binding.role_ref.name,
                        verbs=rule.verbs,
                        resources=rule.resources,
                    )
                )
    return entries


def role_details(
    snapshot: ResourceSnapshot,
    kind: RoleKind,
    name: str,
    namespace: str | None = None,
) -> RoleDetails | None:
    """Return a role with the bindings referencing it, or None if absent.

    Raises:
        ValueError: a namespaced Role was requested without a namespace.
    """
    if kind is RoleKind.ROLE and not namespace:
        raise ValueError("namespace is required for Role")
    index = _index(snapshot)
    key = (kind.value, (namespace or "") if kind is RoleKind.ROLE else "", name)
    role = index.roles.get(key)
    if role is None:
        return None
    return RoleDetails(role=role, bindings=list(index.bindings_for_role(role)), effective=effective_rules(role, index))


def subject_permissions(
    snapshot: ResourceSnapshot,
    kind: SubjectKind,
    name: str,
    namespace: str | None = None,
) -> SubjectPermissions:
    """List every grant a subject receives, binding by binding."""
    index = _index(snapshot)
    result = SubjectPermissions(subject=name, kind=kind)
    for binding in (*snapshot.cluster_bindings, *snapshot.bindings):
        if namespace and binding.namespace and binding.namespace != namespace:
            continue
        matched = any(
            s.kind is kind
            and s.name == name
            and (not namespace or binding.namespace or s.namespace in (None, namespace))
            for s in binding.subjects
        )
        if not matched:
            continue
        role = index.resolve_role(binding)
        if role is None:
            continue
        result.permissions.append(
            SubjectPermission(
                role=role.name,
                role_kind=role.kind,
                namespace=binding.namespace or CLUSTER_WIDE,
                rules=role.rules,
                binding_name=binding.name,
                binding_kind=binding.kind.value,
            )
        )
    return result
