"""Lookup structures over the raw resource lists.

The index is a pure function of its input lists: it is rebuilt for every
snapshot (or filtered subset) and never mutated afterwards.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from rbacviz.models.resources import (
    AccessBinding,
    AccessRole,
    RoleKind,
    Subject,
    WorkloadInstance,
)
from rbacviz.observability.logging import get_logger

_logger = get_logger("graph.index")

Key = tuple[str, str, str]


def binding_role_key(binding: AccessBinding) -> Key:
    """Return the key of the role a binding refers to, resolved or not.

    Namespaced Role references resolve in the binding's own namespace.
    """
    if binding.role_ref.kind is RoleKind.CLUSTER_ROLE:
        return (RoleKind.CLUSTER_ROLE.value, "", binding.role_ref.name)
    return (RoleKind.ROLE.value, binding.namespace or "", binding.role_ref.name)


@dataclass
class ResourceIndex:
    """O(1) lookups keyed by ``(kind, namespace-or-"", name)``."""

    roles: dict[Key, AccessRole] = field(default_factory=dict)
    cluster_roles_by_name: dict[str, AccessRole] = field(default_factory=dict)
    bindings: dict[Key, AccessBinding] = field(default_factory=dict)
    subjects: dict[Key, Subject] = field(default_factory=dict)
    bindings_by_subject: dict[Key, list[AccessBinding]] = field(default_factory=dict)
    bindings_by_role: dict[Key, list[AccessBinding]] = field(default_factory=dict)
    workloads_by_identity: dict[Key, list[WorkloadInstance]] = field(default_factory=dict)

    def resolve_role(self, binding: AccessBinding) -> AccessRole | None:
        """Resolve a binding's role reference, or None when it is not indexed."""
        if binding.role_ref.kind is RoleKind.CLUSTER_ROLE:
            return self.cluster_roles_by_name.get(binding.role_ref.name)
        return self.roles.get(binding_role_key(binding))

    def bindings_for_role(self, role: AccessRole) -> list[AccessBinding]:
        return self.bindings_by_role.get(role.key, [])

    def bindings_for_subject(self, key: Key) -> list[AccessBinding]:
        return self.bindings_by_subject.get(key, [])


def build_index(
    cluster_roles: Sequence[AccessRole] | None,
    roles: Sequence[AccessRole] | None,
    cluster_bindings: Sequence[AccessBinding] | None,
    bindings: Sequence[AccessBinding] | None,
    workloads: Sequence[WorkloadInstance] | None = None,
    default_service_account: str = "default",
) -> ResourceIndex:
    """Index the resource lists.

    Returns an empty index (and logs a warning) when any of the four
    required lists is absent. Duplicate identities keep the first record.
    """
    if cluster_roles is None or roles is None or cluster_bindings is None or bindings is None:
        _logger.warning(
            "index_missing_input",
            cluster_roles=cluster_roles is not None,
            roles=roles is not None,
            cluster_bindings=cluster_bindings is not None,
            bindings=bindings is not None,
        )
        return ResourceIndex()

    index = ResourceIndex()

    for role in (*cluster_roles, *roles):
        index.roles.setdefault(role.key, role)
        if role.kind is RoleKind.CLUSTER_ROLE:
            index.cluster_roles_by_name.setdefault(role.name, role)

    for binding in (*cluster_bindings, *bindings):
        if binding.key in index.bindings:
            continue
        index.bindings[binding.key] = binding
        index.bindings_by_role.setdefault(binding_role_key(binding), []).append(binding)
        seen: set[Key] = set()
        for subject in binding.subjects:
            index.subjects.setdefault(subject.key, subject)
            # A binding listing the same subject twice still counts once.
            if subject.key not in seen:
                seen.add(subject.key)
                index.bindings_by_subject.setdefault(subject.key, []).append(binding)

    for workload in workloads or ():
        key = workload.identity_key(default_service_account)
        index.workloads_by_identity.setdefault(key, []).append(workload)

    return index
