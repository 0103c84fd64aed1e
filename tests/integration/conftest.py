"""Shared fixtures for RBACViz integration tests.

Provides resource factories and a realistic multi-namespace snapshot so
integration tests can exercise the full filter -> build -> layout pipeline
without a cluster.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

import pytest

from rbacviz.graph.pipeline import GraphPipeline
from rbacviz.models.resources import (
    AccessBinding,
    AccessRole,
    AggregationSelector,
    PermissionRule,
    ResourceSnapshot,
    RoleKind,
    RoleRef,
    Subject,
    SubjectKind,
    WorkloadInstance,
)

# ---------------------------------------------------------------------------
# Resource factory helpers
# ---------------------------------------------------------------------------


def make_rule(verbs: Sequence[str] = ("get", "list"), resources: Sequence[str] = ("pods",)) -> PermissionRule:
    return PermissionRule(verbs=tuple(verbs), api_groups=("",), resources=tuple(resources))


def make_role(
    name: str,
    namespace: str | None = None,
    rules: Iterable[PermissionRule] | None = None,
    labels: dict[str, str] | None = None,
    aggregate_labels: Sequence[dict[str, str]] | None = None,
) -> AccessRole:
    """Create a Role (with namespace) or ClusterRole (without)."""
    return AccessRole(
        name=name,
        namespace=namespace,
        rules=tuple(rules) if rules is not None else (make_rule(),),
        labels=dict(labels or {}),
        aggregation=AggregationSelector(tuple(aggregate_labels)) if aggregate_labels else None,
    )


def make_sa(name: str, namespace: str) -> Subject:
    return Subject(kind=SubjectKind.SERVICE_ACCOUNT, name=name, namespace=namespace)


def make_user(name: str) -> Subject:
    return Subject(kind=SubjectKind.USER, name=name)


def make_group(name: str) -> Subject:
    return Subject(kind=SubjectKind.GROUP, name=name)


def make_binding(
    name: str,
    role_name: str,
    namespace: str | None = None,
    subjects: Iterable[Subject] = (),
    role_kind: RoleKind | None = None,
) -> AccessBinding:
    """Create a RoleBinding (with namespace) or ClusterRoleBinding (without).

    The role reference defaults to Role for RoleBindings and ClusterRole
    for ClusterRoleBindings.
    """
    if role_kind is None:
        role_kind = RoleKind.ROLE if namespace else RoleKind.CLUSTER_ROLE
    return AccessBinding(
        name=name,
        namespace=namespace,
        role_ref=RoleRef(kind=role_kind, name=role_name),
        subjects=tuple(subjects),
    )


def make_pod(name: str, namespace: str, service_account: str | None = None) -> WorkloadInstance:
    return WorkloadInstance(name=name, namespace=namespace, service_identity=service_account, phase="Running")


def make_snapshot(
    cluster_roles: Iterable[AccessRole] = (),
    roles: Iterable[AccessRole] = (),
    cluster_bindings: Iterable[AccessBinding] = (),
    bindings: Iterable[AccessBinding] = (),
    pods: Iterable[WorkloadInstance] | None = None,
    context: str = "test-cluster",
) -> ResourceSnapshot:
    return ResourceSnapshot(
        cluster_roles=list(cluster_roles),
        roles=list(roles),
        cluster_bindings=list(cluster_bindings),
        bindings=list(bindings),
        workloads=list(pods) if pods is not None else None,
        context=context,
    )


# ---------------------------------------------------------------------------
# Snapshot fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def payments_snapshot() -> ResourceSnapshot:
    """Two application namespaces, an aggregated cluster role and system noise.

    payments/api is bound twice (namespaced viewer + cluster-wide reader),
    payments/worker only runs pods, and billing/cron reads through a
    ClusterRole bound by a RoleBinding.
    """
    reader = make_role(
        "reader",
        labels={"rbac.example.com/aggregate-to-reader": "true"},
        rules=[make_rule(("get",), ("configmaps",))],
    )
    aggregate = make_role(
        "aggregate-reader",
        rules=[],
        aggregate_labels=[{"rbac.example.com/aggregate-to-reader": "true"}],
    )
    system = make_role("system:kube-scheduler", rules=[make_rule(("*",), ("*",))])
    viewer = make_role("viewer", namespace="payments")
    editor = make_role("editor", namespace="billing", rules=[make_rule(("create", "update"), ("jobs",))])

    return make_snapshot(
        cluster_roles=[reader, aggregate, system],
        roles=[viewer, editor],
        cluster_bindings=[
            make_binding("api-reader", "reader", subjects=[make_sa("api", "payments"), make_group("sre")]),
            make_binding("scheduler", "system:kube-scheduler", subjects=[make_user("system:kube-scheduler")]),
        ],
        bindings=[
            make_binding("api-viewer", "viewer", namespace="payments", subjects=[make_sa("api", "payments")]),
            make_binding(
                "cron-reader",
                "reader",
                namespace="billing",
                subjects=[make_sa("cron", "billing"), make_user("alice")],
                role_kind=RoleKind.CLUSTER_ROLE,
            ),
            make_binding("cron-editor", "editor", namespace="billing", subjects=[make_sa("cron", "billing")]),
        ],
        pods=[
            make_pod("api-7d9f", "payments", "api"),
            make_pod("worker-5c2a", "payments", "worker"),
            make_pod("cron-28911", "billing", "cron"),
            make_pod("legacy-0", "billing"),
        ],
    )


@pytest.fixture()
def pipeline() -> GraphPipeline:
    return GraphPipeline(max_entries=8)
