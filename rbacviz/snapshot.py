"""Snapshot loading from Kubernetes manifest documents.

Accepts the document served by the dashboard's ``/rbac/resources`` endpoint
(or an equivalent JSON/YAML file)::

    {
      "clusterRoles": [...], "roles": [...],
      "clusterRoleBindings": [...], "roleBindings": [...],
      "pods": [...],            # optional
      "context": "prod-east"    # optional
    }

Records missing a required name are dropped with a diagnostic; loading
continues with the remaining records.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

import yaml

from rbacviz.models.resources import (
    AccessBinding,
    AccessRole,
    AggregationSelector,
    Container,
    PermissionRule,
    ResourceSnapshot,
    RoleKind,
    RoleRef,
    Subject,
    SubjectKind,
    WorkloadInstance,
)
from rbacviz.observability.logging import get_logger
from rbacviz.observability.metrics import records_dropped_total

_logger = get_logger("snapshot")


class SnapshotFormatError(ValueError):
    """Raised when a snapshot document does not have the expected shape."""


def _drop(kind: str, reason: str, **context: object) -> None:
    records_dropped_total.labels(kind=kind).inc()
    _logger.warning("record_dropped", kind=kind, reason=reason, **context)


def _strings(value: object) -> tuple[str, ...]:
    if not isinstance(value, list | tuple):
        return ()
    return tuple(str(v) for v in value)


def _list(value: object) -> list[Any]:
    return value if isinstance(value, list) else []


def _mapping(value: object) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _count(value: object) -> int:
    try:
        return max(int(value or 0), 0)
    except (TypeError, ValueError, OverflowError):
        return 0


def _metadata(raw: Mapping[str, Any]) -> Mapping[str, Any]:
    meta = raw.get("metadata")
    # Simplified records carry name/namespace at the top level.
    return meta if isinstance(meta, Mapping) else raw


def _parse_rule(raw: Mapping[str, Any]) -> PermissionRule:
    return PermissionRule(
        verbs=_strings(raw.get("verbs")),
        api_groups=_strings(raw.get("apiGroups")),
        resources=_strings(raw.get("resources")),
        resource_names=_strings(raw.get("resourceNames")),
        non_resource_urls=_strings(raw.get("nonResourceURLs")),
    )


def _parse_aggregation(raw: object) -> AggregationSelector | None:
    if not isinstance(raw, Mapping):
        return None
    selectors = []
    for entry in _list(raw.get("clusterRoleSelectors")):
        if isinstance(entry, Mapping) and isinstance(entry.get("matchLabels"), Mapping):
            selectors.append({str(k): str(v) for k, v in entry["matchLabels"].items()})
    return AggregationSelector(cluster_role_selectors=tuple(selectors))


def parse_role(raw: object, *, cluster_scoped: bool) -> AccessRole | None:
    """Parse a Role or ClusterRole manifest; return None if malformed."""
    kind = "ClusterRole" if cluster_scoped else "Role"
    if not isinstance(raw, Mapping):
        _drop(kind, "not_a_mapping")
        return None
    meta = _metadata(raw)
    name = meta.get("name")
    namespace = None if cluster_scoped else meta.get("namespace")
    if not name:
        _drop(kind, "missing_name", uid=meta.get("uid", ""))
        return None
    if not cluster_scoped and not namespace:
        _drop(kind, "missing_namespace", name=name)
        return None
    return AccessRole(
        name=str(name),
        namespace=str(namespace) if namespace else None,
        rules=tuple(_parse_rule(r) for r in _list(raw.get("rules")) if isinstance(r, Mapping)),
        labels={str(k): str(v) for k, v in _mapping(meta.get("labels")).items()},
        aggregation=_parse_aggregation(raw.get("aggregationRule")),
        uid=str(meta.get("uid", "")),
        created=str(meta.get("creationTimestamp", "")),
    )


def parse_subject(raw: object, binding_namespace: str | None) -> Subject | None:
    """Parse a binding subject, normalizing its namespace by kind."""
    if not isinstance(raw, Mapping) or not raw.get("name"):
        _drop("Subject", "missing_name")
        return None
    try:
        kind = SubjectKind(raw.get("kind", ""))
    except ValueError:
        _drop("Subject", "unknown_kind", name=raw.get("name"), subject_kind=raw.get("kind"))
        return None
    if kind is SubjectKind.SERVICE_ACCOUNT:
        namespace = raw.get("namespace") or binding_namespace
        if not namespace:
            _drop("Subject", "missing_namespace", name=raw.get("name"))
            return None
    else:
        namespace = None
    return Subject(kind=kind, name=str(raw["name"]), namespace=str(namespace) if namespace else None)


def parse_binding(raw: object, *, cluster_scoped: bool) -> AccessBinding | None:
    """Parse a RoleBinding or ClusterRoleBinding manifest; return None if malformed."""
    kind = "ClusterRoleBinding" if cluster_scoped else "RoleBinding"
    if not isinstance(raw, Mapping):
        _drop(kind, "not_a_mapping")
        return None
    meta = _metadata(raw)
    name = meta.get("name")
    namespace = None if cluster_scoped else meta.get("namespace")
    role_ref = raw.get("roleRef")
    if not name:
        _drop(kind, "missing_name", uid=meta.get("uid", ""))
        return None
    if not cluster_scoped and not namespace:
        _drop(kind, "missing_namespace", name=name)
        return None
    if not isinstance(role_ref, Mapping) or not role_ref.get("name"):
        _drop(kind, "missing_role_ref", name=name)
        return None
    try:
        ref_kind = RoleKind(role_ref.get("kind", "ClusterRole" if cluster_scoped else "Role"))
    except ValueError:
        _drop(kind, "unknown_role_ref_kind", name=name, ref_kind=role_ref.get("kind"))
        return None
    if cluster_scoped and ref_kind is RoleKind.ROLE:
        _drop(kind, "cluster_binding_references_role", name=name)
        return None

    subjects = []
    for entry in _list(raw.get("subjects")):
        subject = parse_subject(entry, str(namespace) if namespace else None)
        if subject is not None:
            subjects.append(subject)

    return AccessBinding(
        name=str(name),
        namespace=str(namespace) if namespace else None,
        role_ref=RoleRef(kind=ref_kind, name=str(role_ref["name"])),
        subjects=tuple(subjects),
        uid=str(meta.get("uid", "")),
    )


def _container_state(status: Mapping[str, Any] | None) -> str:
    state = (status or {}).get("state") or {}
    if not isinstance(state, Mapping):
        return str(state) if state else "Unknown"
    if "running" in state:
        return "Running"
    for phase in ("waiting", "terminated"):
        if isinstance(state.get(phase), Mapping):
            return str(state[phase].get("reason", phase.capitalize()))
    return "Unknown"


def parse_workload(raw: object) -> WorkloadInstance | None:
    """Parse a Pod manifest or simplified pod record.

    Nameless pods are kept with an empty name; the graph builder decides
    to drop them so the diagnostic is attributed to graph construction.
    """
    if not isinstance(raw, Mapping):
        _drop("Pod", "not_a_mapping")
        return None
    meta = _metadata(raw)
    spec = _mapping(raw.get("spec"))
    status = _mapping(raw.get("status"))

    service_identity = spec.get("serviceAccountName") or spec.get("serviceAccount") or raw.get("serviceAccount")
    statuses = {
        str(cs.get("name")): cs for cs in _list(status.get("containerStatuses")) if isinstance(cs, Mapping)
    }
    containers = []
    for container in _list(spec.get("containers")) or _list(raw.get("containers")):
        if isinstance(container, Mapping):
            cname = str(container.get("name") or "unknown")
            image = str(container.get("image") or "unknown")
        else:
            cname, image = str(container), "unknown"
        cstatus = statuses.get(cname)
        containers.append(
            Container(
                name=cname,
                image=image,
                ready=bool((cstatus or {}).get("ready", False)),
                restart_count=_count((cstatus or {}).get("restartCount", raw.get("restarts"))),
                state=_container_state(cstatus),
            )
        )

    if isinstance(raw.get("status"), Mapping):
        phase = status.get("phase") or "Unknown"
    else:
        # Simplified records carry the phase as a plain string.
        phase = raw.get("status") or raw.get("phase") or "Unknown"

    return WorkloadInstance(
        name=str(meta.get("name") or ""),
        namespace=str(meta.get("namespace") or "default"),
        service_identity=str(service_identity) if service_identity else None,
        containers=tuple(containers),
        phase=str(phase),
        node_name=str(spec.get("nodeName") or raw.get("nodeName") or ""),
        pod_ip=str(status.get("podIP") or raw.get("podIP") or ""),
        host_ip=str(status.get("hostIP") or raw.get("hostIP") or ""),
        start_time=str(status.get("startTime") or meta.get("creationTimestamp") or ""),
        uid=str(meta.get("uid", "")),
    )


def _items(document: Mapping[str, Any], key: str) -> list[Any]:
    value = document.get(key)
    if value is None:
        return []
    if isinstance(value, Mapping) and "items" in value:
        value = value["items"]
    if not isinstance(value, list):
        raise SnapshotFormatError(f"'{key}' must be a list, got {type(value).__name__}")
    return value


def _collect(parsed: Iterable[Any]) -> list[Any]:
    return [p for p in parsed if p is not None]


def load_snapshot(document: object) -> ResourceSnapshot:
    """Build a ResourceSnapshot from a decoded manifest document.

    Raises:
        SnapshotFormatError: document is not a mapping or a list field is not a list.
    """
    if not isinstance(document, Mapping):
        raise SnapshotFormatError(f"Snapshot document must be a mapping, got {type(document).__name__}")

    pods = document.get("pods")
    workloads = None
    if pods is not None:
        workloads = _collect(parse_workload(p) for p in _items(document, "pods"))

    return ResourceSnapshot(
        cluster_roles=_collect(parse_role(r, cluster_scoped=True) for r in _items(document, "clusterRoles")),
        roles=_collect(parse_role(r, cluster_scoped=False) for r in _items(document, "roles")),
        cluster_bindings=_collect(
            parse_binding(b, cluster_scoped=True) for b in _items(document, "clusterRoleBindings")
        ),
        bindings=_collect(parse_binding(b, cluster_scoped=False) for b in _items(document, "roleBindings")),
        workloads=workloads,
        context=str(document.get("context") or "default"),
    )


def load_snapshot_file(path: str | Path) -> ResourceSnapshot:
    """Read a JSON or YAML snapshot file."""
    with open(path, encoding="utf-8") as fh:
        document = yaml.safe_load(fh)
    return load_snapshot(document)
