"""Route handlers for the RBACViz REST API.

Every endpoint takes the resource snapshot in the request body, so the
server holds no cluster state beyond the render memo on ``app.state``.
The RBAC handlers are plain functions: FastAPI runs them in its threadpool,
so a large render does not block the event loop.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Any

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from rbacviz import __version__
from rbacviz.api.schemas import (
    ErrorResponse,
    GraphRequest,
    GraphResponse,
    HealthResponse,
    MatrixRequest,
    MatrixResponse,
    PermissionEntryModel,
    RoleDetailsRequest,
    SubjectPermissionsRequest,
)
from rbacviz.graph.permissions import permission_matrix, role_details, subject_permissions
from rbacviz.graph.pipeline import GraphPipeline
from rbacviz.models.resources import AccessBinding, RoleKind, SubjectKind
from rbacviz.snapshot import load_snapshot

_log = structlog.get_logger(component="api.routes")

router = APIRouter()


def _binding_dict(binding: AccessBinding) -> dict[str, Any]:
    return {
        "kind": binding.kind.value,
        "name": binding.name,
        "namespace": binding.namespace,
        "roleRef": {"kind": binding.role_ref.kind.value, "name": binding.role_ref.name},
        "subjects": [
            {"kind": s.kind.value, "name": s.name, "namespace": s.namespace} for s in binding.subjects
        ],
    }


def _parse_kind(enum: type[RoleKind] | type[SubjectKind], value: str) -> Any:
    try:
        return enum(value)
    except ValueError:
        allowed = ", ".join(k.value for k in enum)
        raise ValueError(f"Invalid kind: {value}. Must be one of {allowed}") from None


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(status="ok", version=__version__)


@router.post("/rbac/graph", response_model=GraphResponse)
def rbac_graph(request: Request, body: GraphRequest) -> GraphResponse:
    """Filter, build and lay out the access graph for one snapshot."""
    pipeline: GraphPipeline = request.app.state.pipeline
    snapshot = load_snapshot(body.resources)
    state = body.filters.to_state()
    layout = body.layout.apply_to(pipeline.layout_config) if body.layout else None

    graph = pipeline.render(snapshot, state, layout=layout, expanded=body.expanded)
    document = graph.to_dict()
    _log.info(
        "graph_served",
        context=snapshot.context,
        filter_type=state.filter_type,
        nodes=len(graph.nodes),
        edges=len(graph.edges),
    )
    return GraphResponse(
        nodes=document["nodes"],
        edges=document["edges"],
        context=snapshot.context,
        node_count=len(graph.nodes),
        edge_count=len(graph.edges),
    )


@router.post("/rbac/permissions/matrix", response_model=MatrixResponse)
def rbac_permission_matrix(body: MatrixRequest) -> MatrixResponse:
    snapshot = load_snapshot(body.resources)
    entries = permission_matrix(snapshot, body.namespace or None)
    return MatrixResponse(
        permissions=[
            PermissionEntryModel(
                subject=e.subject,
                namespace=e.namespace,
                role=e.role,
                verbs=list(e.verbs),
                resources=list(e.resources),
            )
            for e in entries
        ],
        total=len(entries),
    )


@router.post("/rbac/roles/details", response_model=None)
def rbac_role_details(body: RoleDetailsRequest) -> dict[str, Any] | JSONResponse:
    """Return a role, its effective rules and the bindings that reference it."""
    kind = _parse_kind(RoleKind, body.kind)
    snapshot = load_snapshot(body.resources)
    details = role_details(snapshot, kind, body.name, body.namespace or None)
    if details is None:
        return JSONResponse(
            status_code=404,
            content=ErrorResponse(
                error="ROLE_NOT_FOUND",
                detail=f"{kind.value} {body.name} not found",
            ).model_dump(),
        )
    role = details.role
    return {
        "kind": role.kind.value,
        "name": role.name,
        "namespace": role.namespace,
        "labels": dict(role.labels),
        "rules": [asdict(rule) for rule in role.rules],
        "effectiveRules": [asdict(rule) for rule in details.effective.rules],
        "aggregatedFrom": list(details.effective.aggregated_from),
        "bindings": [_binding_dict(b) for b in details.bindings],
    }


@router.post("/rbac/subjects/permissions", response_model=None)
def rbac_subject_permissions(body: SubjectPermissionsRequest) -> dict[str, Any]:
    kind = _parse_kind(SubjectKind, body.kind)
    snapshot = load_snapshot(body.resources)
    result = subject_permissions(snapshot, kind, body.name, body.namespace or None)
    return {
        "subject": result.subject,
        "kind": result.kind.value,
        "permissions": [
            {
                "role": p.role,
                "roleKind": p.role_kind.value,
                "namespace": p.namespace,
                "rules": [asdict(rule) for rule in p.rules],
                "bindingName": p.binding_name,
                "bindingKind": p.binding_kind,
            }
            for p in result.permissions
        ],
    }
