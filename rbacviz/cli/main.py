"""Click entry point for ``rbacviz``.

Commands:
    graph   Render the positioned access graph of a snapshot file as JSON.
    matrix  Print the flat permission matrix of a snapshot file as JSON.
    serve   Run the REST API under uvicorn.
"""

from __future__ import annotations

import json
from dataclasses import replace
from typing import Any

import click
import yaml

from rbacviz.config import load_config
from rbacviz.graph.filters import FilterState, FilterType
from rbacviz.graph.permissions import permission_matrix
from rbacviz.graph.pipeline import GraphPipeline
from rbacviz.models.config import LayoutDirection, RBACVizConfig
from rbacviz.models.resources import ResourceSnapshot
from rbacviz.observability.logging import get_logger, setup_logging
from rbacviz.snapshot import SnapshotFormatError, load_snapshot_file


def _load(path: str) -> ResourceSnapshot:
    try:
        return load_snapshot_file(path)
    except (SnapshotFormatError, yaml.YAMLError) as exc:
        raise click.ClickException(f"{path}: {exc}") from exc


def _emit(document: Any, output: str | None, indent: int | None) -> None:
    text = json.dumps(document, indent=indent)
    if output:
        with open(output, "w", encoding="utf-8") as fh:
            fh.write(text + "\n")
    else:
        click.echo(text)


@click.group()
@click.version_option(package_name="rbacviz")
@click.option("--log-level", default=None, help="Override RBACVIZ_LOG_LEVEL.")
@click.pass_context
def cli(ctx: click.Context, log_level: str | None) -> None:
    """RBACViz: Kubernetes RBAC access-relationship graphs.

    \b
    Quick Start:
      rbacviz graph snapshot.yaml --filter-type identity --filter-value payments/api
      rbacviz matrix snapshot.yaml --namespace payments
      rbacviz serve --port 8080
    """
    try:
        config = load_config()
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc
    if log_level:
        config.log.level = log_level.lower()
    # JSON goes to stdout, diagnostics to stderr as console text.
    setup_logging(config.log.level, json_output=False)
    ctx.obj = config


@cli.command()
@click.argument("snapshot", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--filter-type",
    type=click.Choice([t.value for t in FilterType], case_sensitive=False),
    default=None,
    help="What --filter-value names.",
)
@click.option("--filter-value", default=None, help="Selection, e.g. 'payments/api' or 'User:alice'.")
@click.option("--search", "search_term", default=None, help="Case-insensitive substring of role or pod names.")
@click.option("-n", "--namespace", "namespace_scope", default=None, help="Namespace scope ('all' for every namespace).")
@click.option("--bindings/--no-bindings", default=True, show_default=True)
@click.option("--service-accounts/--no-service-accounts", default=True, show_default=True)
@click.option("--users/--no-users", default=True, show_default=True)
@click.option("--groups/--no-groups", default=True, show_default=True)
@click.option("--system-roles/--no-system-roles", default=False, show_default=True)
@click.option("--workloads/--no-workloads", default=True, show_default=True)
@click.option("--direction", type=click.Choice(["TB", "LR"], case_sensitive=False), default=None)
@click.option("--expand", multiple=True, help="Node id drawn with its expanded footprint (repeatable).")
@click.option("-o", "--output", default=None, type=click.Path(dir_okay=False), help="Write to file instead of stdout.")
@click.option("--compact", is_flag=True, help="Single-line JSON.")
@click.pass_obj
def graph(
    config: RBACVizConfig,
    snapshot: str,
    filter_type: str | None,
    filter_value: str | None,
    search_term: str | None,
    namespace_scope: str | None,
    bindings: bool,
    service_accounts: bool,
    users: bool,
    groups: bool,
    system_roles: bool,
    workloads: bool,
    direction: str | None,
    expand: tuple[str, ...],
    output: str | None,
    compact: bool,
) -> None:
    """Render the positioned access graph of SNAPSHOT."""
    log = get_logger("cli")
    resources = _load(snapshot)
    state = FilterState(
        filter_type=FilterType.parse(filter_type) if filter_type else None,
        filter_value=filter_value,
        search_term=search_term,
        namespace_scope=namespace_scope,
        show_bindings=bindings,
        show_service_identities=service_accounts,
        show_users=users,
        show_groups=groups,
        show_system_roles=system_roles,
        show_workloads=workloads,
    )
    layout = config.layout
    if direction:
        layout = replace(layout, direction=LayoutDirection.parse(direction))

    pipeline = GraphPipeline(graph_config=config.graph, layout_config=layout, max_entries=1)
    result = pipeline.render(resources, state, expanded=expand)
    log.info("graph_rendered", snapshot=snapshot, nodes=len(result.nodes), edges=len(result.edges))
    _emit(result.to_dict(), output, None if compact else 2)


@cli.command()
@click.argument("snapshot", type=click.Path(exists=True, dir_okay=False))
@click.option("-n", "--namespace", default=None, help="Limit RoleBindings to one namespace.")
@click.option("-o", "--output", default=None, type=click.Path(dir_okay=False))
def matrix(snapshot: str, namespace: str | None, output: str | None) -> None:
    """Print who can do what in SNAPSHOT, one row per subject and rule."""
    entries = permission_matrix(_load(snapshot), namespace)
    rows = [
        {
            "subject": e.subject,
            "namespace": e.namespace,
            "role": e.role,
            "verbs": list(e.verbs),
            "resources": list(e.resources),
        }
        for e in entries
    ]
    _emit({"permissions": rows, "total": len(rows)}, output, 2)


@cli.command()
@click.option("--host", default="0.0.0.0", show_default=True)
@click.option("--port", type=int, default=None, help="Override RBACVIZ_API_PORT.")
@click.pass_obj
def serve(config: RBACVizConfig, host: str, port: int | None) -> None:
    """Run the REST API."""
    import uvicorn

    from rbacviz.api.app import create_app

    if port is not None:
        config.api.port = port
    # The server logs JSON lines.
    setup_logging(config.log.level, json_output=True)
    log = get_logger("cli")
    log.info("rest_api_starting", host=host, port=config.api.port)
    uvicorn.run(
        create_app(config=config),
        host=host,
        port=config.api.port,
        log_config=None,
        access_log=False,
    )
