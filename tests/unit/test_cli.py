"""Tests for the ``rbacviz`` click commands."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner

from rbacviz.cli import main as cli_main
from rbacviz.cli.main import cli

_SNAPSHOT = {
    "context": "staging",
    "clusterRoles": [
        {"metadata": {"name": "view"}, "rules": [{"verbs": ["get"], "resources": ["pods"]}]},
        {"metadata": {"name": "system:auth-delegator"}, "rules": [{"verbs": ["create"], "resources": ["tokenreviews"]}]},
    ],
    "roles": [
        {"metadata": {"name": "deployer", "namespace": "apps"}, "rules": [{"verbs": ["create"], "resources": ["jobs"]}]}
    ],
    "clusterRoleBindings": [
        {
            "metadata": {"name": "devs-view"},
            "roleRef": {"kind": "ClusterRole", "name": "view"},
            "subjects": [{"kind": "Group", "name": "devs"}],
        }
    ],
    "roleBindings": [
        {
            "metadata": {"name": "ci-deployer", "namespace": "apps"},
            "roleRef": {"kind": "Role", "name": "deployer"},
            "subjects": [{"kind": "ServiceAccount", "name": "ci"}],
        }
    ],
    "pods": [{"metadata": {"name": "runner", "namespace": "apps"}, "spec": {"serviceAccountName": "ci"}}],
}


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    # Keep the capture_logs processors installed by the shared fixture.
    monkeypatch.setattr(cli_main, "setup_logging", lambda *_args, **_kwargs: None)


@pytest.fixture
def snapshot_file(tmp_path: Path) -> Path:
    path = tmp_path / "snapshot.yaml"
    path.write_text(yaml.safe_dump(_SNAPSHOT), encoding="utf-8")
    return path


def _invoke(*args: str) -> tuple[int, str]:
    result = CliRunner().invoke(cli, list(args))
    return result.exit_code, result.output


class TestGraphCommand:
    def test_renders_json(self, snapshot_file: Path) -> None:
        code, output = _invoke("graph", str(snapshot_file))
        assert code == 0, output
        document = json.loads(output)
        ids = {n["id"] for n in document["nodes"]}
        assert "role:Role:apps:deployer" in ids
        assert not any("system:auth-delegator" in i for i in ids)
        assert all(n["position"] is not None for n in document["nodes"])

    def test_identity_filter(self, snapshot_file: Path) -> None:
        code, output = _invoke(
            "graph", str(snapshot_file), "--filter-type", "identity", "--filter-value", "apps/ci", "--no-workloads"
        )
        assert code == 0, output
        kinds = {n["kind"] for n in json.loads(output)["nodes"]}
        assert kinds == {"role", "binding", "subject"}

    def test_system_roles_toggle(self, snapshot_file: Path) -> None:
        _, output = _invoke("graph", str(snapshot_file), "--system-roles", "--compact")
        assert "system:auth-delegator" in output
        assert len(output.strip().splitlines()) == 1

    def test_left_to_right(self, snapshot_file: Path) -> None:
        _, output = _invoke("graph", str(snapshot_file), "--direction", "LR", "--no-workloads", "--no-users")
        nodes = {n["id"]: n["position"] for n in json.loads(output)["nodes"]}
        role = nodes["role:Role:apps:deployer"]
        binding = nodes["binding:RoleBinding:apps:ci-deployer"]
        assert role["x"] < binding["x"]

    def test_output_file(self, snapshot_file: Path, tmp_path: Path) -> None:
        target = tmp_path / "graph.json"
        code, output = _invoke("graph", str(snapshot_file), "-o", str(target))
        assert code == 0
        assert output == ""
        assert json.loads(target.read_text(encoding="utf-8"))["nodes"]

    def test_invalid_filter_type(self, snapshot_file: Path) -> None:
        code, output = _invoke("graph", str(snapshot_file), "--filter-type", "namespace")
        assert code == 2
        assert "namespace" in output

    def test_malformed_snapshot(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.yaml"
        path.write_text("roles: not-a-list\n", encoding="utf-8")
        code, output = _invoke("graph", str(path))
        assert code == 1
        assert "'roles' must be a list" in output

    def test_unparseable_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.yaml"
        path.write_text("roles: [unclosed\n", encoding="utf-8")
        code, _ = _invoke("graph", str(path))
        assert code == 1

    def test_invalid_environment(self, snapshot_file: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RBACVIZ_LAYOUT_DIRECTION", "diagonal")
        code, _ = _invoke("graph", str(snapshot_file))
        assert code == 1


class TestMatrixCommand:
    def test_rows(self, snapshot_file: Path) -> None:
        code, output = _invoke("matrix", str(snapshot_file))
        assert code == 0, output
        document = json.loads(output)
        assert document["total"] == 2
        assert {r["subject"] for r in document["permissions"]} == {"Group:devs", "ServiceAccount:ci"}

    def test_namespace_filter(self, snapshot_file: Path) -> None:
        _, output = _invoke("matrix", str(snapshot_file), "-n", "other")
        assert [r["role"] for r in json.loads(output)["permissions"]] == ["view"]
