"""Tests for environment configuration and logging setup."""

from __future__ import annotations

import json

import pytest
import structlog

from rbacviz.config import load_config
from rbacviz.models.config import LayoutDirection
from rbacviz.observability.logging import get_logger, setup_logging


class TestLoadConfig:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for key in ("LOG_LEVEL", "LAYOUT_DIRECTION", "CACHE_MAX_ENTRIES", "SYSTEM_ROLE_PREFIX"):
            monkeypatch.delenv(f"RBACVIZ_{key}", raising=False)
        config = load_config()
        assert config.layout.direction is LayoutDirection.TOP_TO_BOTTOM
        assert config.layout.crossing_passes == 4
        assert config.graph.system_role_prefix == "system:"
        assert config.cache.max_entries == 32
        assert config.log.level == "info"

    def test_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RBACVIZ_LAYOUT_DIRECTION", "left-to-right")
        monkeypatch.setenv("RBACVIZ_LAYOUT_NODE_SEPARATION", "120.5")
        monkeypatch.setenv("RBACVIZ_DEFAULT_SERVICE_ACCOUNT", "builder")
        monkeypatch.setenv("RBACVIZ_LOG_LEVEL", "DEBUG")
        config = load_config()
        assert config.layout.direction is LayoutDirection.LEFT_TO_RIGHT
        assert config.layout.node_separation == 120.5
        assert config.graph.default_service_account == "builder"
        assert config.log.level == "debug"

    def test_integers_are_clamped(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RBACVIZ_LAYOUT_ORPHAN_COLUMNS", "0")
        monkeypatch.setenv("RBACVIZ_LAYOUT_CROSSING_PASSES", "500")
        monkeypatch.setenv("RBACVIZ_CACHE_MAX_ENTRIES", "-3")
        config = load_config()
        assert config.layout.orphan_columns == 1
        assert config.layout.crossing_passes == 24
        assert config.cache.max_entries == 1

    def test_negative_separation_clamped(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RBACVIZ_LAYOUT_RANK_SEPARATION", "-10")
        assert load_config().layout.rank_separation == 0.0

    @pytest.mark.parametrize(
        ("key", "value"),
        [
            ("LOG_LEVEL", "verbose"),
            ("LAYOUT_DIRECTION", "diagonal"),
            ("SYSTEM_ROLE_PREFIX", "  "),
            ("CACHE_MAX_ENTRIES", "lots"),
        ],
    )
    def test_invalid_values_raise(self, monkeypatch: pytest.MonkeyPatch, key: str, value: str) -> None:
        monkeypatch.setenv(f"RBACVIZ_{key}", value)
        with pytest.raises(ValueError):
            load_config()


@pytest.mark.usefixtures("reset_structlog")
class TestSetupLogging:
    def test_json_lines_on_stderr(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging("info")
        get_logger("test").info("graph_rendered", nodes=3)
        line = capsys.readouterr().err.strip().splitlines()[-1]
        record = json.loads(line)
        assert record["event"] == "graph_rendered"
        assert record["component"] == "test"
        assert record["nodes"] == 3
        assert record["level"] == "info"
        assert "ts" in record

    def test_level_filters(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging("warning")
        get_logger("test").info("hidden")
        assert "hidden" not in capsys.readouterr().err

    def test_console_output(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging("info", json_output=False)
        structlog.get_logger(component="test").warning("record_dropped", kind="Pod")
        err = capsys.readouterr().err
        assert "record_dropped" in err
        assert "kind=Pod" in err
