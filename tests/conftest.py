"""Session-wide test configuration."""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

import pytest
import structlog
from structlog.testing import capture_logs


@pytest.fixture(autouse=True)
def log_output() -> Iterator[list[dict[str, Any]]]:
    """Capture structlog events instead of printing them.

    Tests that assert on diagnostics request this fixture by name.
    """
    with capture_logs() as entries:
        yield entries


@pytest.fixture()
def reset_structlog() -> Iterator[None]:
    """Restore structlog defaults after a test that calls ``setup_logging``."""
    yield
    structlog.reset_defaults()
