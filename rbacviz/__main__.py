"""Entry point for `python -m rbacviz`.

Usage:
    python -m rbacviz graph snapshot.yaml --filter-type identity --filter-value payments/api
"""

from __future__ import annotations

from rbacviz.cli import cli

cli()
