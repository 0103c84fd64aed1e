"""RBACViz command-line interface.

Exposes:
    cli -- Click group entry point (registered as ``rbacviz`` script).
"""

from rbacviz.cli.main import cli

__all__ = ["cli"]
