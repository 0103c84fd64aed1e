"""REST API layer for RBACViz.

Exposes:
    create_app -- FastAPI application factory.
"""

from rbacviz.api.app import create_app

__all__ = ["create_app"]
