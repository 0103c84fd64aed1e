"""RBACViz -- access-relationship graphs and layered layout for Kubernetes RBAC."""

__version__ = "0.1.0"
