"""Logging and metrics for RBACViz."""
