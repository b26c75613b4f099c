"""Safely drains cordoned Kubernetes nodes of single-replica workloads."""

__version__ = "0.1.0"
