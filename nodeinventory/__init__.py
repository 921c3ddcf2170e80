"""Kubernetes node inventory collector."""

__version__ = "0.3.0"
