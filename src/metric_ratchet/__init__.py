"""Metric ratchet: keep a numeric metric moving in one direction between branches."""

__version__ = "0.1.0"

__all__ = ["__version__"]
