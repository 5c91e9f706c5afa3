"""Underutilized and stale cloud resource detection."""

__version__ = "0.1.0"
