"""Agent fleet orchestrator with snapshot-based recovery."""

__version__ = "0.1.0"
