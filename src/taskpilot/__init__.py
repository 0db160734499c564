"""Taskpilot - rule and schedule automation engine for task entities."""

__version__ = "0.1.0"
