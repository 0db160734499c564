"""
Core utilities module.

Provides shared time and calendar helpers used across all layers.
"""

from taskpilot.core.utils.time import from_ms, parse_iso, to_iso, to_ms, utc_now

__all__ = ["from_ms", "parse_iso", "to_iso", "to_ms", "utc_now"]
