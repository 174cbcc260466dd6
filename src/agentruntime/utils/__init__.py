"""Shared helpers."""

from agentruntime.utils.time import elapsed_ms, utc_now

__all__ = ["elapsed_ms", "utc_now"]
