"""Observability helpers for the agent runtime."""

from agentruntime.observability.metrics import metrics

__all__ = ["metrics"]
