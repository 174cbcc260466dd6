"""Side-effect tracking."""

from agentruntime.tracking.change_tracker import ChangeTracker, InMemoryChangeTracker

__all__ = ["ChangeTracker", "InMemoryChangeTracker"]
