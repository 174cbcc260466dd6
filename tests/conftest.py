"""
Pytest fixtures for agent runtime tests.
"""

import os

import pytest

# Ensure test config is set before importing agentruntime modules.
os.environ.setdefault("AGENTRUNTIME_RETRY_BACKOFF_SECONDS", "0")
os.environ.setdefault("AGENTRUNTIME_SNAPSHOT_ENABLED", "false")

from agentruntime.config import Settings
from agentruntime.engine import ExecutionEngine, RevertService, TaskStore
from agentruntime.events import TimelineRecorder
from agentruntime.observability.metrics import metrics
from agentruntime.tools import ToolRegistry
from agentruntime.tracking import InMemoryChangeTracker

pytest_plugins = ("pytest_asyncio",)


@pytest.fixture
def config() -> Settings:
    """Settings with no backoff and no snapshots."""
    return Settings(
        _env_file=None,
        retry_backoff_seconds=0,
        snapshot_enabled=False,
        planner_poll_interval_seconds=0,
        scheduler_poll_interval_seconds=0.01,
    )


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def recorder() -> TimelineRecorder:
    return TimelineRecorder()


@pytest.fixture
def store(recorder, config) -> TaskStore:
    return TaskStore(recorder, config)


@pytest.fixture
def registry() -> ToolRegistry:
    return ToolRegistry()


@pytest.fixture
def tracker() -> InMemoryChangeTracker:
    return InMemoryChangeTracker()


@pytest.fixture
def engine(store, registry, tracker, config) -> ExecutionEngine:
    return ExecutionEngine(store, registry, tracker=tracker, config=config)


@pytest.fixture
def reverter(tracker, recorder, config) -> RevertService:
    return RevertService(tracker, recorder, config)
