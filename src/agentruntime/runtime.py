"""Agent runtime - wires store, engine, tracker, tools and sinks together."""

import logging
from typing import Any, Optional

from agentruntime.config import Settings, settings as default_settings
from agentruntime.engine import (
    DiagnosisService,
    ExecutionEngine,
    RevertService,
    TaskStore,
)
from agentruntime.events import (
    EventSink,
    FanoutEventSink,
    TimelineRecorder,
    WebhookEventSink,
    publish_safely,
)
from agentruntime.models import (
    Change,
    Reasoning,
    Task,
    TaskOutcome,
    TodoUpdated,
)
from agentruntime.planner import PlannerClient
from agentruntime.tasks import Scheduler
from agentruntime.tools import ToolInvoker, ToolRegistry, register_filesystem_tools
from agentruntime.tracking import InMemoryChangeTracker

logger = logging.getLogger("agentruntime")


def configure_logging(config: Optional[Settings] = None) -> None:
    """Configure root logging from settings."""
    config = config or default_settings
    level = logging.DEBUG if config.debug else getattr(logging, config.log_level.upper())
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


class AgentRuntime:
    """
    Central coordination layer for autonomous task execution.

    Usage:
        runtime = AgentRuntime()
        task_id = await runtime.queue_task(Task.new("Write notes", "notes.md exists"))
        outcome = await runtime.run_next()
        await runtime.revert_task_changes(task_id)
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        tools: Optional[ToolInvoker] = None,
        tracker: Optional[InMemoryChangeTracker] = None,
        sink: Optional[EventSink] = None,
        diagnosis: Optional[DiagnosisService] = None,
        planner: Optional[PlannerClient] = None,
    ):
        self.config = config or default_settings
        self.tracker = tracker or InMemoryChangeTracker()
        self.timeline = TimelineRecorder()

        sinks: list[EventSink] = [self.timeline]
        if sink is not None:
            sinks.append(sink)
        if self.config.event_webhook_url:
            sinks.append(WebhookEventSink(self.config))
        self.sink = FanoutEventSink(sinks)

        if tools is None:
            registry = ToolRegistry()
            register_filesystem_tools(registry, self.tracker, config=self.config)
            tools = registry
        self.tools = tools

        self.store = TaskStore(self.sink, self.config)
        self.engine = ExecutionEngine(
            self.store,
            self.tools,
            tracker=self.tracker,
            diagnosis=diagnosis,
            planner=planner,
            config=self.config,
        )
        self.reverter = RevertService(self.tracker, self.sink, self.config)
        self.scheduler = Scheduler(self.engine)

    # =========================================================================
    # Queue
    # =========================================================================

    async def queue_task(self, task: Task) -> str:
        return await self.store.enqueue(task)

    async def get_next_task(self) -> Optional[Task]:
        return await self.store.dequeue_next()

    async def execute_task(self, task: Task) -> TaskOutcome:
        return await self.engine.execute(task)

    async def run_next(self) -> Optional[TaskOutcome]:
        """Dequeue and execute one ready task; None when nothing is ready."""
        task = await self.store.dequeue_next()
        if task is None:
            return None
        return await self.engine.execute(task)

    async def cancel_task(self, task_id: str, reason: str) -> None:
        await self.store.cancel(task_id, reason)

    def get_task_status(self, task_id: str) -> Optional[Task]:
        return self.store.status_of(task_id)

    def get_all_tasks(self) -> list[Task]:
        return self.store.list_all()

    # =========================================================================
    # Changes
    # =========================================================================

    async def revert_task_changes(self, task_id: str) -> list[str]:
        return await self.reverter.revert_task(task_id)

    async def get_task_change_history(self, task_id: str) -> list[Change]:
        return await self.reverter.change_history(task_id)

    async def get_all_change_history(self) -> list[Change]:
        return await self.reverter.all_change_history()

    # =========================================================================
    # Timeline
    # =========================================================================

    async def emit_reasoning(
        self, task_id: str, thought: str, duration_ms: Optional[int] = None
    ) -> None:
        await publish_safely(
            self.sink,
            self.config.timeline_topic,
            Reasoning(task_id=task_id, thought=thought, duration_ms=duration_ms),
        )

    async def emit_todo_update(self, task_id: str, todos: list[tuple[str, str, str]]) -> None:
        """Publish a to-do list as (id, content, status) triples."""
        todo_list: list[dict[str, Any]] = [
            {"id": todo_id, "content": content, "status": status}
            for todo_id, content, status in todos
        ]
        await publish_safely(
            self.sink,
            self.config.timeline_topic,
            TodoUpdated(task_id=task_id, todos=todo_list),
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        await self.scheduler.start()
        logger.info("Agent runtime started")

    async def stop(self) -> None:
        await self.scheduler.stop()
        await self.engine.drain_background()
        for sink in self.sink.sinks:
            if isinstance(sink, WebhookEventSink):
                await sink.close()
        logger.info("Agent runtime stopped")
