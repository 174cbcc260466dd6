"""Execution engine - drives one task through the attempt loop."""

import asyncio
import logging
import re
from time import perf_counter
from typing import Any, Optional

from agentruntime.config import Settings, settings as default_settings
from agentruntime.engine.diagnosis import DiagnosisService, HeuristicDiagnosisService
from agentruntime.engine.store import TaskStore
from agentruntime.errors import AgentRuntimeError, InvocationError, ValidationError
from agentruntime.events.sink import publish_safely
from agentruntime.models import (
    Reasoning,
    StepCompleted,
    StepFailed,
    StepStarted,
    Task,
    TaskCompleted,
    TaskFailed,
    TaskOutcome,
    TaskStarted,
    TaskStatus,
    ToolCalled,
    ToolResult,
)
from agentruntime.models.events import TimelineEvent
from agentruntime.observability.metrics import metrics
from agentruntime.planner import Goal, GoalStatus, PlannerClient
from agentruntime.tools.registry import ToolInfo, ToolInvoker
from agentruntime.tracking.change_tracker import ChangeTracker
from agentruntime.utils.time import elapsed_ms, utc_now

logger = logging.getLogger(__name__)

CODE_TASK_KEYWORDS: tuple[str, ...] = (
    "create",
    "write",
    "implement",
    "add",
    "generate",
    "refactor",
    "fix",
    "update",
    "code",
    "function",
    "component",
    "file",
)
CODE_TOOL_KEYWORDS: tuple[str, ...] = ("code", "file", "write", "edit", "generate")
GENERIC_TOOL_KEYWORDS: tuple[str, ...] = ("file", "read", "write")

_WORD = re.compile(r"[a-z0-9]+")
_STOPWORDS = frozenset({"the", "and", "for", "with", "from", "into", "this", "that", "then"})


def _keywords(text: str) -> set[str]:
    return {w for w in _WORD.findall(text.lower()) if len(w) > 2 and w not in _STOPWORDS}


def is_code_task(description: str) -> bool:
    """Keyword test deciding whether a task is about producing code or files."""
    lowered = description.lower()
    return any(keyword in lowered for keyword in CODE_TASK_KEYWORDS)


def select_tools(task: Task, tools: list[ToolInfo], limit: int = 3) -> list[ToolInfo]:
    """Rank registered tools by keyword overlap with the task description.

    A tool is a candidate only if it shares a word with the task (via its
    id, description or capability tags). Code tasks then favour code/file
    tooling. Ties keep registration order.
    """
    description_words = _keywords(task.description)
    preferred = CODE_TOOL_KEYWORDS if is_code_task(task.description) else GENERIC_TOOL_KEYWORDS

    scored: list[tuple[int, int, ToolInfo]] = []
    for position, tool in enumerate(tools):
        tool_words = _keywords(tool.id) | _keywords(tool.description)
        tool_words.update(tool.capability_tags)
        overlap = len(description_words & tool_words)
        if not overlap:
            continue
        score = 2 * overlap + sum(1 for keyword in preferred if keyword in tool_words)
        scored.append((score, position, tool))

    scored.sort(key=lambda item: (-item[0], item[1]))
    return [tool for _, _, tool in scored[:limit]]


class ExecutionEngine:
    """Runs tasks with bounded retries and heuristic self-correction.

    Each call to ``execute`` is an independent coroutine; many may run at
    once against the same store. The engine never holds the store lock
    across a tool, planner, diagnosis or sleep await.
    """

    def __init__(
        self,
        store: TaskStore,
        tools: ToolInvoker,
        tracker: Optional[ChangeTracker] = None,
        diagnosis: Optional[DiagnosisService] = None,
        planner: Optional[PlannerClient] = None,
        config: Optional[Settings] = None,
    ):
        self.store = store
        self.tools = tools
        self.tracker = tracker
        self.config = config or default_settings
        self.diagnosis = diagnosis or HeuristicDiagnosisService(self.config.diagnosis_excerpt_chars)
        self.planner = planner
        self._background: set[asyncio.Task] = set()

    @property
    def sink(self):
        return self.store.sink

    # =========================================================================
    # Attempt loop
    # =========================================================================

    async def execute(self, task: Task) -> TaskOutcome:
        """Run a dequeued task to a terminal state and report the outcome."""
        task = await self.store.start(task)
        task_id = task.id
        started = perf_counter()

        await self._emit(TaskStarted(task_id=task_id, description=task.description))
        logger.info(f"Executing task: {task_id}")
        self._request_snapshot(task)

        attempt = 0
        last_error = ""
        while True:
            if not self.store.is_active(task_id):
                return self._cancelled_outcome(task, attempt)

            if attempt > 0:
                await self._correct(task, attempt, last_error)

            task.attempts = attempt + 1
            await self.store.record_attempt(task_id, task.attempts, task.corrections)
            metrics.inc_counter("task_attempts_total")
            await self._emit(
                StepStarted(
                    task_id=task_id,
                    step_index=attempt,
                    step_description=f"Attempt {attempt + 1} of {self.config.max_retries + 1}",
                )
            )

            try:
                value = await self._dispatch(task)
            except AgentRuntimeError as e:
                error = e
            except Exception as e:
                error = InvocationError(str(e) or e.__class__.__name__)
            else:
                return await self._complete(task, attempt, value, started)

            last_error = error.message
            await self._emit(StepFailed(task_id=task_id, step_index=attempt, error=last_error))
            attempt += 1

            if not self.store.is_active(task_id):
                return self._cancelled_outcome(task, attempt)

            give_up = attempt > self.config.max_retries
            if isinstance(error, ValidationError) and not self.config.retry_validation_errors:
                logger.warning(f"Validation error is not retried for task {task_id}: {last_error}")
                give_up = True
            if give_up:
                return await self._fail(task, attempt, last_error, started)

            logger.warning(f"Attempt {attempt} failed for task {task_id}: {last_error}")
            await asyncio.sleep(self.config.retry_backoff_seconds)

    async def _correct(self, task: Task, attempt: int, last_error: str) -> None:
        """Consult diagnosis and append its hint to the correction log."""
        await self._reason(
            task.id,
            f"Attempt {attempt}: Previous attempt failed. Error: {last_error}. "
            "Analyzing and correcting...",
        )
        diagnosed_at = utc_now()
        try:
            correction = await self.diagnosis.suggest_fix(task.goal, task.description, last_error)
        except Exception as e:
            logger.warning(f"Diagnosis failed for task {task.id}: {e}")
            correction = None
        if correction:
            task.corrections.append(correction)
            await self._reason(
                task.id,
                f"Correction plan: {correction}",
                duration_ms=elapsed_ms(diagnosed_at),
            )

    async def _complete(self, task: Task, attempt: int, value: Any, started: float) -> TaskOutcome:
        finished = await self.store.finish(task.id, TaskStatus.COMPLETED, result=value)
        if finished is None:
            logger.info(f"Task {task.id} was cancelled while running; discarding its result")
            return self._cancelled_outcome(task, attempt + 1)

        await self._emit(StepCompleted(task_id=task.id, step_index=attempt, result=value))
        await self._emit(TaskCompleted(task_id=task.id, result=value))
        metrics.inc_counter("tasks_completed_total")
        metrics.observe("task_duration_seconds", perf_counter() - started)

        if attempt > 0:
            logger.info(f"Task completed after {attempt} correction attempt(s): {task.id}")
        else:
            logger.info(f"Task completed: {task.id}")
        return TaskOutcome(
            task_id=task.id,
            status=TaskStatus.COMPLETED,
            result=value,
            attempts=attempt + 1,
            corrections=list(task.corrections),
        )

    async def _fail(self, task: Task, attempts: int, error: str, started: float) -> TaskOutcome:
        finished = await self.store.finish(task.id, TaskStatus.FAILED, error=error)
        if finished is None:
            return self._cancelled_outcome(task, attempts)

        await self._emit(TaskFailed(task_id=task.id, error=error))
        metrics.inc_counter("tasks_failed_total")
        metrics.observe("task_duration_seconds", perf_counter() - started)
        logger.error(f"Task failed after {attempts} attempts: {task.id} - {error}")
        return TaskOutcome(
            task_id=task.id,
            status=TaskStatus.FAILED,
            error=error,
            attempts=attempts,
            corrections=list(task.corrections),
        )

    def _cancelled_outcome(self, task: Task, attempts: int) -> TaskOutcome:
        metrics.inc_counter("tasks_cancelled_while_running_total")
        record = self.store.status_of(task.id)
        return TaskOutcome(
            task_id=task.id,
            status=TaskStatus.CANCELLED,
            error=record.error if record else None,
            attempts=attempts,
            corrections=list(task.corrections),
        )

    # =========================================================================
    # Dispatch
    # =========================================================================

    async def _dispatch(self, task: Task) -> Any:
        if self.planner is not None:
            return await self._execute_via_planner(task)
        return await self._execute_locally(task)

    async def _execute_locally(self, task: Task) -> Any:
        code_task = is_code_task(task.description)
        if code_task:
            await self._reason(
                task.id,
                f"Detected code-related task: {task.description}. Analyzing requirements...",
            )

        available = self.tools.list_tools()
        candidates = select_tools(task, available, limit=self.config.max_tool_candidates)
        await self._reason(
            task.id,
            f"Found {len(available)} tools available; selected {len(candidates)} candidate(s)",
        )

        if not candidates:
            await self._reason(task.id, "No specific tools found. Using general execution approach...")
            return {
                "status": "success",
                "message": f"Task '{task.description}' executed (general mode)",
                "task_id": task.id,
                "type": "code_generation" if code_task else "general",
            }

        tool = candidates[0]
        arguments = {
            **task.metadata.get("tool_args", {}),
            "task_id": task.id,
            "task": task.description,
            "goal": task.goal,
            "corrections": list(task.corrections),
        }
        await self._emit(ToolCalled(task_id=task.id, tool_name=tool.id, arguments=arguments))

        try:
            value = await self.tools.execute(tool.id, arguments)
        except Exception as e:
            message = e.message if isinstance(e, AgentRuntimeError) else str(e)
            await self._emit(
                ToolResult(task_id=task.id, tool_name=tool.id, success=False, error=message)
            )
            if isinstance(e, AgentRuntimeError):
                raise
            raise InvocationError(f"Tool execution failed: {message}", tool_id=tool.id) from e

        await self._emit(
            ToolResult(task_id=task.id, tool_name=tool.id, success=True, result=value)
        )
        return {
            "status": "success",
            "message": f"Task executed using tool: {tool.id}",
            "task_id": task.id,
            "tool": tool.id,
            "output": value,
        }

    async def _execute_via_planner(self, task: Task) -> Any:
        goal = Goal(
            task_id=task.id,
            description=task.description,
            goal=task.goal,
            priority=task.priority.value,
            constraints=list(task.corrections),
            metadata=dict(task.metadata),
        )
        try:
            goal_id = await self.planner.submit_goal(goal)
        except Exception as e:
            raise InvocationError(f"Planner rejected goal: {e}") from e
        await self._reason(task.id, f"Delegated goal to planner: {goal_id}")

        if not self.config.planner_wait_for_completion:
            return {"status": "submitted", "goal_id": goal_id, "task_id": task.id}

        status = await self._await_planner(task, goal_id)
        for tool_result in status.tool_results:
            await self._emit(
                ToolResult(
                    task_id=task.id,
                    tool_name=tool_result.tool_id,
                    success=tool_result.success,
                    result=tool_result.result,
                    error=tool_result.error,
                )
            )

        failures = [r for r in status.tool_results if not r.success]
        if failures:
            first = failures[0]
            raise InvocationError(
                f"Planner tool {first.tool_id} failed: {first.error or 'unknown error'}",
                tool_id=first.tool_id,
            )
        return {
            "status": "success",
            "goal_id": goal_id,
            "task_id": task.id,
            "tool_results": [r.model_dump(mode="json") for r in status.tool_results],
            "execution_time_ms": sum(r.execution_time_ms for r in status.tool_results),
        }

    async def _await_planner(self, task: Task, goal_id: str) -> GoalStatus:
        """Poll until the planner reports completion or the ceiling elapses.

        The ceiling also bounds each status call, so a planner that never
        answers cannot hold the attempt open.
        """
        loop = asyncio.get_running_loop()
        timeout = self.config.planner_timeout_seconds
        deadline = loop.time() + timeout
        while True:
            if not self.store.is_active(task.id):
                raise InvocationError(f"Task {task.id} cancelled while waiting for planner")
            remaining = max(0.0, deadline - loop.time())
            try:
                status = await asyncio.wait_for(
                    self.planner.get_goal_status(goal_id), timeout=remaining
                )
            except asyncio.TimeoutError:
                raise InvocationError(
                    f"Planner goal {goal_id} timed out after {timeout:g}s"
                ) from None
            if status is not None and status.completed:
                return status
            if loop.time() >= deadline:
                raise InvocationError(
                    f"Planner goal {goal_id} timed out after {timeout:g}s"
                )
            await asyncio.sleep(
                min(self.config.planner_poll_interval_seconds, deadline - loop.time())
            )

    # =========================================================================
    # Snapshot and events
    # =========================================================================

    def _request_snapshot(self, task: Task) -> None:
        """Fire-and-forget snapshot; a late or failed snapshot never blocks the task."""
        if self.tracker is None or not self.config.snapshot_enabled:
            return
        root = self.config.resolve_working_dir(task.metadata.get("working_dir"))
        job = asyncio.create_task(self._snapshot(task.id, root))
        self._background.add(job)
        job.add_done_callback(self._background.discard)

    async def _snapshot(self, task_id: str, root) -> None:
        try:
            await self.tracker.create_snapshot(task_id, root)
        except Exception as e:
            logger.warning(f"Snapshot failed for task {task_id}: {e}")

    async def drain_background(self) -> None:
        """Wait for outstanding snapshot jobs."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    async def _reason(self, task_id: str, thought: str, duration_ms: Optional[int] = None) -> None:
        await self._emit(Reasoning(task_id=task_id, thought=thought, duration_ms=duration_ms))

    async def _emit(self, event: TimelineEvent) -> None:
        await publish_safely(self.sink, self.config.timeline_topic, event)
