"""
AgentRuntime and Scheduler tests - end-to-end flows over the default tools.
"""

import asyncio

import pytest

from agentruntime import AgentRuntime, Task, TaskPriority, TaskStatus
from agentruntime.events import TimelineRecorder, WebhookEventSink
from agentruntime.models import parse_timeline_event
from agentruntime.tools import ToolRegistry


@pytest.fixture
def runtime(config, tmp_path) -> AgentRuntime:
    return AgentRuntime(config=config.model_copy(update={"working_dir": tmp_path}))


@pytest.mark.asyncio
async def test_write_task_then_revert(runtime, tmp_path):
    task = Task.new(
        "Write the release notes file",
        "NOTES.md exists",
        metadata={"tool_args": {"path": "NOTES.md", "content": "v1.0"}},
    )
    task_id = await runtime.queue_task(task)

    outcome = await runtime.run_next()

    assert outcome.status == TaskStatus.COMPLETED
    assert outcome.result["tool"] == "write_file"
    assert (tmp_path / "NOTES.md").read_text() == "v1.0"

    history = await runtime.get_task_change_history(task_id)
    assert len(history) == 1

    reverted = await runtime.revert_task_changes(task_id)
    assert reverted == [history[0].id]
    assert not (tmp_path / "NOTES.md").exists()
    assert await runtime.revert_task_changes(task_id) == []


@pytest.mark.asyncio
async def test_run_next_with_empty_queue(runtime):
    assert await runtime.run_next() is None
    assert await runtime.get_next_task() is None


@pytest.mark.asyncio
async def test_dependency_chain_runs_in_order(runtime):
    a = Task.new("ponder quietly", "first", TaskPriority.HIGH)
    b = Task.new("ponder again", "second", TaskPriority.LOW, dependencies=[a.id])
    await runtime.queue_task(b)
    await runtime.queue_task(a)

    outcomes = await runtime.scheduler.run_until_idle()

    assert outcomes[a.id].status == TaskStatus.COMPLETED
    assert outcomes[b.id].status == TaskStatus.COMPLETED
    done_a = runtime.get_task_status(a.id)
    done_b = runtime.get_task_status(b.id)
    assert done_b.started_at >= done_a.completed_at


@pytest.mark.asyncio
async def test_cancelled_pending_task_never_runs(runtime):
    task = Task.new("ponder quietly", "x")
    await runtime.queue_task(task)
    await runtime.cancel_task(task.id, "not needed")

    assert await runtime.run_next() is None
    assert runtime.get_task_status(task.id).status == TaskStatus.CANCELLED
    assert [t.id for t in runtime.get_all_tasks()] == [task.id]


@pytest.mark.asyncio
async def test_background_scheduler_drains_queue(runtime):
    tasks = [Task.new(f"ponder item {i}", "x") for i in range(3)]
    for task in tasks:
        await runtime.queue_task(task)

    await runtime.start()
    try:
        for _ in range(200):
            if len(runtime.scheduler.outcomes) == 3:
                break
            await asyncio.sleep(0.01)
    finally:
        await runtime.stop()

    assert set(runtime.scheduler.outcomes) == {t.id for t in tasks}
    assert all(o.ok for o in runtime.scheduler.outcomes.values())
    assert not runtime.scheduler.is_running


@pytest.mark.asyncio
async def test_scheduler_respects_concurrency_limit(config, tmp_path):
    running = 0
    peak = 0

    async def slow(args):
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.01)
        running -= 1
        return "ok"

    registry = ToolRegistry()
    registry.register("deploy_service", slow, description="Deploy a service")
    runtime = AgentRuntime(
        config=config.model_copy(update={"max_concurrent_tasks": 2}), tools=registry
    )
    for i in range(5):
        await runtime.queue_task(Task.new(f"deploy service {i}", "live"))

    outcomes = await runtime.scheduler.run_until_idle()

    assert len(outcomes) == 5
    assert peak == 2


@pytest.mark.asyncio
async def test_emit_reasoning_and_todo_update(runtime):
    await runtime.emit_reasoning("t1", "thinking", duration_ms=12)
    await runtime.emit_todo_update(
        "t1",
        [("1", "Read inputs", "completed"), ("2", "Write output", "in_progress")],
    )

    reasoning, todo = runtime.timeline.events_for("t1")
    assert reasoning.thought == "thinking"
    assert reasoning.duration_ms == 12
    assert todo.type == "todo_updated"
    assert todo.todos == [
        {"id": "1", "content": "Read inputs", "status": "completed"},
        {"id": "2", "content": "Write output", "status": "in_progress"},
    ]
    assert runtime.timeline.topics() == {"agent://timeline"}


@pytest.mark.asyncio
async def test_extra_sink_receives_events_and_failures_are_contained(config, tmp_path):
    class BrokenSink:
        async def publish(self, topic, event):
            raise RuntimeError("sink down")

    extra = TimelineRecorder()
    broken_first = AgentRuntime(config=config, sink=BrokenSink())
    broken_first.sink.sinks.append(extra)

    task = Task.new("ponder quietly", "x")
    await broken_first.queue_task(task)
    outcome = await broken_first.run_next()

    assert outcome.ok
    assert extra.types_for(task.id) == broken_first.timeline.types_for(task.id)


@pytest.mark.asyncio
async def test_timeline_events_serialize_round_trip(runtime):
    task = Task.new("ponder quietly", "x")
    await runtime.queue_task(task)
    await runtime.run_next()

    for event in runtime.timeline.events_for(task.id):
        parsed = parse_timeline_event(event.model_dump(mode="json"))
        assert parsed.type == event.type
        assert parsed.task_id == task.id


@pytest.mark.asyncio
async def test_webhook_sink_added_when_configured(config):
    runtime = AgentRuntime(
        config=config.model_copy(update={"event_webhook_url": "http://hooks.test/events"})
    )

    webhooks = [s for s in runtime.sink.sinks if isinstance(s, WebhookEventSink)]
    assert len(webhooks) == 1
    await runtime.stop()
