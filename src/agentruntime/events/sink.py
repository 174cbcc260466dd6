"""Event sinks receiving the timeline of task lifecycle events."""

import logging
from collections import defaultdict
from typing import Iterable, Protocol, runtime_checkable

from agentruntime.models.events import TimelineEvent

logger = logging.getLogger(__name__)


@runtime_checkable
class EventSink(Protocol):
    """Best-effort observability channel."""

    async def publish(self, topic: str, event: TimelineEvent) -> None: ...


async def publish_safely(sink: EventSink, topic: str, event: TimelineEvent) -> None:
    """Publish an event, logging delivery failures instead of raising."""
    try:
        await sink.publish(topic, event)
    except Exception as e:
        logger.error(
            f"Failed to publish {event.type} event for task {event.task_id}: {e}",
            exc_info=True,
        )


class TimelineRecorder:
    """In-memory sink keeping every event in publish order.

    The full attempt history of a task (intermediate failures, corrections,
    tool calls) is reconstructable from ``events_for(task_id)``.
    """

    def __init__(self) -> None:
        self._events: list[tuple[str, TimelineEvent]] = []
        self._by_task: dict[str, list[TimelineEvent]] = defaultdict(list)

    async def publish(self, topic: str, event: TimelineEvent) -> None:
        self._events.append((topic, event))
        self._by_task[event.task_id].append(event)

    @property
    def events(self) -> list[TimelineEvent]:
        return [event for _, event in self._events]

    def events_for(self, task_id: str) -> list[TimelineEvent]:
        return list(self._by_task.get(task_id, []))

    def types_for(self, task_id: str) -> list[str]:
        return [event.type for event in self._by_task.get(task_id, [])]

    def topics(self) -> set[str]:
        return {topic for topic, _ in self._events}

    def clear(self) -> None:
        self._events.clear()
        self._by_task.clear()


class LoggingEventSink:
    """Writes each event to the log."""

    def __init__(self, level: int = logging.DEBUG) -> None:
        self.level = level

    async def publish(self, topic: str, event: TimelineEvent) -> None:
        logger.log(
            self.level,
            f"[{topic}] {event.type} task={event.task_id}",
            extra={"event": event.model_dump(mode="json")},
        )


class FanoutEventSink:
    """Delivers each event to several sinks; one failing sink never blocks the rest."""

    def __init__(self, sinks: Iterable[EventSink]) -> None:
        self.sinks = list(sinks)

    async def publish(self, topic: str, event: TimelineEvent) -> None:
        for sink in self.sinks:
            await publish_safely(sink, topic, event)
