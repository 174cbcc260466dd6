"""Timeline event delivery."""

from agentruntime.events.sink import (
    EventSink,
    FanoutEventSink,
    LoggingEventSink,
    TimelineRecorder,
    publish_safely,
)
from agentruntime.events.webhook import WebhookEventSink

__all__ = [
    "EventSink",
    "FanoutEventSink",
    "LoggingEventSink",
    "TimelineRecorder",
    "WebhookEventSink",
    "publish_safely",
]
