"""Webhook event sink with circuit breaker protection."""

import logging
from typing import Any, Optional

import httpx

from agentruntime.config import Settings, settings as default_settings
from agentruntime.integrations.circuit_breaker import CircuitBreaker
from agentruntime.models.events import TimelineEvent

logger = logging.getLogger(__name__)


class WebhookEventSink:
    """
    POSTs timeline events to an HTTP endpoint.

    Usage:
        sink = WebhookEventSink()
        await sink.publish("agent://timeline", event)
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config or default_settings
        self._client = client
        self._owns_client = client is None
        self._circuit_breaker: Optional[CircuitBreaker] = None
        self.dropped = 0
        if self.config.event_webhook_circuit_breaker_enabled:
            self._circuit_breaker = CircuitBreaker(
                "event-webhook",
                failure_threshold=self.config.event_webhook_failure_threshold,
                reset_timeout_seconds=self.config.event_webhook_reset_timeout_seconds,
            )

    @property
    def circuit_breaker(self) -> Optional[CircuitBreaker]:
        return self._circuit_breaker

    async def publish(self, topic: str, event: TimelineEvent) -> None:
        """Deliver one event (no-op when no webhook URL is configured)."""
        if not self.config.event_webhook_url:
            return

        if self._circuit_breaker:
            await self._circuit_breaker.call(self._post, topic, event, fallback=self._drop)
        else:
            await self._post(topic, event)

    async def close(self) -> None:
        """Close the HTTP client if this sink created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.event_webhook_timeout_ms / 1000)
        return self._client

    async def _post(self, topic: str, event: TimelineEvent) -> None:
        headers = {"Content-Type": "application/json"}
        if self.config.event_webhook_auth_token:
            headers["Authorization"] = f"Bearer {self.config.event_webhook_auth_token}"

        payload: dict[str, Any] = {
            "topic": topic,
            "event": event.model_dump(mode="json"),
        }
        response = await self._get_client().post(
            self.config.event_webhook_url,
            json=payload,
            headers=headers,
        )
        response.raise_for_status()

    async def _drop(self, topic: str, event: TimelineEvent) -> None:
        """Fallback while the circuit is open: count and log the dropped event."""
        self.dropped += 1
        logger.warning(
            "Event webhook circuit open, dropping event",
            extra={"topic": topic, "event_type": event.type, "task_id": event.task_id},
        )
