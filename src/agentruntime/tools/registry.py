"""Tool registry - handlers keyed by tool id, validated at registration."""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Protocol, Union

from agentruntime.errors import (
    AgentRuntimeError,
    InvocationError,
    ToolNotFound,
    ValidationError,
)

logger = logging.getLogger(__name__)

ToolHandler = Callable[[dict[str, Any]], Union[Any, Awaitable[Any]]]

_TOOL_ID_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_.\-]*$")


@dataclass(frozen=True)
class ToolInfo:
    """Public description of a registered tool."""

    id: str
    description: str = ""
    capability_tags: tuple[str, ...] = ()


@dataclass
class ToolSpec:
    """A registered tool: metadata plus the handler that runs it."""

    info: ToolInfo
    handler: ToolHandler
    required_params: tuple[str, ...] = field(default_factory=tuple)


class ToolInvoker(Protocol):
    """Executes named actions and returns structured results."""

    async def execute(self, tool_id: str, args: dict[str, Any]) -> Any: ...

    def list_tools(self) -> list[ToolInfo]: ...


class ToolRegistry:
    """In-process ToolInvoker backed by a handler map.

    Handlers receive the argument dict and may be sync or async. Any
    exception a handler raises surfaces as ``InvocationError``; a missing
    required parameter surfaces as ``ValidationError`` before the handler
    runs.
    """

    def __init__(self) -> None:
        self._tools: dict[str, ToolSpec] = {}

    def register(
        self,
        tool_id: str,
        handler: ToolHandler,
        description: str = "",
        capability_tags: Iterable[str] = (),
        required_params: Iterable[str] = (),
    ) -> ToolInfo:
        """Register a handler; rejects malformed or duplicate ids."""
        if not tool_id or not _TOOL_ID_PATTERN.match(tool_id):
            raise ValidationError(f"Invalid tool id: {tool_id!r}")
        if tool_id in self._tools:
            raise ValidationError(f"Tool already registered: {tool_id}")
        if not callable(handler):
            raise ValidationError(f"Handler for {tool_id} is not callable")

        info = ToolInfo(
            id=tool_id,
            description=description,
            capability_tags=tuple(tag.lower() for tag in capability_tags),
        )
        self._tools[tool_id] = ToolSpec(
            info=info,
            handler=handler,
            required_params=tuple(required_params),
        )
        logger.debug(f"Registered tool {tool_id}")
        return info

    def unregister(self, tool_id: str) -> None:
        if self._tools.pop(tool_id, None) is None:
            raise ToolNotFound(tool_id)

    def __contains__(self, tool_id: object) -> bool:
        return tool_id in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def list_tools(self) -> list[ToolInfo]:
        return [spec.info for spec in self._tools.values()]

    async def execute(self, tool_id: str, args: dict[str, Any]) -> Any:
        spec = self._tools.get(tool_id)
        if spec is None:
            raise ToolNotFound(tool_id)

        missing = [name for name in spec.required_params if args.get(name) in (None, "")]
        if missing:
            raise ValidationError(
                f"Missing required parameter(s) for {tool_id}: {', '.join(missing)}"
            )

        try:
            result = spec.handler(args)
            if asyncio.iscoroutine(result):
                result = await result
        except AgentRuntimeError:
            raise
        except Exception as e:
            raise InvocationError(f"{tool_id} failed: {e}", tool_id=tool_id) from e
        return result
