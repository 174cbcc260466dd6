"""Tool invocation."""

from agentruntime.tools.filesystem import FileTools, register_filesystem_tools
from agentruntime.tools.registry import ToolInfo, ToolInvoker, ToolRegistry, ToolSpec

__all__ = [
    "FileTools",
    "ToolInfo",
    "ToolInvoker",
    "ToolRegistry",
    "ToolSpec",
    "register_filesystem_tools",
]
