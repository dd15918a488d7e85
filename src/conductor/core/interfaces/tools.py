"""
Tool Protocols

ToolProtocol describes a single tool with a name, description and JSON
schema for its parameters. ToolInvokerProtocol is the narrow dispatch
interface the tool-call loop talks to.

Tool results are dictionaries:
    {"success": True, "output": ...}
    {"success": False, "error": "..."}
Invokers may also raise ToolExecutionError; the loop treats both the same.
"""

from typing import Any, Protocol


class ToolProtocol(Protocol):
    """Protocol for a single executable tool."""

    @property
    def name(self) -> str:
        ...

    @property
    def description(self) -> str:
        ...

    @property
    def parameters_schema(self) -> dict[str, Any]:
        ...

    async def execute(self, **kwargs: Any) -> dict[str, Any]:
        ...


class ToolInvokerProtocol(Protocol):
    """Dispatches tool invocations by name."""

    def list_tools(self) -> list[dict[str, Any]]:
        """Return name/description/parameters for every available tool."""
        ...

    async def call(self, tool_name: str, args: dict[str, Any]) -> dict[str, Any]:
        """
        Invoke a tool.

        Args:
            tool_name: Name of the tool
            args: Arguments decoded from the tool-call markup

        Returns:
            Tool result dictionary.

        Raises:
            ToolExecutionError: If the tool failed in a way it could not report
        """
        ...
