"""
Local Tool Invoker

Dispatches tool calls to in-process Tool instances by name. Unknown tools,
invalid parameters and tool exceptions become failed result dictionaries;
the invoker never raises for a misbehaving tool.
"""

from typing import Any

import structlog

from conductor.infrastructure.tools.base import Tool


class LocalToolInvoker:
    def __init__(self, tools: list[Tool] | None = None):
        self.tools: dict[str, Tool] = {}
        for tool in tools or []:
            self.add(tool)
        self.logger = structlog.get_logger().bind(component="local_tool_invoker")

    def add(self, tool: Tool) -> None:
        self.tools[tool.name] = tool

    def list_tools(self) -> list[dict[str, Any]]:
        return [tool.describe() for tool in self.tools.values()]

    async def call(self, tool_name: str, args: dict[str, Any]) -> dict[str, Any]:
        tool = self.tools.get(tool_name)
        if not tool:
            return {"success": False, "error": f"Tool not found: {tool_name}"}

        valid, error = tool.validate_params(**args)
        if not valid:
            return {"success": False, "error": f"Invalid parameters: {error}"}

        try:
            self.logger.info("tool_execute", tool=tool_name, args_keys=list(args.keys()))
            result = await tool.execute(**args)
        except Exception as e:
            self.logger.error("tool_exception", tool=tool_name, error=str(e))
            return {"success": False, "error": str(e), "error_type": type(e).__name__}

        if not isinstance(result, dict):
            return {"success": False, "error": f"Tool returned invalid type: {type(result).__name__}"}
        result.setdefault("success", False)
        self.logger.info("tool_complete", tool=tool_name, success=result.get("success"))
        return result


class CompositeToolInvoker:
    """Chains several invokers; the first one offering a tool name handles it."""

    def __init__(self, *invokers: Any):
        self.invokers = list(invokers)

    def list_tools(self) -> list[dict[str, Any]]:
        seen: set[str] = set()
        tools: list[dict[str, Any]] = []
        for invoker in self.invokers:
            for tool in invoker.list_tools():
                if tool["name"] not in seen:
                    seen.add(tool["name"])
                    tools.append(tool)
        return tools

    async def call(self, tool_name: str, args: dict[str, Any]) -> dict[str, Any]:
        for invoker in self.invokers:
            if any(tool["name"] == tool_name for tool in invoker.list_tools()):
                return await invoker.call(tool_name, args)
        return {"success": False, "error": f"Tool not found: {tool_name}"}
