"""
System prompt fragments for the tool-call markup protocol.

The kernel prompt teaches the model the ``<tool_call>`` syntax. Agent
specific instructions and the list of permitted tools are appended by
``build_system_prompt``.
"""

import json
from typing import Any

TOOL_CALL_KERNEL_PROMPT = """
# Autonomous Task Execution

You are an autonomous agent working on a single task. Work step by step and
use tools whenever they help you produce a correct answer.

## Calling tools

To call a tool, write one block per call:

<tool_call>{"name": "<tool name>", "arguments": {<JSON arguments>}}</tool_call>

Rules:
- The block must contain exactly one JSON object with a "name" string and an
  "arguments" object.
- Always close the block with </tool_call>. Never use </tool_calls> or </tool>.
- You may call several tools in one turn. Results come back in
  <tool_result> blocks in the next message.
- When you are done, answer WITHOUT any <tool_call> block. That answer is
  your final report.
"""

DEFAULT_AGENT_PROMPT = "You are a helpful, precise assistant."


def _render_tool(tool: dict[str, Any]) -> str:
    schema = tool.get("parameters") or {}
    lines = [f"### {tool['name']}", tool.get("description", "").strip()]
    if schema:
        lines.append(f"Parameters: {json.dumps(schema, ensure_ascii=False)}")
    return "\n".join(line for line in lines if line)


def build_system_prompt(agent_prompt: str | None, tools: list[dict[str, Any]]) -> str:
    """
    Assemble the system prompt for one execution.

    Args:
        agent_prompt: Agent-specific instructions, if any
        tools: Permitted tools as name/description/parameters dictionaries

    Returns:
        Complete system prompt.
    """
    sections = [(agent_prompt or DEFAULT_AGENT_PROMPT).strip(), TOOL_CALL_KERNEL_PROMPT.strip()]
    if tools:
        sections.append("## Available tools\n\n" + "\n\n".join(_render_tool(t) for t in tools))
    else:
        sections.append("## Available tools\n\nNo tools are available. Answer directly.")
    return "\n\n".join(sections)
