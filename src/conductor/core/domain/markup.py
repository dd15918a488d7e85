"""
Tool-Call Markup Parser

Models request tool invocations by embedding blocks of the form::

    <tool_call>{"name": "calculator", "arguments": {"expression": "2+2"}}</tool_call>

in their response text. Any number of blocks may appear in a single turn.

The parser never raises. Malformed blocks are reported as FormatIssue
records so the tool-call loop can feed a corrective message back to the
model. Recognised failure modes:
- start marker without a matching close (``<tool_call>{...}`` then end of text)
- mismatched close tag (``</tool_calls>``, ``</tool>``, ...)
- a new start marker before the previous block was closed
- body that is not valid JSON
- JSON that is not an object, lacks a string ``name``, or whose
  ``arguments`` is not an object
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any

OPEN_TAG = "<tool_call>"
CLOSE_TAG = "</tool_call>"

# Any close tag that looks like an attempt at CLOSE_TAG.
_CLOSE_CANDIDATE = re.compile(r"</tool[\w-]*\s*>")


@dataclass
class ToolCall:
    """A well-formed tool invocation extracted from model output."""

    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass
class FormatIssue:
    """A malformed tool-call block."""

    expected: str
    actual: str
    position: int

    @property
    def message(self) -> str:
        return f"format error: expected {self.expected}, got {self.actual}"


@dataclass
class ParseResult:
    """
    Outcome of parsing one model turn.

    Attributes:
        calls: Well-formed tool calls, in order of appearance
        issues: Malformed blocks, in order of appearance
        text: Response text with every tool-call block removed
    """

    calls: list[ToolCall] = field(default_factory=list)
    issues: list[FormatIssue] = field(default_factory=list)
    text: str = ""

    @property
    def is_final(self) -> bool:
        """True when the turn neither invokes tools nor contains malformed markup."""
        return not self.calls and not self.issues


def _describe(fragment: str, limit: int = 40) -> str:
    fragment = fragment.strip()
    if not fragment:
        return "end of response"
    if len(fragment) > limit:
        fragment = fragment[:limit] + "..."
    return repr(fragment)


def _decode_body(body: str, position: int) -> ToolCall | FormatIssue:
    try:
        payload = json.loads(body)
    except json.JSONDecodeError as e:
        return FormatIssue(
            expected="a JSON object inside <tool_call>",
            actual=f"invalid JSON ({e.msg} at column {e.colno})",
            position=position,
        )
    if not isinstance(payload, dict):
        return FormatIssue(
            expected="a JSON object inside <tool_call>",
            actual=type(payload).__name__,
            position=position,
        )
    name = payload.get("name")
    if not isinstance(name, str) or not name.strip():
        return FormatIssue(
            expected='a string "name" field',
            actual=_describe(json.dumps(name)) if name is not None else "no name",
            position=position,
        )
    arguments = payload.get("arguments", {})
    if arguments is None:
        arguments = {}
    if not isinstance(arguments, dict):
        return FormatIssue(
            expected='an object "arguments" field',
            actual=type(arguments).__name__,
            position=position,
        )
    return ToolCall(name=name.strip(), arguments=arguments)


def parse_tool_calls(text: str) -> ParseResult:
    """
    Extract tool calls and format issues from a model response.

    Args:
        text: Raw response text

    Returns:
        ParseResult with calls, issues and the remaining prose.
    """
    result = ParseResult()
    prose: list[str] = []
    cursor = 0

    while True:
        start = text.find(OPEN_TAG, cursor)
        if start == -1:
            prose.append(text[cursor:])
            break

        prose.append(text[cursor:start])
        body_start = start + len(OPEN_TAG)
        close = _CLOSE_CANDIDATE.search(text, body_start)
        next_open = text.find(OPEN_TAG, body_start)

        if next_open != -1 and (close is None or next_open < close.start()):
            result.issues.append(
                FormatIssue(expected=CLOSE_TAG, actual=_describe(OPEN_TAG), position=start)
            )
            cursor = next_open
            continue

        if close is None:
            result.issues.append(
                FormatIssue(expected=CLOSE_TAG, actual="end of response", position=start)
            )
            break

        tag = close.group(0)
        if tag.replace(" ", "") != CLOSE_TAG:
            result.issues.append(FormatIssue(expected=CLOSE_TAG, actual=tag, position=start))
            cursor = close.end()
            continue

        decoded = _decode_body(text[body_start : close.start()].strip(), start)
        if isinstance(decoded, ToolCall):
            result.calls.append(decoded)
        else:
            result.issues.append(decoded)
        cursor = close.end()

    result.text = "".join(prose).strip()
    return result


def format_feedback(issues: list[FormatIssue]) -> str:
    """
    Build the single corrective message sent back for a malformed turn.

    The first line always names the first issue so the model sees the most
    important problem immediately.
    """
    lines = [issues[0].message]
    for issue in issues[1:]:
        lines.append(f"- {issue.message}")
    lines.append("")
    lines.append(
        "Tool calls must be written exactly as "
        f'{OPEN_TAG}{{"name": "<tool>", "arguments": {{...}}}}{CLOSE_TAG}. '
        "Resend the tool call in this format, or answer without tool calls if you are done."
    )
    return "\n".join(lines)
