"""
Tool-call wire protocol.

The model asks for an action by writing one block per turn:

    <tool_call>
    <read_file>
    <path>main.py</path>
    </read_file>
    </tool_call>

The outer tag is fixed, the first child tag names the tool, and each
grandchild tag is a parameter. The agent answers with the tool result as
JSON inside <tool_response>...</tool_response>.

Parsing never raises. Text that does not match the structure decodes to
None. Deciding what to do when a turn contains zero or several blocks is
the agent loop's job; this module only counts and decodes.
"""

import json
import re
from typing import Any

from agentgate.types import ToolInvocation, ToolResult

TOOL_CALL_BLOCK = re.compile(r"<tool_call>[\s\S]*?</tool_call>")
TOOL_CALL = re.compile(r"<tool_call>\s*<(\w+)>(.*?)</\1>\s*</tool_call>", re.DOTALL)
PARAMETER = re.compile(r"<(\w+)>(.*?)</\1>", re.DOTALL)
PATHS = re.compile(r"<paths>(.*?)</paths>", re.DOTALL)
PATH_ITEM = re.compile(r"<path>(.*?)</path>", re.DOTALL)

INTEGER = re.compile(r"^\d+$")
FLOAT = re.compile(r"^\d+\.\d+$")

# Parameters passed through untouched: file bodies must never be coerced.
RAW_PARAMETERS = frozenset({"content"})


def find_tool_call_blocks(text: str) -> list[str]:
    """Return every top-level <tool_call> block in order of appearance."""
    return TOOL_CALL_BLOCK.findall(text)


def parse_tool_call(text: str) -> ToolInvocation | None:
    """Decode a single tool-call block into an invocation, or None."""
    match = TOOL_CALL.search(text)
    if not match:
        return None

    name = match.group(1)
    body = match.group(2)

    parameters: dict[str, Any] = {}
    for param in PARAMETER.finditer(body):
        key = param.group(1)
        raw = param.group(2).strip()
        parameters[key] = raw if key in RAW_PARAMETERS else decode_value(raw)

    paths = PATHS.search(body)
    if paths:
        parameters["paths"] = [
            {"path": item.group(1).strip()} for item in PATH_ITEM.finditer(paths.group(1))
        ]

    return ToolInvocation(name=name, parameters=parameters)


def decode_value(value: str) -> Any:
    """
    Decode a parameter's text.

    Priority: JSON object/array, integer, float, boolean, string. Literal
    backslash-n and backslash-t sequences are unescaped first.
    """
    value = value.replace("\\n", "\n").replace("\\t", "\t")

    if (value.startswith("{") and value.endswith("}")) or (
        value.startswith("[") and value.endswith("]")
    ):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value

    if INTEGER.match(value):
        return int(value)

    if FLOAT.match(value):
        return float(value)

    lowered = value.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False

    return value


def format_tool_response(result: ToolResult) -> str:
    """Encode a tool result for re-injection into the conversation."""
    payload = json.dumps(result.to_dict(), indent=2, ensure_ascii=False, default=str)
    return f"<tool_response>{payload}</tool_response>"
