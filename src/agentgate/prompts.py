"""
System prompt construction.

The prompt tells the model who it is, where it runs, the XML tool-call
wire format, the registered tools, and any custom instructions the user
configured.
"""

import platform
from datetime import datetime
from pathlib import Path

from agentgate.tools import ToolRegistry

MAX_LISTED_ENTRIES = 50

SYSTEM_PROMPT_PREFIX = """You are a capable assistant that can read and edit files on the user's computer.
Use the tools below to carry out the request written inside the <user_query> tags."""

TOOL_CALL_FORMAT = """## Tool call format

Write every tool call in exactly this XML form:

```xml
<tool_call>
<tool_name>
<parameter_1>value 1</parameter_1>
<parameter_2>value 2</parameter_2>
</tool_name>
</tool_call>
```

To read several files at once, list each path inside <paths>:

```xml
<tool_call>
<read_files>
<paths>
<path>src/app.py</path>
<path>README.md</path>
</paths>
</read_files>
</tool_call>
```"""

GUIDELINES = """## Rules
1. Every reply must contain exactly one tool call. Never call two tools in one reply.
2. Replies without a tool call are not allowed. Use respond_to_user to show an answer to the user; it ends your turn.
3. Use type "success" with respond_to_user when the request was fully met and "error" otherwise. Be honest.
4. Provide every required parameter and follow the format exactly.
5. Do not name tools when talking to the user; say "I'll edit the file", not "I'll use write_to_file".
6. Gather as much information as you need before acting; reading many files is normal.
7. Prefer safe operations and be careful with system files and important directories.
8. Some operations need the user's approval and may be denied. Read the tool response and adjust."""


def _format_bytes(size: int) -> str:
    for unit in ("B", "KB", "MB"):
        if size < 1024:
            return f"{size} {unit}" if unit == "B" else f"{size:.2f} {unit}"
        size /= 1024
    return f"{size:.2f} GB"


def describe_environment(working_directory: str, now: datetime | None = None) -> str:
    """Current time, OS, working directory and its top-level entries."""
    now = now or datetime.now().astimezone()
    root = Path(working_directory)

    entries: list[str] = []
    try:
        for child in sorted(root.iterdir()):
            if len(entries) >= MAX_LISTED_ENTRIES:
                entries.append("  ... (more entries not shown)")
                break
            if child.is_dir():
                entries.append(f"  - {child.name} [directory]")
            else:
                try:
                    entries.append(f"  - {child.name} [file] ({_format_bytes(child.stat().st_size)})")
                except OSError:
                    entries.append(f"  - {child.name} [inaccessible]")
        listing = "\n".join(entries) or "  (empty)"
    except OSError as e:
        listing = f"  Could not list the directory: {e}"

    return (
        "## Environment\n\n"
        f"**Current time**: {now.isoformat(timespec='seconds')}\n"
        f"**OS**: {platform.system()}\n"
        f"**Working directory**: {root}\n\n"
        f"**Directory contents**:\n{listing}"
    )


def build_system_prompt(
    registry: ToolRegistry,
    working_directory: str,
    custom_instructions: str = "",
) -> str:
    """Assemble the full system prompt for a session."""
    tool_docs = "\n\n".join(tool.to_prompt_doc() for tool in registry.list_tools())
    sections = [
        SYSTEM_PROMPT_PREFIX,
        describe_environment(working_directory),
        TOOL_CALL_FORMAT,
        f"## Available tools\n\n{tool_docs}",
        GUIDELINES,
    ]
    if custom_instructions and custom_instructions.strip():
        sections.append(f"## Custom instructions\n\n{custom_instructions.strip()}")
    return "\n\n".join(sections)
