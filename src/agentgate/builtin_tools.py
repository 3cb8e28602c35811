"""
Built-in tools.

File access, directory listing, search, shell execution and the terminal
respond_to_user tool. Every handler takes (parameters, context) and returns
a ToolResult; expected failures (missing file, non-zero exit) are returned
as failed results, anything unexpected is left for the registry to catch.

Relative paths resolve against context.working_directory.
"""

import fnmatch
import logging
import subprocess
import time
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from agentgate.tools import Tool, ToolRegistry
from agentgate.types import ToolContext, ToolResult

logger = logging.getLogger(__name__)

DEFAULT_COMMAND_TIMEOUT_MS = 30000
DEFAULT_MAX_RESULTS = 100


def _resolve(context: ToolContext, path: str) -> Path:
    return Path(context.working_directory) / path


def read_file(parameters: dict[str, Any], context: ToolContext) -> ToolResult:
    path = str(parameters["path"])
    full_path = _resolve(context, path)

    if not full_path.exists():
        return ToolResult.fail(f"File not found: {path}")
    if not full_path.is_file():
        return ToolResult.fail(f"Not a file: {path}")

    content = full_path.read_text(encoding="utf-8", errors="replace")
    size = full_path.stat().st_size
    return ToolResult.ok(
        {"path": path, "content": content, "size": size},
        f"Read '{path}' ({size} bytes)",
    )


def read_files(parameters: dict[str, Any], context: ToolContext) -> ToolResult:
    entries = parameters["paths"]
    if isinstance(entries, str):
        entries = [{"path": entries}]
    if not isinstance(entries, list):
        return ToolResult.fail("paths must be a list of <path> elements")

    files = []
    failures = 0
    for entry in entries:
        path = str(entry.get("path", "")) if isinstance(entry, dict) else str(entry)
        result = read_file({"path": path}, context)
        if result.success:
            files.append(result.data)
        else:
            failures += 1
            files.append({"path": path, "error": result.error})

    return ToolResult.ok(
        {"files": files, "total": len(files), "failed": failures},
        f"Read {len(files) - failures} of {len(files)} files",
    )


def write_to_file(parameters: dict[str, Any], context: ToolContext) -> ToolResult:
    path = str(parameters["path"])
    content = parameters["content"]
    if not isinstance(content, str):
        content = str(content)
    overwrite = parameters.get("overwrite", True)
    full_path = _resolve(context, path)

    if not overwrite and full_path.exists():
        return ToolResult.fail(f"File already exists: {path}")

    full_path.parent.mkdir(parents=True, exist_ok=True)
    full_path.write_text(content, encoding="utf-8")
    size = full_path.stat().st_size
    return ToolResult.ok({"path": path, "size": size}, f"Wrote '{path}' ({size} bytes)")


def create_directory(parameters: dict[str, Any], context: ToolContext) -> ToolResult:
    path = str(parameters["path"])
    recursive = parameters.get("recursive", True)
    full_path = _resolve(context, path)

    if full_path.exists():
        if full_path.is_dir():
            return ToolResult.ok({"path": path}, f"Directory already exists: {path}")
        return ToolResult.fail(f"A file with that name already exists: {path}")

    full_path.mkdir(parents=bool(recursive))
    return ToolResult.ok({"path": path}, f"Created directory: {path}")


def list_directory(parameters: dict[str, Any], context: ToolContext) -> ToolResult:
    path = str(parameters["path"])
    target = Path(context.working_directory) if path == "." else _resolve(context, path)

    if not target.exists():
        return ToolResult.fail(f"Directory not found: {path}")
    if not target.is_dir():
        return ToolResult.fail(f"Not a directory: {path}")

    entries = []
    for child in target.iterdir():
        item: dict[str, Any] = {
            "name": child.name,
            "type": "directory" if child.is_dir() else "file",
        }
        try:
            stat = child.stat()
            if child.is_file():
                item["size"] = stat.st_size
            item["modified"] = datetime.fromtimestamp(stat.st_mtime, UTC).isoformat()
        except OSError:
            pass
        entries.append(item)

    # Directories first, then by name
    entries.sort(key=lambda e: (e["type"] != "directory", e["name"]))
    directories = sum(1 for e in entries if e["type"] == "directory")
    return ToolResult.ok(
        {
            "path": path,
            "total_items": len(entries),
            "directories": directories,
            "files": len(entries) - directories,
            "entries": entries,
        },
        f"Listed {len(entries)} items in '{path}'",
    )


def search_files(parameters: dict[str, Any], context: ToolContext) -> ToolResult:
    pattern = str(parameters["pattern"])
    directory = str(parameters.get("directory") or ".")
    max_results = int(parameters.get("maxResults") or DEFAULT_MAX_RESULTS)
    search_content = bool(parameters.get("searchContent", False))

    root = Path(context.working_directory)
    base = root if directory == "." else root / directory
    if not base.is_dir():
        return ToolResult.fail(f"Search directory not found: {directory}")
    # Paths outside the working directory are reported relative to the search directory
    anchor = root if base.is_relative_to(root) else base

    matches: list[dict[str, Any]] = []
    needle = pattern.lower()
    for file_path in sorted(p for p in base.rglob("*") if p.is_file()):
        if len(matches) >= max_results:
            break
        relative = file_path.relative_to(anchor).as_posix()
        if search_content:
            try:
                lines = file_path.read_text(encoding="utf-8").splitlines()
            except (OSError, UnicodeDecodeError):
                continue
            for number, line in enumerate(lines, start=1):
                if needle in line.lower():
                    matches.append({"path": relative, "line": number, "text": line.strip()})
                    if len(matches) >= max_results:
                        break
        elif fnmatch.fnmatch(file_path.name.lower(), needle):
            matches.append({"path": relative, "size": file_path.stat().st_size})

    return ToolResult.ok(
        {"pattern": pattern, "directory": directory, "matches": matches, "total_matches": len(matches)},
        f"Found {len(matches)} matches for '{pattern}'",
    )


def execute_command(parameters: dict[str, Any], context: ToolContext) -> ToolResult:
    command = str(parameters["command"]).strip()
    if not command:
        return ToolResult.fail("Command is empty")
    working_directory = str(parameters.get("workingDirectory") or context.working_directory)
    timeout_ms = int(parameters.get("timeout") or DEFAULT_COMMAND_TIMEOUT_MS)

    start = time.monotonic()
    try:
        # subprocess.run kills the child when the timeout expires
        completed = subprocess.run(
            command,
            shell=True,
            cwd=working_directory,
            env=context.environment or None,
            capture_output=True,
            text=True,
            timeout=timeout_ms / 1000,
        )
    except subprocess.TimeoutExpired:
        return ToolResult.fail(
            f"Command timed out after {timeout_ms}ms",
            {"command": command, "working_directory": working_directory},
        )
    except OSError as e:
        return ToolResult.fail(f"Command execution error: {e}")

    duration_ms = int((time.monotonic() - start) * 1000)
    data = {
        "command": command,
        "exit_code": completed.returncode,
        "stdout": completed.stdout,
        "stderr": completed.stderr,
        "duration_ms": duration_ms,
        "working_directory": working_directory,
    }
    if completed.returncode == 0:
        return ToolResult.ok(data, f"Command succeeded (exit code 0, {duration_ms}ms)")
    return ToolResult.fail(f"Command failed (exit code {completed.returncode})", data)


def respond_to_user(parameters: dict[str, Any], context: ToolContext) -> ToolResult:
    message = str(parameters["message"])
    message_type = parameters.get("type") or "success"
    if message_type not in ("success", "error"):
        return ToolResult.fail(f"Invalid message type, expected 'success' or 'error': {message_type}")

    return ToolResult.ok(
        {"message": message, "type": message_type, "timestamp": context.timestamp.isoformat()},
        "Response shown to the user",
    )


BUILTIN_TOOLS = (
    Tool(
        name="respond_to_user",
        description="Show an answer or information to the user. Ends the turn.",
        handler=respond_to_user,
        required_parameters=("message",),
        optional_parameters=("type",),
        parameter_docs={"message": "text shown to the user", "type": "'success' or 'error'"},
    ),
    Tool(
        name="read_file",
        description="Read the contents of a file",
        handler=read_file,
        required_parameters=("path",),
        parameter_docs={"path": "path of the file to read"},
    ),
    Tool(
        name="read_files",
        description="Read several files at once; list each one as <path> inside <paths>",
        handler=read_files,
        required_parameters=("paths",),
        parameter_docs={"paths": "<path> elements, one per file"},
    ),
    Tool(
        name="write_to_file",
        description="Write content to a file (creates parent directories)",
        handler=write_to_file,
        required_parameters=("path", "content"),
        optional_parameters=("overwrite",),
        dangerous=True,
        requires_approval=True,
        parameter_docs={
            "path": "destination file path",
            "content": "text to write",
            "overwrite": "allow replacing an existing file, default true",
        },
    ),
    Tool(
        name="create_directory",
        description="Create a directory",
        handler=create_directory,
        required_parameters=("path",),
        optional_parameters=("recursive",),
        parameter_docs={"path": "directory to create", "recursive": "create parents, default true"},
    ),
    Tool(
        name="list_directory",
        description="List files and folders in a directory, hidden entries included",
        handler=list_directory,
        required_parameters=("path",),
        parameter_docs={"path": "directory to list"},
    ),
    Tool(
        name="search_files",
        description="Find files by glob pattern, or search file contents",
        handler=search_files,
        required_parameters=("pattern",),
        optional_parameters=("directory", "maxResults", "searchContent"),
        parameter_docs={
            "pattern": "glob for names, or text when searchContent is true",
            "directory": "directory to search, default .",
            "maxResults": "maximum matches, default 100",
            "searchContent": "search inside files, default false",
        },
    ),
    Tool(
        name="execute_command",
        description="Run a shell command",
        handler=execute_command,
        required_parameters=("command",),
        optional_parameters=("workingDirectory", "timeout"),
        dangerous=True,
        requires_approval=True,
        parameter_docs={
            "command": "command line to run",
            "workingDirectory": "directory to run in",
            "timeout": "milliseconds before the process is killed, default 30000",
        },
    ),
)


def create_default_tools() -> ToolRegistry:
    """Create a registry holding every built-in tool."""
    registry = ToolRegistry()
    for tool in BUILTIN_TOOLS:
        registry.register(tool)
    return registry
