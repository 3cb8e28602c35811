"""
Tool System - The only way to affect the world.

Tools are the only mechanism by which the agent has side effects. Each tool
is a descriptor (name, parameter lists, risk flags) plus a handler; the
registry is a name-keyed table of descriptors.

The registry fails closed and never raises: unknown tools, missing
parameters and handler exceptions all come back as failed ToolResults that
the model can read and correct.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from agentgate.types import ToolContext, ToolInvocation, ToolResult

logger = logging.getLogger(__name__)


class ToolHandler(Protocol):
    """Protocol for tool handler functions."""
    def __call__(self, parameters: dict[str, Any], context: ToolContext) -> ToolResult: ...


@dataclass(frozen=True)
class Tool:
    """
    Definition of a tool that the agent can use.

    - name: Unique identifier, also the tag the model writes
    - description: What the tool does (shown to the model and the approver)
    - required_parameters / optional_parameters: parameter names
    - dangerous / requires_approval: descriptive metadata only; risk comes
      from agentgate.safety and approval from agentgate.permissions

    The handler is the only code that has side effects.
    """
    name: str
    description: str
    handler: ToolHandler
    required_parameters: tuple[str, ...] = ()
    optional_parameters: tuple[str, ...] = ()
    dangerous: bool = False
    requires_approval: bool = False
    parameter_docs: dict[str, str] = field(default_factory=dict, hash=False, compare=False)

    def missing_parameters(self, parameters: dict[str, Any]) -> list[str]:
        """Required keys that are absent or None."""
        return [key for key in self.required_parameters if parameters.get(key) is None]

    def to_prompt_doc(self) -> str:
        """Describe the tool and its wire format for the system prompt."""
        lines = [f"**{self.name}**: {self.description}"]
        for key in self.required_parameters:
            lines.append(f"- {key}: {self.parameter_docs.get(key, 'required')}")
        for key in self.optional_parameters:
            doc = self.parameter_docs.get(key)
            lines.append(f"- {key}: {doc} (optional)" if doc else f"- {key}: optional")
        example = "\n".join(f"<{key}>...</{key}>" for key in self.required_parameters)
        body = f"{example}\n" if example else ""
        lines.append(f"```xml\n<tool_call>\n<{self.name}>\n{body}</{self.name}>\n</tool_call>\n```")
        return "\n".join(lines)


@dataclass
class ToolRegistry:
    """
    Registry of available tools.

    The registry is the controlled interface through which the agent
    can affect the world. Only tools registered here can be called.
    """

    _tools: dict[str, Tool] = field(default_factory=dict)

    def register(self, tool: Tool) -> None:
        """Register a tool, replacing any tool with the same name."""
        if tool.name in self._tools:
            logger.warning(f"Overwriting existing tool: {tool.name}")
        self._tools[tool.name] = tool
        logger.debug(f"Registered tool: {tool.name}")

    def register_function(
        self,
        name: str,
        description: str,
        handler: ToolHandler,
        required_parameters: tuple[str, ...] | list[str] = (),
        optional_parameters: tuple[str, ...] | list[str] = (),
        dangerous: bool = False,
        requires_approval: bool = False,
    ) -> Tool:
        """Convenience method to register a function as a tool."""
        tool = Tool(
            name=name,
            description=description,
            handler=handler,
            required_parameters=tuple(required_parameters),
            optional_parameters=tuple(optional_parameters),
            dangerous=dangerous,
            requires_approval=requires_approval,
        )
        self.register(tool)
        return tool

    def unregister(self, name: str) -> bool:
        """Remove a tool. Returns whether it was registered."""
        return self._tools.pop(name, None) is not None

    def get(self, name: str) -> Tool | None:
        """Get a tool by name."""
        return self._tools.get(name)

    def list_tools(self) -> list[Tool]:
        return list(self._tools.values())

    def validate(self, name: str, parameters: dict[str, Any]) -> bool:
        """Every required parameter present and not None; optional keys unchecked."""
        tool = self._tools.get(name)
        if tool is None:
            return False
        return not tool.missing_parameters(parameters)

    def execute(self, invocation: ToolInvocation, context: ToolContext) -> ToolResult:
        """
        Execute an invocation.

        This is the controlled entry point for all side effects.
        """
        tool = self._tools.get(invocation.name)
        if tool is None:
            return ToolResult.fail(f"Unknown tool: {invocation.name}")

        missing = tool.missing_parameters(invocation.parameters)
        if missing:
            return ToolResult.fail(
                f"Invalid parameters for tool '{invocation.name}': missing {', '.join(missing)}"
            )

        logger.info(f"Executing tool: {invocation.name}")
        try:
            result = tool.handler(invocation.parameters, context)
        except Exception as e:
            logger.error(f"Tool {invocation.name} failed: {e}")
            return ToolResult.fail(f"Tool execution error: {e}")

        if not isinstance(result, ToolResult):
            logger.error(f"Tool {invocation.name} returned {type(result).__name__}, not ToolResult")
            return ToolResult.fail(f"Tool '{invocation.name}' returned an invalid result")
        return result

    @property
    def tool_names(self) -> list[str]:
        """List of registered tool names."""
        return list(self._tools.keys())

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools
