"""
Tests for ToolRegistry - the only way to affect the world.

The registry never raises: unknown tools, missing parameters and handler
exceptions all come back as failed results.
"""

from agentgate.tools import Tool, ToolRegistry
from agentgate.types import ToolContext, ToolInvocation, ToolResult


def echo_handler(parameters, context):
    return ToolResult.ok({"echo": parameters.get("text")})


def make_registry() -> ToolRegistry:
    registry = ToolRegistry()
    registry.register_function(
        name="echo",
        description="Echo input",
        handler=echo_handler,
        required_parameters=["text"],
        optional_parameters=["loud"],
    )
    return registry


CONTEXT = ToolContext(working_directory="/tmp")


class TestToolDefinition:
    """Tool descriptors."""

    def test_missing_parameters_treats_none_as_missing(self):
        tool = Tool(name="t", description="d", handler=echo_handler, required_parameters=("a", "b"))
        assert tool.missing_parameters({"a": 1, "b": None}) == ["b"]

    def test_prompt_doc_lists_parameters_and_example(self):
        tool = Tool(
            name="read_file",
            description="Read a file",
            handler=echo_handler,
            required_parameters=("path",),
            optional_parameters=("encoding",),
            parameter_docs={"path": "file to read"},
        )
        doc = tool.to_prompt_doc()
        assert doc.startswith("**read_file**: Read a file")
        assert "- path: file to read" in doc
        assert "- encoding: optional" in doc
        assert "<read_file>\n<path>...</path>\n</read_file>" in doc


class TestToolRegistry:
    """Registration and lookup."""

    def test_register_and_get(self):
        registry = make_registry()
        assert "echo" in registry
        assert len(registry) == 1
        assert registry.get("echo").description == "Echo input"
        assert registry.get("missing") is None
        assert registry.tool_names == ["echo"]

    def test_register_replaces_existing(self):
        registry = make_registry()
        registry.register(Tool(name="echo", description="Second", handler=echo_handler))
        assert len(registry) == 1
        assert registry.get("echo").description == "Second"

    def test_unregister(self):
        registry = make_registry()
        assert registry.unregister("echo")
        assert not registry.unregister("echo")
        assert len(registry) == 0

    def test_validate(self):
        registry = make_registry()
        assert registry.validate("echo", {"text": "hi"})
        assert not registry.validate("echo", {"loud": True})
        assert not registry.validate("nope", {})


class TestExecute:
    """Controlled execution."""

    def test_successful_execution(self):
        result = make_registry().execute(ToolInvocation("echo", {"text": "hi"}), CONTEXT)
        assert result.success
        assert result.data == {"echo": "hi"}

    def test_unknown_tool(self):
        result = make_registry().execute(ToolInvocation("nope", {}), CONTEXT)
        assert not result.success
        assert result.error == "Unknown tool: nope"

    def test_missing_parameters_are_named(self):
        result = make_registry().execute(ToolInvocation("echo", {}), CONTEXT)
        assert not result.success
        assert result.error == "Invalid parameters for tool 'echo': missing text"

    def test_handler_exception_is_captured(self):
        def failing(parameters, context):
            raise ValueError("Something went wrong")

        registry = ToolRegistry()
        registry.register_function("failing", "Always fails", failing)
        result = registry.execute(ToolInvocation("failing", {}), CONTEXT)
        assert not result.success
        assert result.error == "Tool execution error: Something went wrong"

    def test_non_result_return_is_a_failure(self):
        registry = ToolRegistry()
        registry.register_function("bad", "Returns a string", lambda parameters, context: "oops")
        result = registry.execute(ToolInvocation("bad", {}), CONTEXT)
        assert not result.success
        assert "invalid result" in result.error

    def test_handler_receives_context(self):
        seen = {}

        def capture(parameters, context):
            seen["cwd"] = context.working_directory
            return ToolResult.ok()

        registry = ToolRegistry()
        registry.register_function("capture", "Capture context", capture)
        registry.execute(ToolInvocation("capture", {}), CONTEXT)
        assert seen["cwd"] == "/tmp"
