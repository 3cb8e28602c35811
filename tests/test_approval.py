"""
Tests for the console approval gate.
"""

import io

from agentgate.approval import ApprovalChoice, ConsoleApprovalGate, format_parameter_value
from agentgate.types import PermissionDecision, RiskDecision, RiskLevel, ToolInvocation


def scripted_input(*answers):
    """input() replacement that replays answers, then raises EOFError."""
    remaining = list(answers)

    def _input(prompt: str) -> str:
        if not remaining:
            raise EOFError
        return remaining.pop(0)

    return _input


def decision(risk: RiskLevel = RiskLevel.MEDIUM, warning: str | None = None) -> PermissionDecision:
    return PermissionDecision(
        allowed=True,
        requires_approval=True,
        risk_decision=RiskDecision(allowed=True, risk_level=risk, warning=warning),
    )


class TestFormatParameterValue:
    """Parameter rendering in the prompt."""

    def test_short_string_is_quoted(self):
        assert format_parameter_value("ls") == '"ls"'

    def test_long_string_is_cut(self):
        rendered = format_parameter_value("x" * 150)
        assert rendered == '"' + "x" * 97 + '..."'

    def test_structures_are_pretty_printed(self):
        assert format_parameter_value([{"path": "a"}]) == '[\n  {\n    "path": "a"\n  }\n]'

    def test_other_values_use_str(self):
        assert format_parameter_value(30000) == "30000"


class TestRequestApproval:
    """The four outcomes and re-prompting."""

    def test_each_number_maps_to_a_choice(self):
        invocation = ToolInvocation("execute_command", {"command": "ls"})
        for answer, expected in [
            ("1", ApprovalChoice.ALLOW_ONCE),
            ("2", ApprovalChoice.ALLOW_ALWAYS),
            ("3", ApprovalChoice.DENY),
            ("4", ApprovalChoice.DENY_ALWAYS),
        ]:
            gate = ConsoleApprovalGate(input_func=scripted_input(answer), output=io.StringIO())
            assert gate.request_approval(invocation, decision()) == expected

    def test_invalid_input_reprompts(self):
        output = io.StringIO()
        gate = ConsoleApprovalGate(input_func=scripted_input("yes", "9", "1"), output=output)
        choice = gate.request_approval(ToolInvocation("read_file", {"path": "a"}), decision())
        assert choice == ApprovalChoice.ALLOW_ONCE
        assert output.getvalue().count("Invalid choice") == 2

    def test_end_of_input_denies(self):
        gate = ConsoleApprovalGate(input_func=scripted_input(), output=io.StringIO())
        choice = gate.request_approval(ToolInvocation("read_file", {"path": "a"}), decision())
        assert choice == ApprovalChoice.DENY

    def test_prompt_shows_tool_parameters_and_risk(self):
        output = io.StringIO()
        gate = ConsoleApprovalGate(input_func=scripted_input("3"), output=output)
        gate.request_approval(
            ToolInvocation("execute_command", {"command": "chown me f"}),
            decision(RiskLevel.MEDIUM, warning="Command contains a medium-risk operation: chown"),
            description="Run a shell command",
        )
        text = output.getvalue()
        assert "Tool: execute_command" in text
        assert "Description: Run a shell command" in text
        assert 'command: "chown me f"' in text
        assert "Risk level: MEDIUM" in text
        assert "medium-risk operation: chown" in text

    def test_choice_properties(self):
        assert ApprovalChoice.ALLOW_ALWAYS.allowed and ApprovalChoice.ALLOW_ALWAYS.persistent
        assert ApprovalChoice.ALLOW_ONCE.allowed and not ApprovalChoice.ALLOW_ONCE.persistent
        assert not ApprovalChoice.DENY_ALWAYS.allowed and ApprovalChoice.DENY_ALWAYS.persistent


class TestConfirmDangerous:
    """Yes/no confirmation."""

    def test_yes_and_no(self):
        assert ConsoleApprovalGate(scripted_input("y"), io.StringIO()).confirm_dangerous("op")
        assert ConsoleApprovalGate(scripted_input("YES"), io.StringIO()).confirm_dangerous("op")
        assert not ConsoleApprovalGate(scripted_input("no"), io.StringIO()).confirm_dangerous("op")

    def test_invalid_answer_reprompts(self):
        output = io.StringIO()
        gate = ConsoleApprovalGate(scripted_input("maybe", "n"), output)
        assert not gate.confirm_dangerous("Disable the blocklist")
        assert 'Please answer "yes" or "no".' in output.getvalue()

    def test_end_of_input_is_no(self):
        assert not ConsoleApprovalGate(scripted_input(), io.StringIO()).confirm_dangerous("op")
