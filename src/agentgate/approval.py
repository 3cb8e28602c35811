"""
Human-in-the-loop approval.

The agent loop receives an ApprovalGate at construction and calls it when
the permission policy cannot resolve an invocation on its own. The gate
only asks; persisting "always" choices is the caller's job.
"""

import json
import logging
import sys
from collections.abc import Callable
from enum import Enum
from typing import Any, Protocol, TextIO

from agentgate.types import PermissionDecision, RiskLevel, ToolInvocation

logger = logging.getLogger(__name__)

MAX_PARAMETER_DISPLAY = 100
RULE = "-" * 40


class ApprovalChoice(str, Enum):
    """What the human decided about a pending invocation."""
    ALLOW_ONCE = "allow_once"
    ALLOW_ALWAYS = "allow_always"
    DENY = "deny"
    DENY_ALWAYS = "deny_always"

    @property
    def allowed(self) -> bool:
        return self in (ApprovalChoice.ALLOW_ONCE, ApprovalChoice.ALLOW_ALWAYS)

    @property
    def persistent(self) -> bool:
        return self in (ApprovalChoice.ALLOW_ALWAYS, ApprovalChoice.DENY_ALWAYS)


CHOICES = {
    "1": ApprovalChoice.ALLOW_ONCE,
    "2": ApprovalChoice.ALLOW_ALWAYS,
    "3": ApprovalChoice.DENY,
    "4": ApprovalChoice.DENY_ALWAYS,
}

RISK_MARKERS = {
    RiskLevel.HIGH: "[!!!]",
    RiskLevel.MEDIUM: "[!!]",
    RiskLevel.LOW: "[!]",
}


class ApprovalGate(Protocol):
    """Blocking human checkpoint for operations the policy did not resolve."""

    def request_approval(
        self,
        invocation: ToolInvocation,
        decision: PermissionDecision,
        description: str = "",
    ) -> ApprovalChoice: ...

    def confirm_dangerous(self, operation: str) -> bool: ...


def format_parameter_value(value: Any) -> str:
    """Render a parameter for display: long strings cut, structures pretty-printed."""
    if isinstance(value, str):
        if len(value) > MAX_PARAMETER_DISPLAY:
            return f'"{value[:MAX_PARAMETER_DISPLAY - 3]}..."'
        return f'"{value}"'
    if isinstance(value, (dict, list)):
        return json.dumps(value, indent=2, ensure_ascii=False, default=str)
    return str(value)


class ConsoleApprovalGate:
    """
    Terminal approval prompt.

    Reads with input_func (input() by default) and writes to output
    (stdout by default). Invalid answers re-prompt; there is no timeout.
    End of input counts as a plain deny so a closed stdin cannot spin.
    """

    def __init__(
        self,
        input_func: Callable[[str], str] | None = None,
        output: TextIO | None = None,
    ):
        self.input_func = input_func or input
        self.output = output or sys.stdout

    def _print(self, text: str = "") -> None:
        print(text, file=self.output)

    def _ask(self, prompt: str) -> str | None:
        try:
            return self.input_func(prompt).strip()
        except EOFError:
            return None

    def request_approval(
        self,
        invocation: ToolInvocation,
        decision: PermissionDecision,
        description: str = "",
    ) -> ApprovalChoice:
        self._print()
        self._print("Approval required to run a tool")
        self._print(RULE)
        self._print(f"Tool: {invocation.name}")
        self._print(f"Description: {description or 'No description available'}")

        if invocation.parameters:
            self._print("Parameters:")
            for key, value in invocation.parameters.items():
                self._print(f"   {key}: {format_parameter_value(value)}")

        risk = decision.risk_decision
        self._print(f"{RISK_MARKERS[risk.risk_level]} Risk level: {risk.risk_level.value.upper()}")
        if risk.warning:
            self._print(f"Warning: {risk.warning}")

        self._print()
        self._print("Options:")
        self._print("  1) Allow once")
        self._print("  2) Allow always")
        self._print("  3) Deny")
        self._print("  4) Deny always")
        self._print(RULE)

        while True:
            answer = self._ask("Choose (1-4): ")
            if answer is None:
                logger.warning(f"No input available, denying {invocation.name}")
                return ApprovalChoice.DENY
            choice = CHOICES.get(answer)
            if choice is not None:
                return choice
            self._print("Invalid choice. Enter a number from 1 to 4.")

    def confirm_dangerous(self, operation: str) -> bool:
        self._print()
        self._print("Dangerous operation")
        self._print(RULE)
        self._print(f"Operation: {operation}")
        self._print("This operation may affect your system.")
        self._print(RULE)

        while True:
            answer = self._ask("Really run it? (yes/no): ")
            if answer is None:
                return False
            answer = answer.lower()
            if answer in ("yes", "y"):
                return True
            if answer in ("no", "n"):
                return False
            self._print('Please answer "yes" or "no".')
