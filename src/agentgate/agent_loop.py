"""
AgentLoop - One bounded, approval-gated turn of the agent.

A turn starts when the human sends a message and ends when the model calls
the terminal tool (respond_to_user) successfully, when the completion
client gives up, or when the iteration cap is reached. Inside a turn each
iteration is:

1. Send the conversation to the model, append its reply
2. Count <tool_call> blocks; zero or several is a protocol violation that
   is answered with a corrective message, and the loop goes round again
3. Ask the permission policy about the single invocation
4. Ask the human when the policy says approval is required
5. Execute through the registry, truncate long output, append the result

Every iteration counts toward the cap, including the ones that only
produced a correction. Nothing the model writes can end the turn with an
exception; failures become tool responses it can read.
"""

import logging
import os
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any

from agentgate.approval import ApprovalChoice, ApprovalGate
from agentgate.config import LoopConfig
from agentgate.events import EventLog, EventType
from agentgate.llm import LLMClient, LLMError
from agentgate.permissions import PermissionPolicy
from agentgate.protocol import find_tool_call_blocks, format_tool_response, parse_tool_call
from agentgate.session import Session
from agentgate.settings import SettingsError
from agentgate.tools import ToolRegistry
from agentgate.types import ToolContext, ToolInvocation, ToolResult

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "\n...[truncated]..."
TRUNCATED_FIELDS = ("stdout", "stderr")

MULTIPLE_CALLS_ERROR = "Only one tool can be called at a time"
USER_DENIED_ERROR = "Tool execution was denied by the user"


class LoopPhase(Enum):
    """Where the loop is within the current iteration."""
    AWAITING_MODEL = "awaiting_model"
    HAS_INVOCATION = "has_invocation"
    AWAITING_PERMISSION = "awaiting_permission"
    AWAITING_APPROVAL = "awaiting_approval"
    EXECUTING = "executing"
    TERMINATED = "terminated"


class TurnOutcome(str, Enum):
    """How a turn ended."""
    COMPLETED = "completed"
    MAX_ITERATIONS = "max_iterations"
    FAILED = "failed"


@dataclass
class TurnResult:
    """Summary of a finished turn, returned to the caller."""
    outcome: TurnOutcome
    iterations: int
    final_message: str | None = None
    message_type: str | None = None
    error: str | None = None

    @property
    def completed(self) -> bool:
        return self.outcome == TurnOutcome.COMPLETED


@dataclass
class AgentState:
    """Current state of the agent within a turn."""
    phase: LoopPhase = LoopPhase.TERMINATED
    iteration: int = 0
    model_calls: int = 0
    tool_call_count: int = 0
    corrections: int = 0
    history: list[LoopPhase] = field(default_factory=list)


def truncate_output(result: ToolResult, max_lines: int) -> tuple[ToolResult, list[str]]:
    """
    Cut stdout/stderr-like fields of a result to max_lines lines.

    Returns the (possibly new) result and the names of the fields that
    were cut.
    """
    if not isinstance(result.data, dict):
        return result, []

    data = dict(result.data)
    truncated = []
    for key in TRUNCATED_FIELDS:
        value = data.get(key)
        if not isinstance(value, str):
            continue
        lines = value.split("\n")
        if len(lines) > max_lines:
            data[key] = "\n".join(lines[:max_lines]) + TRUNCATION_MARKER
            truncated.append(key)

    if not truncated:
        return result, []
    return replace(result, data=data), truncated


class AgentLoop:
    """
    Turn-based agent loop.

    Collaborators are injected: the session owns the conversation, the
    client talks to the model, the registry runs tools, the policy decides
    and the gate asks the human. The loop only orchestrates.
    """

    def __init__(
        self,
        session: Session,
        llm_client: LLMClient,
        registry: ToolRegistry,
        permission_policy: PermissionPolicy,
        approval_gate: ApprovalGate,
        config: LoopConfig | None = None,
        event_log: EventLog | None = None,
        working_directory: str | None = None,
        environment: dict[str, str] | None = None,
    ):
        self.session = session
        self.llm_client = llm_client
        self.registry = registry
        self.permission_policy = permission_policy
        self.approval_gate = approval_gate
        self.config = config or LoopConfig()
        self.event_log = event_log or EventLog()
        self.working_directory = working_directory or os.getcwd()
        self.environment = environment or {}
        self.state = AgentState()

    def _set_phase(self, phase: LoopPhase) -> None:
        logger.debug(f"Iteration {self.state.iteration}: {self.state.phase.value} -> {phase.value}")
        self.state.phase = phase
        self.state.history.append(phase)

    def _log(self, event_type: EventType, **data: Any) -> None:
        self.event_log.log_event(event_type, iteration=self.state.iteration, **data)

    def _finish(self, outcome: TurnOutcome, **fields: Any) -> TurnResult:
        self._set_phase(LoopPhase.TERMINATED)
        result = TurnResult(outcome=outcome, iterations=self.state.iteration, **fields)
        self._log(EventType.TURN_END, outcome=outcome.value, error=result.error)
        return result

    def run_turn(self, user_message: str) -> TurnResult:
        """
        Process one human message until the turn ends.

        Completion failures (exhausted retries, auth) end the turn with
        outcome FAILED; they are logged, not raised.
        """
        self.state = AgentState()
        self.session.add_user_message(user_message)
        self._log(EventType.TURN_START, session_id=self.session.id)

        while self.state.iteration < self.config.max_iterations:
            self.state.iteration += 1
            self._set_phase(LoopPhase.AWAITING_MODEL)

            messages = self.session.get_messages()
            self._log(EventType.LLM_REQUEST, message_count=len(messages))
            try:
                completion = self.llm_client.chat_completion(messages)
            except LLMError as e:
                logger.error(f"Failed to get a response from the model: {e}")
                self._log(EventType.ERROR, error_type=e.error_type.value, error=e.message)
                return self._finish(TurnOutcome.FAILED, error=str(e))
            self.state.model_calls += 1

            usage = asdict(completion.usage) if completion.usage else None
            self.session.add_assistant_message(completion.content, usage=usage, model=completion.model)
            self._log(EventType.LLM_RESPONSE, model=completion.model, length=len(completion.content))

            blocks = find_tool_call_blocks(completion.content)
            if len(blocks) > 1:
                logger.warning(f"Model issued {len(blocks)} tool calls in one reply")
                self._log(EventType.PROTOCOL_VIOLATION, kind="multiple_tool_calls", count=len(blocks))
                self.state.corrections += 1
                self.session.add_agent_message(
                    format_tool_response(ToolResult.fail(MULTIPLE_CALLS_ERROR)),
                    tool_response=True,
                )
                continue

            invocation = parse_tool_call(blocks[0]) if blocks else None
            if invocation is None:
                self._log(EventType.PROTOCOL_VIOLATION, kind="no_tool_call", blocks=len(blocks))
                self.state.corrections += 1
                self.session.add_agent_message(self.no_tool_call_message(), warning="no_tool_call")
                continue

            self._set_phase(LoopPhase.HAS_INVOCATION)
            self.state.tool_call_count += 1
            result = self._handle_invocation(invocation)

            if invocation.name == self.config.terminal_tool and result.success:
                data = result.data if isinstance(result.data, dict) else {}
                return self._finish(
                    TurnOutcome.COMPLETED,
                    final_message=data.get("message"),
                    message_type=data.get("type"),
                )

        logger.warning(f"Reached the maximum of {self.config.max_iterations} iterations, ending the turn")
        return self._finish(
            TurnOutcome.MAX_ITERATIONS,
            error=f"Reached the maximum of {self.config.max_iterations} iterations",
        )

    def no_tool_call_message(self) -> str:
        """Corrective instruction sent when a reply holds no usable tool call."""
        lines = [
            "Call a tool. To show a response to the user, use the "
            f"{self.config.terminal_tool} tool.",
            "",
            "Available tools:",
        ]
        lines.extend(f"- {tool.name}: {tool.description}" for tool in self.registry.list_tools())
        lines.append("")
        lines.append("Every reply must contain exactly one tool call.")
        return "\n".join(lines)

    def _record(self, invocation: ToolInvocation, result: ToolResult) -> ToolResult:
        self.session.add_agent_message(
            format_tool_response(result),
            tool_response=True,
            tool=invocation.name,
        )
        return result

    def _handle_invocation(self, invocation: ToolInvocation) -> ToolResult:
        """Authorize, maybe ask the human, execute, and record the result."""
        self._set_phase(LoopPhase.AWAITING_PERMISSION)
        decision = self.permission_policy.check_permission(invocation)
        self._log(
            EventType.PERMISSION_CHECKED,
            tool=invocation.name,
            allowed=decision.allowed,
            requires_approval=decision.requires_approval,
            risk=decision.risk_decision.to_dict(),
        )

        if not decision.allowed:
            reason = decision.reason or "Permission denied"
            self._log(EventType.PERMISSION_DENIED, tool=invocation.name, reason=reason)
            return self._record(invocation, ToolResult.fail(reason))

        if decision.requires_approval:
            self._set_phase(LoopPhase.AWAITING_APPROVAL)
            tool = self.registry.get(invocation.name)
            self._log(EventType.APPROVAL_REQUESTED, tool=invocation.name)
            choice = self.approval_gate.request_approval(
                invocation,
                decision,
                description=tool.description if tool else "",
            )
            self._log(EventType.APPROVAL_RESOLVED, tool=invocation.name, choice=choice.value)
            self._persist_choice(invocation.name, choice)

            if not choice.allowed:
                logger.info(f"User denied {invocation.name}")
                return self._record(invocation, ToolResult.fail(USER_DENIED_ERROR))

        self._set_phase(LoopPhase.EXECUTING)
        context = ToolContext(
            working_directory=self.working_directory,
            environment=self.environment,
            session_id=self.session.id,
        )
        self._log(EventType.TOOL_EXECUTION_START, tool=invocation.name)
        result = self.registry.execute(invocation, context)
        result, truncated = truncate_output(result, self.config.max_output_lines)
        if truncated:
            self._log(EventType.OUTPUT_TRUNCATION, tool=invocation.name, fields=truncated)
        self._log(
            EventType.TOOL_EXECUTION_END,
            tool=invocation.name,
            success=result.success,
            error=result.error,
        )
        return self._record(invocation, result)

    def _persist_choice(self, tool_name: str, choice: ApprovalChoice) -> None:
        # The choice applies to this call even if it cannot be saved
        try:
            if choice == ApprovalChoice.ALLOW_ALWAYS:
                self.permission_policy.add_to_permanently_allowed(tool_name)
            elif choice == ApprovalChoice.DENY_ALWAYS:
                self.permission_policy.record_rejection(tool_name)
        except SettingsError as e:
            logger.error(f"Could not save approval choice for {tool_name}: {e}")
