"""
agentgate - An approval-gated tool-calling agent for OpenAI-compatible models.

A language model acts on the user's machine only through tools:

1. Tool calls are written as XML blocks, exactly one per reply
2. Every call is risk-classified before it is authorized
3. Calls the policy cannot resolve are put to the human
4. Results go back to the model as JSON tool responses
5. A turn ends when the model responds to the user, or at the iteration cap

The security layer classifies risk; it does not sandbox execution.
"""

__version__ = "0.1.0"

from agentgate.agent_loop import AgentLoop, TurnOutcome, TurnResult
from agentgate.approval import ApprovalChoice, ApprovalGate, ConsoleApprovalGate
from agentgate.builtin_tools import create_default_tools
from agentgate.config import AgentConfig, LLMConfig, LoopConfig, RetryConfig
from agentgate.events import EventLog, EventType
from agentgate.llm import ChatCompletion, ErrorType, LLMClient, LLMError
from agentgate.permissions import PermissionPolicy
from agentgate.safety import RiskClassifier, SecurityPolicy
from agentgate.session import Session
from agentgate.settings import (
    InMemorySettingsStore,
    JsonSettingsStore,
    PermissionSettings,
    SecuritySettings,
    SettingsError,
)
from agentgate.tools import Tool, ToolRegistry
from agentgate.types import (
    Message,
    PermissionDecision,
    PermissionLevel,
    RiskDecision,
    RiskLevel,
    Role,
    ToolContext,
    ToolInvocation,
    ToolResult,
)

__all__ = [
    "AgentConfig",
    "AgentLoop",
    "ApprovalChoice",
    "ApprovalGate",
    "ChatCompletion",
    "ConsoleApprovalGate",
    "ErrorType",
    "EventLog",
    "EventType",
    "InMemorySettingsStore",
    "JsonSettingsStore",
    "LLMClient",
    "LLMConfig",
    "LLMError",
    "LoopConfig",
    "Message",
    "PermissionDecision",
    "PermissionLevel",
    "PermissionPolicy",
    "PermissionSettings",
    "RetryConfig",
    "RiskClassifier",
    "RiskDecision",
    "RiskLevel",
    "Role",
    "SecurityPolicy",
    "SecuritySettings",
    "Session",
    "SettingsError",
    "Tool",
    "ToolContext",
    "ToolInvocation",
    "ToolRegistry",
    "ToolResult",
    "TurnOutcome",
    "TurnResult",
    "create_default_tools",
]
