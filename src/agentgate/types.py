"""
Core types for the agent system.

These types represent the data that flows through the agent loop: the
conversation messages, the invocation decoded from model text, and the
derived risk and permission verdicts that decide whether it may run.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class Role(str, Enum):
    """Message roles in the conversation."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class RiskLevel(str, Enum):
    """Risk attached to a candidate operation before authorization."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class PermissionLevel(str, Enum):
    """Strictness profile mapping risk to approval requirements."""
    STRICT = "strict"
    NORMAL = "normal"
    PERMISSIVE = "permissive"


@dataclass
class Message:
    """
    A single message in the conversation history.

    Tool responses and corrective instructions are USER messages written by
    the agent; they carry ``metadata["source"] == "agent"`` so the client
    can tell them apart from what the human typed.
    """
    role: Role
    content: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def from_human(self) -> bool:
        return self.role == Role.USER and self.metadata.get("source", "human") == "human"

    def to_dict(self) -> dict[str, Any]:
        return {
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        timestamp = data.get("timestamp")
        return cls(
            role=Role(data["role"]),
            content=data.get("content", ""),
            timestamp=datetime.fromisoformat(timestamp) if timestamp else datetime.now(UTC),
            metadata=data.get("metadata") or {},
        )


@dataclass
class ToolInvocation:
    """
    A request from the model to run a named tool.

    ``requires_approval`` is an explicit per-call override. The protocol
    codec never sets it, so the model cannot talk its way past approval;
    only trusted callers constructing invocations directly can.
    """
    name: str
    parameters: dict[str, Any] = field(default_factory=dict)
    requires_approval: bool | None = None


@dataclass(frozen=True)
class ToolResult:
    """
    The result of executing a tool.

    Appended verbatim to the conversation as a tool-response message.
    """
    success: bool
    data: Any = None
    error: str | None = None
    output: str | None = None

    @classmethod
    def ok(cls, data: Any = None, output: str | None = None) -> "ToolResult":
        return cls(success=True, data=data, output=output)

    @classmethod
    def fail(cls, error: str, data: Any = None) -> "ToolResult":
        return cls(success=False, error=error, data=data)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"success": self.success}
        if self.data is not None:
            result["data"] = self.data
        if self.error is not None:
            result["error"] = self.error
        if self.output is not None:
            result["output"] = self.output
        return result


@dataclass(frozen=True)
class ToolContext:
    """Execution context handed to every tool handler."""
    working_directory: str
    environment: dict[str, str] = field(default_factory=dict)
    session_id: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True)
class RiskDecision:
    """Outcome of a security check. Derived, never persisted."""
    allowed: bool
    risk_level: RiskLevel
    blocked_reason: str | None = None
    warning: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed": self.allowed,
            "risk_level": self.risk_level.value,
            "blocked_reason": self.blocked_reason,
            "warning": self.warning,
        }


@dataclass(frozen=True)
class PermissionDecision:
    """Outcome of a permission check: deny, auto-allow, or needs approval."""
    allowed: bool
    requires_approval: bool
    risk_decision: RiskDecision
    reason: str | None = None
