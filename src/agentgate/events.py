"""
Event log for the agent loop.

Every phase change and notable step of a turn (model requests, protocol
violations, permission verdicts, approvals, executions, truncation) is
appended here. The log is append-only and can be saved as JSON lines for
later inspection.
"""

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any


class EventType(Enum):
    """Types of events in the loop event log."""
    TURN_START = "turn_start"
    LLM_REQUEST = "llm_request"
    LLM_RESPONSE = "llm_response"
    PROTOCOL_VIOLATION = "protocol_violation"
    PERMISSION_CHECKED = "permission_checked"
    PERMISSION_DENIED = "permission_denied"
    APPROVAL_REQUESTED = "approval_requested"
    APPROVAL_RESOLVED = "approval_resolved"
    TOOL_EXECUTION_START = "tool_execution_start"
    TOOL_EXECUTION_END = "tool_execution_end"
    OUTPUT_TRUNCATION = "output_truncation"
    TURN_END = "turn_end"
    ERROR = "error"


@dataclass
class LoopEvent:
    """A single event in the loop event log."""
    timestamp: datetime
    event_type: EventType
    iteration: int
    data: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "iteration": self.iteration,
            "data": self.data,
        }


@dataclass
class EventLog:
    """Append-only event log for agent loop operations."""
    events: list[LoopEvent] = field(default_factory=list)

    def append(self, event: LoopEvent) -> None:
        self.events.append(event)

    def log_event(
        self,
        event_type: EventType,
        iteration: int = 0,
        **data: Any,
    ) -> LoopEvent:
        event = LoopEvent(
            timestamp=datetime.now(UTC),
            event_type=event_type,
            iteration=iteration,
            data=data,
        )
        self.append(event)
        return event

    def of_type(self, event_type: EventType) -> list[LoopEvent]:
        return [e for e in self.events if e.event_type == event_type]

    def clear(self) -> None:
        self.events.clear()

    def save(self, path: Path) -> None:
        lines = [json.dumps(e.to_dict(), default=str) for e in self.events]
        path.write_text("\n".join(lines))

    @classmethod
    def load(cls, path: Path) -> "EventLog":
        log = cls()
        for line in path.read_text().strip().split("\n"):
            if line:
                data = json.loads(line)
                log.append(LoopEvent(
                    timestamp=datetime.fromisoformat(data["timestamp"]),
                    event_type=EventType(data["event_type"]),
                    iteration=data.get("iteration", 0),
                    data=data["data"],
                ))
        return log
