"""
Session - The owner of the conversation.

A session owns the ordered message history for one user. The first message
is the system prompt and can never be replaced; after it the history is
append-only. The agent loop only ever appends.
"""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from agentgate.types import Message, Role


@dataclass
class Session:
    """
    A single agent session.

    The session owns:
    - The conversation history (messages)
    - Free-form metadata (model name, counters)
    """

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    system_prompt: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    _messages: list[Message] = field(default_factory=list, repr=False)
    _closed: bool = field(default=False, repr=False)

    def __post_init__(self) -> None:
        """Seed the conversation with the system prompt."""
        if self.system_prompt and not self._messages:
            self._messages.append(Message(
                role=Role.SYSTEM,
                content=self.system_prompt,
            ))

    def add_message(
        self,
        role: Role,
        content: str,
        metadata: dict[str, Any] | None = None,
    ) -> Message:
        """Append a message to the conversation."""
        self._check_not_closed()
        if role == Role.SYSTEM:
            raise ValueError("The system prompt is fixed when the session is created")
        message = Message(role=role, content=content, metadata=dict(metadata or {}))
        self._messages.append(message)
        return message

    def add_user_message(self, content: str) -> Message:
        """Add a message typed by the human."""
        return self.add_message(Role.USER, content)

    def add_agent_message(self, content: str, **metadata: Any) -> Message:
        """Add a user-role message written by the agent (tool response, correction)."""
        return self.add_message(Role.USER, content, {"source": "agent", **metadata})

    def add_assistant_message(self, content: str, **metadata: Any) -> Message:
        """Add a model completion to the conversation."""
        return self.add_message(Role.ASSISTANT, content, metadata)

    def get_messages(self) -> list[Message]:
        """Get all messages in the conversation."""
        return list(self._messages)

    def close(self) -> None:
        """Close the session. Further appends raise."""
        self._closed = True

    def _check_not_closed(self) -> None:
        if self._closed:
            raise RuntimeError(f"Session {self.id} is closed")

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def message_count(self) -> int:
        return len(self._messages)

    def to_dict(self) -> dict[str, Any]:
        """Serialize the session to a dictionary."""
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat(),
            "system_prompt": self.system_prompt,
            "messages": [m.to_dict() for m in self._messages],
            "metadata": self.metadata,
            "closed": self._closed,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Session":
        """Restore a session serialized by to_dict()."""
        return cls(
            id=data["id"],
            created_at=datetime.fromisoformat(data["created_at"]),
            system_prompt=data.get("system_prompt", ""),
            metadata=data.get("metadata", {}),
            _messages=[Message.from_dict(m) for m in data.get("messages", [])],
            _closed=data.get("closed", False),
        )
