"""
Tests for Session - the owner of the conversation.
"""

import pytest

from agentgate.session import Session
from agentgate.types import Message, Role


class TestSession:
    """Conversation ownership."""

    def test_system_prompt_is_first_message(self):
        session = Session(system_prompt="You are helpful.")
        messages = session.get_messages()
        assert len(messages) == 1
        assert messages[0].role == Role.SYSTEM
        assert messages[0].content == "You are helpful."

    def test_messages_are_appended_in_order(self):
        session = Session(system_prompt="sys")
        session.add_user_message("hi")
        session.add_assistant_message("<tool_call>...</tool_call>", model="m")
        session.add_agent_message("<tool_response>{}</tool_response>", tool="read_file")
        roles = [m.role for m in session.get_messages()]
        assert roles == [Role.SYSTEM, Role.USER, Role.ASSISTANT, Role.USER]
        assert session.message_count == 4

    def test_agent_messages_are_not_from_human(self):
        session = Session()
        human = session.add_user_message("hi")
        agent = session.add_agent_message("correction", warning="no_tool_call")
        assert human.from_human
        assert not agent.from_human
        assert agent.metadata == {"source": "agent", "warning": "no_tool_call"}

    def test_system_prompt_cannot_be_added_later(self):
        session = Session(system_prompt="sys")
        with pytest.raises(ValueError):
            session.add_message(Role.SYSTEM, "new prompt")

    def test_get_messages_returns_a_copy(self):
        session = Session(system_prompt="sys")
        session.get_messages().append(Message(role=Role.USER, content="sneaky"))
        assert session.message_count == 1

    def test_closed_session_rejects_messages(self):
        session = Session()
        session.close()
        assert session.is_closed
        with pytest.raises(RuntimeError):
            session.add_user_message("hi")

    def test_round_trip(self):
        session = Session(system_prompt="sys", metadata={"model": "m"})
        session.add_user_message("hi")
        restored = Session.from_dict(session.to_dict())
        assert restored.id == session.id
        assert restored.metadata == {"model": "m"}
        assert [m.content for m in restored.get_messages()] == ["sys", "hi"]

    def test_each_session_has_unique_id(self):
        assert Session().id != Session().id
