"""
Tests for the LLM client: payload shaping, classification and retry.

The wire is replaced with httpx.MockTransport and sleeping is recorded
instead of performed.
"""

import json

import httpx
import pytest

from agentgate.config import LLMConfig, RetryConfig
from agentgate.llm import (
    ChatCompletion,
    ErrorType,
    LLMClient,
    LLMError,
    classify_error,
    to_api_messages,
)
from agentgate.types import Message, Role


def completion_body(content: str = "<tool_call><respond_to_user><message>hi</message></respond_to_user></tool_call>"):
    return {
        "model": "test-model",
        "choices": [{"message": {"role": "assistant", "content": content}, "finish_reason": "stop"}],
        "usage": {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
    }


class ScriptedTransport:
    """Returns the queued responses in order and records every request."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def make_client(transport: ScriptedTransport, config: LLMConfig | None = None, **retry):
    sleeps: list[float] = []
    client = LLMClient(
        config or LLMConfig(base_url="https://llm.test/v1", api_key="sk-test", model="test-model"),
        RetryConfig(**retry),
        transport=httpx.MockTransport(transport),
        sleep=sleeps.append,
    )
    return client, sleeps


MESSAGES = [
    Message(role=Role.SYSTEM, content="You are helpful."),
    Message(role=Role.USER, content="list files"),
]


class TestMessageConversion:
    """Wire format of the conversation."""

    def test_human_messages_are_wrapped(self):
        api = to_api_messages(MESSAGES)
        assert api[0] == {"role": "system", "content": "You are helpful."}
        assert api[1] == {"role": "user", "content": "<user_query>list files</user_query>"}

    def test_agent_messages_are_sent_verbatim(self):
        message = Message(role=Role.USER, content="<tool_response>{}</tool_response>", metadata={"source": "agent"})
        assert to_api_messages([message])[0]["content"] == "<tool_response>{}</tool_response>"


class TestChatCompletion:
    """Successful requests and payload shaping."""

    def test_returns_content_usage_and_model(self):
        transport = ScriptedTransport(httpx.Response(200, json=completion_body("hello")))
        client, _ = make_client(transport)
        result = client.chat_completion(MESSAGES)
        assert result.content == "hello"
        assert result.model == "test-model"
        assert result.usage.total_tokens == 15

        request = transport.requests[0]
        assert request.url == "https://llm.test/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-test"

    def test_unset_generation_parameters_are_omitted(self):
        transport = ScriptedTransport(httpx.Response(200, json=completion_body()))
        client, _ = make_client(transport)
        client.chat_completion(MESSAGES)
        payload = json.loads(transport.requests[0].content)
        assert "temperature" not in payload
        assert "top_p" not in payload
        assert "max_tokens" not in payload
        assert payload["model"] == "test-model"

    def test_configured_generation_parameters_are_sent(self):
        config = LLMConfig(
            base_url="https://llm.test/v1", api_key="k", model="m", temperature=0.2, max_tokens=512
        )
        transport = ScriptedTransport(httpx.Response(200, json=completion_body()))
        client, _ = make_client(transport, config)
        client.chat_completion(MESSAGES)
        payload = json.loads(transport.requests[0].content)
        assert payload["temperature"] == 0.2
        assert payload["max_tokens"] == 512
        assert "top_p" not in payload

    def test_usage_is_optional(self):
        body = completion_body("ok")
        del body["usage"]
        assert ChatCompletion.from_api_response(body).usage is None


class TestRetry:
    """Classification and exponential backoff."""

    def test_empty_responses_are_retried_with_backoff(self):
        transport = ScriptedTransport(
            httpx.Response(200, json=completion_body("   ")),
            httpx.Response(200, json=completion_body("")),
            httpx.Response(200, json=completion_body("finally")),
        )
        client, sleeps = make_client(transport)
        assert client.chat_completion(MESSAGES).content == "finally"
        assert sleeps == [1.0, 2.0]

    def test_rate_limit_exhaustion_raises_last_error(self):
        transport = ScriptedTransport(*[httpx.Response(429) for _ in range(4)])
        client, sleeps = make_client(transport)
        with pytest.raises(LLMError) as exc_info:
            client.chat_completion(MESSAGES)
        assert exc_info.value.error_type == ErrorType.RATE_LIMIT
        assert len(transport.requests) == 4
        assert sleeps == [1.0, 2.0, 4.0]

    def test_backoff_is_capped(self):
        transport = ScriptedTransport(*[httpx.Response(503) for _ in range(7)])
        client, sleeps = make_client(transport, max_retries=6)
        with pytest.raises(LLMError):
            client.chat_completion(MESSAGES)
        assert sleeps == [1.0, 2.0, 4.0, 8.0, 16.0, 16.0]

    def test_auth_error_is_not_retried(self):
        transport = ScriptedTransport(httpx.Response(401, json={"error": "bad key"}))
        client, sleeps = make_client(transport)
        with pytest.raises(LLMError) as exc_info:
            client.chat_completion(MESSAGES)
        assert exc_info.value.error_type == ErrorType.AUTH
        assert not exc_info.value.retryable
        assert sleeps == []

    def test_network_error_is_retried(self):
        transport = ScriptedTransport(
            httpx.ConnectError("connection refused"),
            httpx.Response(200, json=completion_body("ok")),
        )
        client, sleeps = make_client(transport)
        assert client.chat_completion(MESSAGES).content == "ok"
        assert sleeps == [1.0]

    def test_client_error_is_unknown_and_fatal(self):
        transport = ScriptedTransport(httpx.Response(400, text="bad request"))
        client, sleeps = make_client(transport)
        with pytest.raises(LLMError) as exc_info:
            client.chat_completion(MESSAGES)
        assert exc_info.value.error_type == ErrorType.UNKNOWN
        assert exc_info.value.status_code == 400
        assert sleeps == []

    def test_malformed_response_is_unknown(self):
        transport = ScriptedTransport(httpx.Response(200, json={"choices": []}))
        client, sleeps = make_client(transport)
        with pytest.raises(LLMError) as exc_info:
            client.chat_completion(MESSAGES)
        assert exc_info.value.error_type == ErrorType.UNKNOWN
        assert sleeps == []


class TestMalformedPayloads:
    """Unexpected JSON shapes become LLMError, never raw exceptions."""

    def test_null_message_is_unknown(self):
        with pytest.raises(LLMError) as exc_info:
            ChatCompletion.from_api_response({"choices": [{"message": None}]})
        assert exc_info.value.error_type == ErrorType.UNKNOWN

    def test_list_content_is_unknown(self):
        body = {"choices": [{"message": {"role": "assistant", "content": [{"type": "text", "text": "hi"}]}}]}
        with pytest.raises(LLMError) as exc_info:
            ChatCompletion.from_api_response(body)
        assert exc_info.value.error_type == ErrorType.UNKNOWN
        assert "list" in exc_info.value.message

    def test_null_usage_values_count_as_zero(self):
        body = completion_body("ok")
        body["usage"] = {"prompt_tokens": None, "completion_tokens": None, "total_tokens": 7}
        usage = ChatCompletion.from_api_response(body).usage
        assert (usage.prompt_tokens, usage.completion_tokens, usage.total_tokens) == (0, 0, 7)

    def test_non_dict_usage_is_ignored(self):
        body = completion_body("ok")
        body["usage"] = "n/a"
        assert ChatCompletion.from_api_response(body).usage is None

    def test_client_raises_unknown_without_retrying(self):
        transport = ScriptedTransport(httpx.Response(200, json={"choices": [{"message": None}]}))
        client, sleeps = make_client(transport)
        with pytest.raises(LLMError) as exc_info:
            client.chat_completion(MESSAGES)
        assert exc_info.value.error_type == ErrorType.UNKNOWN
        assert len(transport.requests) == 1
        assert sleeps == []


class TestClassifyError:
    """Mapping of exceptions to error types."""

    def _status_error(self, status: int) -> httpx.HTTPStatusError:
        request = httpx.Request("POST", "https://llm.test/v1/chat/completions")
        response = httpx.Response(status, request=request)
        return httpx.HTTPStatusError("error", request=request, response=response)

    @pytest.mark.parametrize("status, expected", [
        (429, ErrorType.RATE_LIMIT),
        (401, ErrorType.AUTH),
        (403, ErrorType.AUTH),
        (500, ErrorType.SERVER),
        (502, ErrorType.SERVER),
        (404, ErrorType.UNKNOWN),
    ])
    def test_status_codes(self, status, expected):
        assert classify_error(self._status_error(status)).error_type == expected

    def test_timeout_is_network(self):
        assert classify_error(httpx.ReadTimeout("timed out")).error_type == ErrorType.NETWORK

    def test_other_exceptions_are_unknown(self):
        error = classify_error(RuntimeError("boom"))
        assert error.error_type == ErrorType.UNKNOWN
        assert not error.retryable


class TestReconfiguration:
    """In-place updates."""

    def test_update_retry_config(self):
        client, _ = make_client(ScriptedTransport())
        client.update_retry_config(max_retries=5)
        assert client.retry_config.max_retries == 5
        assert client.retry_config.base_delay == 1.0

    def test_update_config_switches_model(self):
        transport = ScriptedTransport(httpx.Response(200, json=completion_body()))
        client, _ = make_client(transport)
        client.update_config(LLMConfig(base_url="https://other.test/v1", api_key="k2", model="other"))
        client.chat_completion(MESSAGES)
        request = transport.requests[0]
        assert request.url.host == "other.test"
        assert json.loads(request.content)["model"] == "other"
