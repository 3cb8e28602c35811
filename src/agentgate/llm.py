"""
LLM Client - Resilient chat completion over OpenAI-compatible APIs.

This client works with any OpenAI-compatible /chat/completions endpoint
(vLLM, Ollama, OpenAI itself). It adds three things on top of a plain POST:

- parameter shaping: only explicitly configured generation parameters are
  sent, unset ones are omitted rather than nulled;
- error classification: every failure becomes an LLMError with an
  ErrorType that says whether it is worth retrying;
- exponential backoff: retryable failures are retried with
  min(base_delay * 2**attempt, max_delay) seconds between attempts.

A blank completion is treated as a retryable server error.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

import httpx

from agentgate.config import LLMConfig, RetryConfig
from agentgate.types import Message

logger = logging.getLogger(__name__)

# Default timeout configuration (in seconds)
DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_READ_TIMEOUT = 180.0  # LLM responses can take a while
DEFAULT_WRITE_TIMEOUT = 10.0
DEFAULT_POOL_TIMEOUT = 10.0


class ErrorType(str, Enum):
    """Classification of a completion failure."""
    NETWORK = "network"
    RATE_LIMIT = "rate_limit"
    SERVER = "server"
    AUTH = "auth"
    UNKNOWN = "unknown"


RETRYABLE_ERRORS = frozenset({ErrorType.NETWORK, ErrorType.RATE_LIMIT, ErrorType.SERVER})


class LLMError(Exception):
    """Error from the LLM client, classified for the retry policy."""

    def __init__(
        self,
        error_type: ErrorType,
        message: str,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.error_type = error_type
        self.message = message
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return self.error_type in RETRYABLE_ERRORS

    def __str__(self) -> str:
        return f"[{self.error_type.value}] {self.message}"


def classify_status(status_code: int, detail: str = "") -> LLMError:
    """Map an HTTP error status to a classified LLMError."""
    if status_code == 429:
        return LLMError(ErrorType.RATE_LIMIT, "Rate limit reached", status_code)
    if status_code in (401, 403):
        return LLMError(ErrorType.AUTH, "API authentication failed", status_code)
    if status_code >= 500:
        return LLMError(ErrorType.SERVER, f"Server error (HTTP {status_code})", status_code)
    message = f"HTTP {status_code}: {detail}" if detail else f"HTTP {status_code}"
    return LLMError(ErrorType.UNKNOWN, message, status_code)


def classify_error(error: Exception) -> LLMError:
    """Convert any exception raised during a request into an LLMError."""
    if isinstance(error, LLMError):
        return error
    if isinstance(error, httpx.HTTPStatusError):
        return classify_status(error.response.status_code, error.response.text)
    if isinstance(error, httpx.TransportError):
        # Timeouts, refused connections, dropped sockets
        return LLMError(ErrorType.NETWORK, f"Network error: {error}")
    return LLMError(ErrorType.UNKNOWN, str(error) or type(error).__name__)


@dataclass
class TokenUsage:
    """Token accounting reported by the provider."""
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "TokenUsage":
        return cls(
            prompt_tokens=int(data.get("prompt_tokens") or 0),
            completion_tokens=int(data.get("completion_tokens") or 0),
            total_tokens=int(data.get("total_tokens") or 0),
        )


@dataclass
class ChatCompletion:
    """A non-empty completion returned by the provider."""
    content: str
    model: str
    usage: TokenUsage | None = None

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "ChatCompletion":
        """
        Parse an API response.

        Raises LLMError(UNKNOWN) for malformed payloads and
        LLMError(SERVER) for a blank completion.
        """
        try:
            message = data["choices"][0]["message"]
        except (KeyError, IndexError, TypeError) as e:
            raise LLMError(ErrorType.UNKNOWN, "Invalid API response") from e
        if not isinstance(message, dict):
            raise LLMError(ErrorType.UNKNOWN, "Invalid API response: message is not an object")

        content = message.get("content") or ""
        if not isinstance(content, str):
            raise LLMError(ErrorType.UNKNOWN, f"Unexpected content type: {type(content).__name__}")
        if not content.strip():
            raise LLMError(ErrorType.SERVER, "Received an empty response")

        usage = data.get("usage")
        try:
            token_usage = TokenUsage.from_api(usage) if isinstance(usage, dict) else None
        except (TypeError, ValueError) as e:
            raise LLMError(ErrorType.UNKNOWN, f"Invalid usage data: {e}") from e
        return cls(
            content=content,
            model=data.get("model") or "",
            usage=token_usage,
        )


def to_api_messages(messages: list[Message]) -> list[dict[str, str]]:
    """
    Convert conversation messages to the OpenAI wire format.

    Messages typed by the human are wrapped in <user_query> tags; tool
    responses and corrections written by the agent are sent as-is.
    """
    api_messages = []
    for message in messages:
        content = message.content
        if message.from_human:
            content = f"<user_query>{content}</user_query>"
        api_messages.append({"role": message.role.value, "content": content})
    return api_messages


class LLMClient:
    """
    Client for OpenAI-compatible LLM APIs.

    Synchronous; one request at a time. The HTTP transport and the sleep
    function can be injected for tests.
    """

    def __init__(
        self,
        config: LLMConfig | None = None,
        retry_config: RetryConfig | None = None,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config or LLMConfig.from_env()
        self.retry_config = retry_config or RetryConfig()
        self._transport = transport
        self._sleep = sleep
        self._client = self._build_client()

    def _build_client(self) -> httpx.Client:
        # Use layered timeouts for better control
        timeout = httpx.Timeout(
            connect=DEFAULT_CONNECT_TIMEOUT,
            read=DEFAULT_READ_TIMEOUT,
            write=DEFAULT_WRITE_TIMEOUT,
            pool=DEFAULT_POOL_TIMEOUT,
        )
        return httpx.Client(
            base_url=self.config.base_url,
            headers={
                "Authorization": f"Bearer {self.config.api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=self._transport,
        )

    def build_payload(self, messages: list[Message]) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.config.model,
            "messages": to_api_messages(messages),
            "stream": False,
        }
        payload.update(self.config.generation_parameters())
        return payload

    def _request(self, payload: dict[str, Any]) -> ChatCompletion:
        try:
            response = self._client.post("/chat/completions", json=payload)
            response.raise_for_status()
            data = response.json()
        except ValueError as e:
            raise LLMError(ErrorType.UNKNOWN, f"Unexpected response format: {e}") from e
        except httpx.HTTPError as e:
            raise classify_error(e) from e
        return ChatCompletion.from_api_response(data)

    def chat_completion(self, messages: list[Message]) -> ChatCompletion:
        """
        Send the conversation and return the completion.

        Retries retryable failures with exponential backoff. Fatal errors
        are raised at once; when retries run out the last error is raised.

        Raises:
            LLMError: classified failure
        """
        payload = self.build_payload(messages)
        max_retries = self.retry_config.max_retries

        for attempt in range(max_retries + 1):
            logger.debug(f"Sending chat request with {len(messages)} messages (attempt {attempt + 1})")
            try:
                return self._request(payload)
            except LLMError as error:
                if not error.retryable:
                    logger.error(f"LLM request failed: {error}")
                    raise
                if attempt == max_retries:
                    logger.error(f"All {max_retries + 1} attempts failed. Last error: {error}")
                    raise
                delay = self.retry_config.delay_for(attempt)
                logger.warning(
                    f"LLM request failed (attempt {attempt + 1}/{max_retries + 1}): {error}. "
                    f"Retrying in {delay}s"
                )
                self._sleep(delay)

        # Unreachable: the last attempt either returns or raises
        raise LLMError(ErrorType.UNKNOWN, "Retry limit exceeded")

    def update_config(self, config: LLMConfig) -> None:
        """Switch endpoint, key, model or generation parameters in place."""
        self._client.close()
        self.config = config
        self._client = self._build_client()

    def update_retry_config(self, **changes: Any) -> None:
        """Override selected retry settings, e.g. update_retry_config(max_retries=5)."""
        self.retry_config = replace(self.retry_config, **changes)

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> "LLMClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
