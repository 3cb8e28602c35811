"""
Configuration for the agent system.

Runtime configuration is loaded from environment variables so the same
code runs against any OpenAI-compatible backend (vLLM, Ollama, OpenAI)
without hardcoding values. Generation parameters that are not set stay
None and are never sent to the provider.

Persisted policy settings (permission level, blocklists) live in
agentgate.settings instead; they change at runtime through the approval
flow and survive restarts.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path


def _optional_float(name: str) -> float | None:
    raw = os.getenv(name)
    return float(raw) if raw not in (None, "") else None


def _optional_int(name: str) -> int | None:
    raw = os.getenv(name)
    return int(raw) if raw not in (None, "") else None


@dataclass
class LLMConfig:
    """Configuration for the completion client."""
    base_url: str
    api_key: str
    model: str
    temperature: float | None = None
    top_p: float | None = None
    max_tokens: int | None = None

    @classmethod
    def from_env(cls) -> "LLMConfig":
        """Load configuration from environment variables."""
        return cls(
            base_url=os.getenv("LLM_BASE_URL", "https://api.openai.com/v1"),
            api_key=os.getenv("LLM_API_KEY", ""),
            model=os.getenv("LLM_MODEL", "gpt-4"),
            temperature=_optional_float("LLM_TEMPERATURE"),
            top_p=_optional_float("LLM_TOP_P"),
            max_tokens=_optional_int("LLM_MAX_TOKENS"),
        )

    def generation_parameters(self) -> dict[str, float | int]:
        """Only the parameters that were explicitly configured."""
        params: dict[str, float | int] = {}
        if self.temperature is not None:
            params["temperature"] = self.temperature
        if self.top_p is not None:
            params["top_p"] = self.top_p
        if self.max_tokens is not None:
            params["max_tokens"] = self.max_tokens
        return params


@dataclass
class RetryConfig:
    """
    Exponential backoff for the completion client.

    Delays are in seconds: base_delay * 2**attempt, capped at max_delay.
    max_retries counts retries beyond the first attempt.
    """
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 16.0

    @classmethod
    def from_env(cls) -> "RetryConfig":
        return cls(
            max_retries=int(os.getenv("LLM_MAX_RETRIES", "3")),
            base_delay=float(os.getenv("LLM_RETRY_BASE_DELAY", "1.0")),
            max_delay=float(os.getenv("LLM_RETRY_MAX_DELAY", "16.0")),
        )

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after the given zero-based failed attempt."""
        return min(self.base_delay * (2 ** attempt), self.max_delay)


@dataclass
class LoopConfig:
    """
    Configuration for the agent loop.

    max_iterations bounds runaway cycles: every pass of the loop counts,
    including passes that only produced a corrective re-prompt.
    """
    max_iterations: int = 50
    terminal_tool: str = "respond_to_user"
    max_output_lines: int = 100

    @classmethod
    def from_env(cls) -> "LoopConfig":
        return cls(
            max_iterations=int(os.getenv("AGENT_MAX_ITERATIONS", "50")),
            terminal_tool=os.getenv("AGENT_TERMINAL_TOOL", "respond_to_user"),
            max_output_lines=int(os.getenv("AGENT_MAX_OUTPUT_LINES", "100")),
        )


@dataclass
class AgentConfig:
    """Combined configuration for the entire agent system."""
    llm: LLMConfig
    retry: RetryConfig = field(default_factory=RetryConfig)
    loop: LoopConfig = field(default_factory=LoopConfig)
    config_dir: Path = field(default_factory=lambda: Path("~/.agentgate/config"))
    custom_instructions: str = ""

    @classmethod
    def from_env(cls) -> "AgentConfig":
        """Load all configuration from environment variables."""
        return cls(
            llm=LLMConfig.from_env(),
            retry=RetryConfig.from_env(),
            loop=LoopConfig.from_env(),
            config_dir=Path(os.getenv("AGENTGATE_CONFIG_DIR", "~/.agentgate/config")),
            custom_instructions=os.getenv("AGENTGATE_CUSTOM_INSTRUCTIONS", ""),
        )
