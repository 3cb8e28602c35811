"""
Tests for environment-driven configuration.
"""

from pathlib import Path

from agentgate.config import AgentConfig, LLMConfig, LoopConfig, RetryConfig


class TestLLMConfig:
    """Completion client configuration."""

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("LLM_BASE_URL", "http://localhost:8000/v1")
        monkeypatch.setenv("LLM_API_KEY", "secret")
        monkeypatch.setenv("LLM_MODEL", "qwen")
        monkeypatch.setenv("LLM_TEMPERATURE", "0.3")
        monkeypatch.delenv("LLM_TOP_P", raising=False)
        monkeypatch.delenv("LLM_MAX_TOKENS", raising=False)

        config = LLMConfig.from_env()

        assert config.base_url == "http://localhost:8000/v1"
        assert config.model == "qwen"
        assert config.generation_parameters() == {"temperature": 0.3}

    def test_no_generation_parameters_by_default(self):
        config = LLMConfig(base_url="u", api_key="k", model="m")
        assert config.generation_parameters() == {}


class TestRetryConfig:
    """Backoff schedule."""

    def test_defaults(self):
        config = RetryConfig()
        assert (config.max_retries, config.base_delay, config.max_delay) == (3, 1.0, 16.0)

    def test_delay_doubles_and_caps(self):
        config = RetryConfig()
        assert [config.delay_for(n) for n in range(6)] == [1.0, 2.0, 4.0, 8.0, 16.0, 16.0]


class TestAgentConfig:
    """Combined configuration."""

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("AGENT_MAX_ITERATIONS", "7")
        monkeypatch.setenv("AGENTGATE_CONFIG_DIR", "/tmp/agentgate")
        config = AgentConfig.from_env()
        assert config.loop.max_iterations == 7
        assert config.config_dir == Path("/tmp/agentgate")

    def test_loop_defaults(self):
        config = LoopConfig()
        assert config.max_iterations == 50
        assert config.terminal_tool == "respond_to_user"
        assert config.max_output_lines == 100
