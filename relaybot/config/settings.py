"""
Configuration for relaybot.

Three sections (llm, tools, agent) plus process-level logging options,
loaded with pydantic-settings from environment variables and .env files.
"""

from datetime import timedelta
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMSettings(BaseSettings):
    """LLM API configuration."""

    model: str = Field(
        default="gemini/gemini-2.0-flash",
        description="LiteLLM model string, e.g. 'gemini/gemini-2.0-flash', "
                    "'openai/gpt-4o', 'anthropic/claude-3-5-sonnet-20241022'. The provider "
                    "prefix tells LiteLLM which API to route the request to.",
    )
    max_tokens: int = Field(default=1024, description="Maximum tokens in response")
    temperature: float = Field(default=0.7, description="Sampling temperature")
    api_key: str = Field(default="", description="API key for the model's provider")

    model_config = SettingsConfigDict(env_prefix="LLM_")


class ToolSettings(BaseSettings):
    """Tool service (MCP server) configuration."""

    mcp_server_url: str | None = Field(
        default=None,
        description="Streamable HTTP endpoint of the MCP tool server, "
                    "e.g. 'http://localhost:8000/mcp'",
    )
    mcp_server_command: str | None = Field(
        default=None,
        description="Executable that starts a stdio MCP server (alternative to the URL)",
    )
    mcp_server_args: list[str] = Field(
        default_factory=list,
        description="Arguments for mcp_server_command. "
                    "Set via TOOLS__MCP_SERVER_ARGS='[\"server.js\"]'",
    )

    model_config = SettingsConfigDict(env_prefix="TOOL_")

    @model_validator(mode="after")
    def _single_transport(self) -> "ToolSettings":
        if self.mcp_server_url and self.mcp_server_command:
            raise ValueError("Configure either mcp_server_url or mcp_server_command, not both")
        return self

    @property
    def configured(self) -> bool:
        return bool(self.mcp_server_url or self.mcp_server_command)


class AgentSettings(BaseSettings):
    """Conversation and tool-loop limits."""

    history_limit: int = Field(
        default=20,
        gt=0,
        description="Maximum stored messages per user (oldest dropped first)",
    )
    history_expiry_hours: float = Field(
        default=24, gt=0, description="Idle time after which a conversation is forgotten"
    )
    cleanup_interval_hours: float = Field(
        default=1, gt=0, description="How often expired conversations are swept"
    )
    max_function_calls: int = Field(
        default=5, gt=0, description="Maximum tool-call rounds per message"
    )
    system_prompt_path: Path | None = Field(
        default=None,
        description="Override for the packaged system prompt (relaybot/prompts/system.txt)",
    )

    model_config = SettingsConfigDict(env_prefix="AGENT_")

    @field_validator("history_limit")
    @classmethod
    def _even_history_limit(cls, value: int) -> int:
        # Exchanges are stored as user/model pairs; an odd limit would let
        # truncation leave a model turn at the front of the history.
        if value % 2:
            raise ValueError("history_limit must be an even number")
        return value

    @property
    def history_expiry(self) -> timedelta:
        return timedelta(hours=self.history_expiry_hours)

    @property
    def cleanup_interval(self) -> timedelta:
        return timedelta(hours=self.cleanup_interval_hours)


LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class Settings(BaseSettings):
    """
    Root configuration, read from the environment and an optional .env file.

    Section fields use ``__`` as the nesting delimiter, e.g.
    ``LLM__MODEL=openai/gpt-4o`` or ``AGENT__HISTORY_LIMIT=10``.
    """

    environment: Literal["development", "production"] = Field(
        default="development", description="Where this instance runs"
    )
    log_level: LogLevel = Field(default="INFO", description="Minimum level written to the logs")
    log_file: Path | None = Field(
        default=None, description="Also write logs to this file when set"
    )

    llm: LLMSettings = Field(default_factory=LLMSettings)
    tools: ToolSettings = Field(default_factory=ToolSettings)
    agent: AgentSettings = Field(default_factory=AgentSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the process-wide settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def load_settings(env_file: str | Path | None = None) -> Settings:
    """
    (Re)load the process-wide settings.

    Args:
        env_file: .env file to read instead of ``./.env``

    Returns:
        The freshly loaded settings, also returned by get_settings() afterwards
    """
    global _settings
    _settings = Settings(_env_file=env_file) if env_file else Settings()
    return _settings
