"""
Data models for the LLM orchestration layer.

- FunctionDeclaration: a tool as declared to the LLM
- FunctionCall: a tool invocation requested by the LLM
- ToolResult: the outcome of one invocation, fed back to the LLM
- TokenUsage / ModelResponse: one LLM reply
- OrchestrationResult: everything a handle_message() run produced
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from relaybot.errors import RoundCapExceeded


class FunctionDeclaration(BaseModel):
    """
    A tool declaration in the LLM's function-calling format.

    ``parameters`` is always an object schema with ``properties`` and
    ``required``, already normalized by relaybot.llm.schema.
    """

    name: str = Field(description="Tool name")
    description: str = Field(description="What the tool does")
    parameters: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}, "required": []},
        description="Normalized object schema for the tool arguments",
    )

    def to_openai_tool(self) -> dict[str, Any]:
        """
        Convert to the OpenAI tool format used by LiteLLM:
            {"type": "function", "function": {"name": ..., "description": ..., "parameters": ...}}
        """
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class FunctionCall(BaseModel):
    """A tool invocation requested by the model."""

    id: str | None = Field(None, description="Provider-assigned call id, if any")
    name: str = Field(description="Name of the tool to invoke")
    args: dict[str, Any] = Field(default_factory=dict, description="Tool arguments")


class ToolResult(BaseModel):
    """
    Outcome of one tool invocation, keyed by tool name.

    ``response`` is either the tool's result or ``{"error": <message>}``.
    """

    call_id: str | None = None
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    response: dict[str, Any]
    failed: bool = False


class TokenUsage(BaseModel):
    """Token counts, summed over every LLM call of a run."""

    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
        )


class ModelResponse(BaseModel):
    """One reply from the LLM: text, requested tool calls, or both."""

    text: str = ""
    function_calls: list[FunctionCall] = Field(default_factory=list)
    model: str = ""
    usage: TokenUsage = Field(default_factory=TokenUsage)


class OrchestrationResult(BaseModel):
    """Result of a completed handle_message() run."""

    text: str = Field(description="Final reply text")
    tool_rounds: int = Field(0, ge=0, description="Tool-call rounds executed")
    llm_calls: int = Field(0, ge=0, description="Messages sent to the LLM")
    tool_results: list[ToolResult] = Field(default_factory=list)
    usage: TokenUsage = Field(default_factory=TokenUsage)
    model: str = ""
    warnings: list[RoundCapExceeded] = Field(default_factory=list)

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @property
    def cap_exceeded(self) -> bool:
        return any(isinstance(w, RoundCapExceeded) for w in self.warnings)
