"""
Error taxonomy for the orchestration core.

- OrchestrationFailed: unrecoverable failure of a handle_message() run
- ToolCatalogUnavailable: the tool service could not enumerate its tools
- ToolInvocationFailed: a single tool call failed (reported to the model)
- ProviderError: the LLM API call failed
- RoundCapExceeded: warning recorded when the tool-call round cap is hit
"""

from __future__ import annotations


class RelayError(Exception):
    """Base class for errors raised by relaybot."""

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause


class OrchestrationFailed(RelayError):
    """A handle_message() run aborted; conversation history was not modified."""


class ToolCatalogUnavailable(OrchestrationFailed):
    """The tool executor failed to list its tools."""


class ToolInvocationFailed(RelayError):
    """
    A single tool invocation failed.

    Never escapes the orchestration loop: the message is sent back to the
    model as an ``{"error": ...}`` payload so it can adapt.
    """

    def __init__(self, message: str, tool_name: str, cause: BaseException | None = None):
        super().__init__(message, cause=cause)
        self.tool_name = tool_name


class ProviderError(RelayError):
    """The LLM provider call failed."""


class ToolExecutorNotReady(RelayError):
    """The tool executor was used before initialize() completed."""


class RoundCapExceeded(UserWarning):
    """The model was still requesting tools when the round cap was reached."""

    def __init__(self, max_rounds: int):
        super().__init__(f"Max function call rounds ({max_rounds}) reached")
        self.max_rounds = max_rounds
