"""
LLM provider interface and its LiteLLM implementation.

A ChatProvider starts a ChatSession seeded with prior history, tool
declarations and a system instruction. Each send_message() call takes
either the user's text or the results of the tools requested in the
previous reply, and returns the next ModelResponse.

LiteLLM speaks the OpenAI message format for every backend, so history
``model`` turns are replayed as ``assistant`` messages and tool results are
sent as ``tool`` messages keyed by call id.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any

from litellm import acompletion

from relaybot.config.logging import get_logger
from relaybot.config.settings import LLMSettings
from relaybot.conversation.store import Turn
from relaybot.errors import ProviderError
from relaybot.llm.models import (
    FunctionCall,
    FunctionDeclaration,
    ModelResponse,
    TokenUsage,
    ToolResult,
)

logger = get_logger(__name__)

# History role -> OpenAI message role
_ROLE_MAP = {"user": "user", "model": "assistant"}


class ChatSession(ABC):
    """One multi-message exchange with the LLM."""

    @abstractmethod
    async def send_message(self, message: str | list[ToolResult]) -> ModelResponse:
        """
        Send the user's text, or the tool results for the previous reply.

        Raises:
            ProviderError: If the LLM call fails
        """
        pass


class ChatProvider(ABC):
    """Factory for chat sessions against one LLM backend."""

    @abstractmethod
    def start_chat(
        self,
        history: list[Turn],
        tools: list[FunctionDeclaration],
        system_instruction: str,
    ) -> ChatSession:
        pass


class LiteLLMChatSession(ChatSession):
    """
    ChatSession backed by litellm.acompletion().

    The full message list is resent on every call; LiteLLM is stateless.
    """

    def __init__(
        self,
        settings: LLMSettings,
        history: list[Turn],
        tools: list[FunctionDeclaration],
        system_instruction: str,
    ):
        self._settings = settings
        self._tools = [tool.to_openai_tool() for tool in tools]
        self.messages: list[dict[str, Any]] = []

        if system_instruction:
            self.messages.append({"role": "system", "content": system_instruction})
        for turn in history:
            self.messages.append({"role": _ROLE_MAP[turn.role], "content": turn.text})

    async def send_message(self, message: str | list[ToolResult]) -> ModelResponse:
        if isinstance(message, str):
            self.messages.append({"role": "user", "content": message})
        else:
            for index, result in enumerate(message):
                self.messages.append({
                    "role": "tool",
                    "tool_call_id": result.call_id or _fallback_call_id(index),
                    "name": result.name,
                    "content": json.dumps(result.response, default=str),
                })

        call_kwargs: dict[str, Any] = {
            "model": self._settings.model,
            "messages": self.messages,
            "temperature": self._settings.temperature,
            "max_tokens": self._settings.max_tokens,
        }
        if self._settings.api_key:
            call_kwargs["api_key"] = self._settings.api_key
        if self._tools:
            call_kwargs["tools"] = self._tools

        logger.debug(f"Sending {len(self.messages)} messages to {self._settings.model}")
        try:
            response = await acompletion(**call_kwargs)
        except Exception as e:
            raise ProviderError(f"LLM API call failed: {e}", cause=e) from e

        assistant_message = response.choices[0].message
        function_calls = [
            FunctionCall(
                id=tool_call.id or _fallback_call_id(index),
                name=tool_call.function.name,
                args=_parse_arguments(tool_call.function.arguments),
            )
            for index, tool_call in enumerate(assistant_message.tool_calls or [])
        ]

        # Keep the assistant turn (including its tool calls) so the next
        # request carries the whole exchange
        assistant_entry: dict[str, Any] = {
            "role": "assistant",
            "content": assistant_message.content,
        }
        if function_calls:
            assistant_entry["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": json.dumps(call.args)},
                }
                for call in function_calls
            ]
        self.messages.append(assistant_entry)

        usage = getattr(response, "usage", None)
        return ModelResponse(
            text=assistant_message.content or "",
            function_calls=function_calls,
            model=response.model or self._settings.model,
            usage=TokenUsage(
                prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
                completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
            ),
        )


class LiteLLMChatProvider(ChatProvider):
    """
    ChatProvider for any LiteLLM-supported model.

    Swapping between Gemini, OpenAI, Anthropic or a local model is a
    matter of changing ``LLM_MODEL``.
    """

    def __init__(self, settings: LLMSettings):
        self._settings = settings

    @property
    def model(self) -> str:
        return self._settings.model

    def start_chat(
        self,
        history: list[Turn],
        tools: list[FunctionDeclaration],
        system_instruction: str,
    ) -> LiteLLMChatSession:
        return LiteLLMChatSession(
            settings=self._settings,
            history=history,
            tools=tools,
            system_instruction=system_instruction,
        )


def _parse_arguments(arguments: str | dict[str, Any] | None) -> dict[str, Any]:
    """Decode tool-call arguments, which LiteLLM returns as a JSON string."""
    if not arguments:
        return {}
    if isinstance(arguments, dict):
        return arguments
    try:
        parsed = json.loads(arguments)
    except json.JSONDecodeError as e:
        raise ProviderError(f"Model returned malformed tool arguments: {arguments!r}", cause=e) from e
    return parsed if isinstance(parsed, dict) else {"value": parsed}


def _fallback_call_id(index: int) -> str:
    # OpenAI-format backends reject tool messages without a tool_call_id
    return f"call_{index}"
