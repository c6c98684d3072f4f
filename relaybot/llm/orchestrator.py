"""
Orchestrator: the tool-calling conversation loop.

For every incoming message it lists the tools currently offered by the
tool service, replays the user's recent history to the LLM, and keeps
executing the tools the model asks for until the model answers in plain
text or the round cap is reached.

Data flow:
    handle_message(user_id, text, correlation_id)
            ↓
    ToolCatalog.build_tool_declarations()  →  ToolExecutor.list_tools()
            ↓
    ChatProvider.start_chat(history, tools, system_instruction)
            ↓
    ChatSession.send_message(text)  ←→  ToolExecutor.call_tool() per round
            ↓
    ConversationStore.append_turn(user, model)  →  final reply text

Rules:
- All tools requested in one reply run concurrently; the next message to
  the LLM is sent only once every one of them has finished.
- A failing tool never aborts the run. Its error is sent to the model as
  ``{"error": <message>}`` so it can retry differently or explain.
- After max_function_calls tool rounds the latest reply is returned even
  if it still asks for tools, and a RoundCapExceeded warning is recorded.
- History is written only after a successful run, and only the user's
  text and the final reply. A failed run leaves it untouched.
- Nothing is retried here. Retries are the caller's decision.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from relaybot.config.logging import RequestLogger, get_request_logger
from relaybot.conversation.store import ConversationStore
from relaybot.errors import (
    OrchestrationFailed,
    RoundCapExceeded,
    ToolCatalogUnavailable,
    ToolInvocationFailed,
)
from relaybot.llm.catalog import ToolCatalog
from relaybot.llm.models import FunctionCall, OrchestrationResult, TokenUsage, ToolResult
from relaybot.llm.provider import ChatProvider
from relaybot.tools.base import ToolExecutor

MAX_FUNCTION_CALLS = 5

DEFAULT_SYSTEM_PROMPT_PATH = Path(__file__).parent.parent / "prompts" / "system.txt"


def load_system_instruction(path: Path | None = None) -> str:
    """Read the system instruction, defaulting to the packaged prompt."""
    return (path or DEFAULT_SYSTEM_PROMPT_PATH).read_text(encoding="utf-8").strip()


class Orchestrator:
    """
    Drives one LLM conversation per incoming message.

    Args:
        provider: LLM backend used to start chat sessions
        executor: Tool service the model's function calls are sent to
        store: Per-user conversation history
        system_instruction: System prompt given to every chat session
        max_function_calls: Cap on tool-call rounds per message (default: 5)
    """

    def __init__(
        self,
        provider: ChatProvider,
        executor: ToolExecutor,
        store: ConversationStore,
        system_instruction: str,
        max_function_calls: int = MAX_FUNCTION_CALLS,
    ):
        if max_function_calls < 1:
            raise ValueError("max_function_calls must be at least 1")
        self._provider = provider
        self._executor = executor
        self._catalog = ToolCatalog(executor)
        self._store = store
        self._system_instruction = system_instruction
        self._max_function_calls = max_function_calls

    @property
    def store(self) -> ConversationStore:
        return self._store

    async def handle_message(self, user_id: str, text: str, correlation_id: str) -> str:
        """
        Answer one user message and return the reply text.

        Raises:
            ToolCatalogUnavailable: If the tool list could not be fetched
            OrchestrationFailed: If any LLM call failed
        """
        result = await self.process(user_id, text, correlation_id)
        return result.text

    async def process(self, user_id: str, text: str, correlation_id: str) -> OrchestrationResult:
        """Same as handle_message(), but returns the full OrchestrationResult."""
        log = get_request_logger(__name__, correlation_id)
        log.info(f"Processing message for user: {user_id}")

        try:
            declarations = await self._catalog.build_tool_declarations()
        except Exception as e:
            log.error(f"Failed to load tools: {e}")
            raise ToolCatalogUnavailable(f"Tool catalog unavailable: {e}", cause=e) from e
        log.info(f"Loaded {len(declarations)} tools")

        history = self._store.get_history(user_id)

        tool_results: list[ToolResult] = []
        usage = TokenUsage()
        llm_calls = 0
        rounds = 0

        try:
            chat = self._provider.start_chat(
                history=history,
                tools=declarations,
                system_instruction=self._system_instruction,
            )

            log.debug(f"Sending to LLM: {text!r}")
            response = await chat.send_message(text)
            llm_calls += 1
            usage += response.usage

            while response.function_calls and rounds < self._max_function_calls:
                rounds += 1
                log.info(
                    f"Function call round #{rounds}: "
                    f"{len(response.function_calls)} tool(s) to execute"
                )
                round_results = await self._execute_round(response.function_calls, log)
                tool_results.extend(round_results)

                response = await chat.send_message(round_results)
                llm_calls += 1
                usage += response.usage
        except Exception as e:
            log.error(f"Error processing message: {e}")
            raise OrchestrationFailed(f"Failed to process message: {e}", cause=e) from e

        warnings: list[RoundCapExceeded] = []
        if response.function_calls:
            warnings.append(RoundCapExceeded(self._max_function_calls))
            log.warning(
                f"Max function calls ({self._max_function_calls}) reached; "
                f"returning latest response"
            )

        final_text = response.text
        log.info(f"Reply: {final_text[:100]!r}{'...' if len(final_text) > 100 else ''}")

        self._store.append_turn(user_id, "user", text)
        self._store.append_turn(user_id, "model", final_text)

        return OrchestrationResult(
            text=final_text,
            tool_rounds=rounds,
            llm_calls=llm_calls,
            tool_results=tool_results,
            usage=usage,
            model=response.model,
            warnings=warnings,
        )

    async def _execute_round(
        self, calls: list[FunctionCall], log: RequestLogger
    ) -> list[ToolResult]:
        """Run every call of one round concurrently; results keep call order."""
        return list(await asyncio.gather(*(self._invoke(call, log) for call in calls)))

    async def _invoke(self, call: FunctionCall, log: RequestLogger) -> ToolResult:
        log.info(f"Executing tool: {call.name}")
        log.debug(f"Arguments: {json.dumps(call.args, default=str)}")

        try:
            value = await self._executor.call_tool(call.name, call.args)
        except Exception as e:
            failure = e if isinstance(e, ToolInvocationFailed) else ToolInvocationFailed(
                str(e), tool_name=call.name, cause=e
            )
            log.error(f"Tool {call.name} failed: {failure}")
            return ToolResult(
                call_id=call.id,
                name=call.name,
                arguments=call.args,
                response={"error": str(failure)},
                failed=True,
            )

        response = _as_response(value)
        log.info(f"Tool {call.name} executed successfully")
        log.debug(f"Result: {json.dumps(response, default=str)[:200]}")
        return ToolResult(call_id=call.id, name=call.name, arguments=call.args, response=response)


def _as_response(value: Any) -> dict[str, Any]:
    # Function responses must be JSON objects
    if isinstance(value, Mapping):
        return dict(value)
    return {"result": value}
