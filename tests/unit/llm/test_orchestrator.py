"""
Unit tests for the Orchestrator.

Tests cover:
- Initialization and configuration
- Plain replies (no tools)
- Tool-call rounds, concurrency and ordering
- Tool failures reported to the model
- Round cap
- Failure handling and all-or-nothing history updates
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from relaybot.conversation.store import ConversationStore, Turn
from relaybot.errors import (
    OrchestrationFailed,
    ProviderError,
    RoundCapExceeded,
    ToolCatalogUnavailable,
    ToolInvocationFailed,
)
from relaybot.llm.models import (
    FunctionCall,
    ModelResponse,
    OrchestrationResult,
    TokenUsage,
    ToolResult,
)
from relaybot.llm.orchestrator import Orchestrator, load_system_instruction
from relaybot.tools.base import ToolDescriptor


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _text(text: str) -> ModelResponse:
    return ModelResponse(
        text=text,
        model="gemini/gemini-2.0-flash",
        usage=TokenUsage(prompt_tokens=100, completion_tokens=50),
    )


def _calls(*calls: tuple[str, dict], text: str = "") -> ModelResponse:
    return ModelResponse(
        text=text,
        function_calls=[
            FunctionCall(id=f"call_{i}", name=name, args=args)
            for i, (name, args) in enumerate(calls)
        ],
        model="gemini/gemini-2.0-flash",
        usage=TokenUsage(prompt_tokens=80, completion_tokens=20),
    )


def _sent_messages(chat: MagicMock) -> list:
    return [c.args[0] for c in chat.send_message.await_args_list]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def chat():
    session = MagicMock()
    session.send_message = AsyncMock()
    return session


@pytest.fixture
def provider(chat):
    mock_provider = MagicMock()
    mock_provider.start_chat.return_value = chat
    return mock_provider


@pytest.fixture
def executor():
    mock_executor = AsyncMock()
    mock_executor.list_tools.return_value = [
        ToolDescriptor(
            name="listMessages",
            description="List Gmail messages",
            input_schema={
                "type": "object",
                "additionalProperties": False,
                "properties": {"query": {"type": "string"}},
            },
        ),
        ToolDescriptor(name="getProfile"),
    ]
    mock_executor.call_tool.return_value = {"text": "ok"}
    return mock_executor


@pytest.fixture
def store():
    return ConversationStore()


@pytest.fixture
def orchestrator(provider, executor, store):
    return Orchestrator(
        provider=provider,
        executor=executor,
        store=store,
        system_instruction="You are a helpful assistant.",
    )


# ---------------------------------------------------------------------------
# Test Classes
# ---------------------------------------------------------------------------

class TestOrchestratorInitialization:
    def test_default_max_function_calls(self, orchestrator):
        assert orchestrator._max_function_calls == 5

    def test_custom_max_function_calls(self, provider, executor, store):
        orch = Orchestrator(provider, executor, store, "sys", max_function_calls=2)
        assert orch._max_function_calls == 2

    def test_rejects_zero_max_function_calls(self, provider, executor, store):
        with pytest.raises(ValueError, match="max_function_calls"):
            Orchestrator(provider, executor, store, "sys", max_function_calls=0)

    def test_packaged_system_instruction_loads(self):
        assert len(load_system_instruction()) > 0

    def test_system_instruction_override(self, tmp_path):
        prompt = tmp_path / "prompt.txt"
        prompt.write_text("  Custom prompt\n")
        assert load_system_instruction(prompt) == "Custom prompt"


class TestPlainReply:
    @pytest.mark.asyncio
    async def test_hello_with_empty_history(self, orchestrator, chat, store):
        chat.send_message.side_effect = [_text("Hey! What's up?")]

        reply = await orchestrator.handle_message("alice", "hello", "req-1")

        assert reply == "Hey! What's up?"
        assert store.get_history("alice") == [
            Turn(role="user", text="hello"),
            Turn(role="model", text="Hey! What's up?"),
        ]

    @pytest.mark.asyncio
    async def test_starts_chat_with_history_tools_and_instruction(
        self, orchestrator, provider, chat, store
    ):
        store.append_turn("alice", "user", "hi")
        store.append_turn("alice", "model", "hello!")
        chat.send_message.side_effect = [_text("Sure.")]

        await orchestrator.handle_message("alice", "check my mail", "req-1")

        kwargs = provider.start_chat.call_args.kwargs
        assert kwargs["history"] == [Turn(role="user", text="hi"), Turn(role="model", text="hello!")]
        assert kwargs["system_instruction"] == "You are a helpful assistant."
        assert [d.name for d in kwargs["tools"]] == ["listMessages", "getProfile"]
        assert "additionalProperties" not in kwargs["tools"][0].parameters
        assert kwargs["tools"][1].description == "Execute getProfile"

    @pytest.mark.asyncio
    async def test_sends_user_text_first(self, orchestrator, chat):
        chat.send_message.side_effect = [_text("Done.")]

        await orchestrator.handle_message("alice", "hello", "req-1")

        assert _sent_messages(chat) == ["hello"]

    @pytest.mark.asyncio
    async def test_result_metadata(self, orchestrator, chat):
        chat.send_message.side_effect = [_text("Done.")]

        result = await orchestrator.process("alice", "hello", "req-1")

        assert isinstance(result, OrchestrationResult)
        assert result.tool_rounds == 0
        assert result.llm_calls == 1
        assert result.usage.total_tokens == 150
        assert result.model == "gemini/gemini-2.0-flash"
        assert result.cap_exceeded is False


class TestToolRounds:
    @pytest.mark.asyncio
    async def test_list_unread_mail(self, orchestrator, chat, executor, store):
        three_messages = {"messages": [{"id": "1"}, {"id": "2"}, {"id": "3"}]}
        executor.call_tool.return_value = three_messages
        chat.send_message.side_effect = [
            _calls(("listMessages", {"query": "is:unread"})),
            _text("You have 3 unread emails."),
        ]

        result = await orchestrator.process("alice", "list my unread mail", "req-1")

        assert result.text == "You have 3 unread emails."
        assert result.llm_calls == 2
        assert result.tool_rounds == 1
        executor.call_tool.assert_awaited_once_with("listMessages", {"query": "is:unread"})

        second_message = _sent_messages(chat)[1]
        assert second_message == [
            ToolResult(
                call_id="call_0",
                name="listMessages",
                arguments={"query": "is:unread"},
                response=three_messages,
            )
        ]

        # Tool traffic never reaches the history
        assert store.get_history("alice") == [
            Turn(role="user", text="list my unread mail"),
            Turn(role="model", text="You have 3 unread emails."),
        ]

    @pytest.mark.asyncio
    async def test_multiple_rounds(self, orchestrator, chat, executor):
        chat.send_message.side_effect = [
            _calls(("listMessages", {"query": "from:bob"})),
            _calls(("getProfile", {})),
            _text("Bob emailed you twice."),
        ]

        result = await orchestrator.process("alice", "did bob email me?", "req-1")

        assert result.tool_rounds == 2
        assert result.llm_calls == 3
        assert executor.call_tool.await_count == 2
        assert result.usage.prompt_tokens == 80 + 80 + 100

    @pytest.mark.asyncio
    async def test_round_tools_run_concurrently(self, orchestrator, chat, executor):
        """Every call of a round is in flight before any of them finishes."""
        in_flight = 0
        peak = 0
        release = asyncio.Event()

        async def slow_tool(name, args):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            if in_flight == 3:
                release.set()
            await release.wait()
            in_flight -= 1
            return {"tool": name}

        executor.call_tool.side_effect = slow_tool
        chat.send_message.side_effect = [
            _calls(("listMessages", {}), ("getProfile", {}), ("listEvents", {})),
            _text("All done."),
        ]

        result = await orchestrator.process("alice", "summarize everything", "req-1")

        assert peak == 3
        assert [r.name for r in result.tool_results] == ["listMessages", "getProfile", "listEvents"]

    @pytest.mark.asyncio
    async def test_results_keep_call_order(self, orchestrator, chat, executor):
        async def tool(name, args):
            # First call finishes last
            await asyncio.sleep(0.01 if name == "slow" else 0)
            return {"tool": name}

        executor.call_tool.side_effect = tool
        chat.send_message.side_effect = [_calls(("slow", {}), ("fast", {})), _text("ok")]

        await orchestrator.process("alice", "go", "req-1")

        sent_results = _sent_messages(chat)[1]
        assert [r.name for r in sent_results] == ["slow", "fast"]
        assert [r.call_id for r in sent_results] == ["call_0", "call_1"]

    @pytest.mark.asyncio
    async def test_non_mapping_tool_result_is_wrapped(self, orchestrator, chat, executor):
        executor.call_tool.return_value = ["a", "b"]
        chat.send_message.side_effect = [_calls(("listLabels", {})), _text("Two labels.")]

        result = await orchestrator.process("alice", "labels?", "req-1")

        assert result.tool_results[0].response == {"result": ["a", "b"]}

    @pytest.mark.asyncio
    async def test_tools_are_listed_on_every_message(self, orchestrator, chat, executor):
        chat.send_message.side_effect = [_text("one"), _text("two")]

        await orchestrator.handle_message("alice", "1", "req-1")
        await orchestrator.handle_message("alice", "2", "req-2")

        assert executor.list_tools.await_count == 2


class TestToolFailures:
    @pytest.mark.asyncio
    async def test_failed_tool_reported_as_error_payload(self, orchestrator, chat, executor):
        async def tool(name, args):
            if name == "sendEmail":
                raise RuntimeError("SMTP quota exceeded")
            return {"text": f"{name} ok"}

        executor.call_tool.side_effect = tool
        chat.send_message.side_effect = [
            _calls(("sendEmail", {"to": "bob@example.com"}), ("getProfile", {})),
            _calls(("listMessages", {})),
            _text("Couldn't send it, quota exceeded."),
        ]

        result = await orchestrator.process("alice", "email bob", "req-1")

        round_one = _sent_messages(chat)[1]
        assert round_one[0].response == {"error": "SMTP quota exceeded"}
        assert round_one[0].failed is True
        assert round_one[1].response == {"text": "getProfile ok"}
        assert round_one[1].failed is False

        # Loop continued into round 2
        assert result.tool_rounds == 2
        assert result.text == "Couldn't send it, quota exceeded."

    @pytest.mark.asyncio
    async def test_tool_invocation_failed_message_passed_through(self, orchestrator, chat, executor):
        executor.call_tool.side_effect = ToolInvocationFailed(
            "Event not found", tool_name="deleteEvent"
        )
        chat.send_message.side_effect = [_calls(("deleteEvent", {"id": "x"})), _text("Not found.")]

        result = await orchestrator.process("alice", "delete it", "req-1")

        assert result.tool_results[0].response == {"error": "Event not found"}

    @pytest.mark.asyncio
    async def test_all_tools_failing_does_not_abort(self, orchestrator, chat, executor, store):
        executor.call_tool.side_effect = ConnectionError("tool server gone")
        chat.send_message.side_effect = [_calls(("listMessages", {})), _text("Tools are down.")]

        reply = await orchestrator.handle_message("alice", "mail?", "req-1")

        assert reply == "Tools are down."
        assert len(store.get_history("alice")) == 2


class TestRoundCap:
    @pytest.mark.asyncio
    async def test_stops_after_max_rounds(self, orchestrator, chat, executor, store):
        chat.send_message.side_effect = [
            _calls(("listMessages", {}), text=f"still working {i}") for i in range(1, 7)
        ]

        result = await orchestrator.process("alice", "loop forever", "req-1")

        assert result.tool_rounds == 5
        assert executor.call_tool.await_count == 5
        assert chat.send_message.await_count == 6
        assert result.text == "still working 6"
        assert result.cap_exceeded is True
        assert isinstance(result.warnings[0], RoundCapExceeded)
        assert store.get_history("alice")[-1] == Turn(role="model", text="still working 6")

    @pytest.mark.asyncio
    async def test_custom_cap(self, provider, executor, store, chat):
        orch = Orchestrator(provider, executor, store, "sys", max_function_calls=1)
        chat.send_message.side_effect = [_calls(("a", {})), _calls(("b", {}), text="partial")]

        reply = await orch.handle_message("alice", "go", "req-1")

        assert reply == "partial"
        assert executor.call_tool.await_count == 1

    @pytest.mark.asyncio
    async def test_finishing_on_last_round_is_not_a_warning(self, orchestrator, chat):
        chat.send_message.side_effect = [_calls(("listMessages", {})) for _ in range(5)] + [
            _text("Finally done.")
        ]

        result = await orchestrator.process("alice", "go", "req-1")

        assert result.tool_rounds == 5
        assert result.cap_exceeded is False
        assert result.warnings == []


class TestFailureHandling:
    @pytest.mark.asyncio
    async def test_catalog_failure_raises_tool_catalog_unavailable(
        self, orchestrator, executor, provider, store
    ):
        error = ConnectionError("MCP server unreachable")
        executor.list_tools.side_effect = error

        with pytest.raises(ToolCatalogUnavailable) as exc_info:
            await orchestrator.handle_message("alice", "hello", "req-1")

        assert exc_info.value.cause is error
        assert isinstance(exc_info.value, OrchestrationFailed)
        provider.start_chat.assert_not_called()
        assert "alice" not in store

    @pytest.mark.asyncio
    async def test_first_llm_call_failure(self, orchestrator, chat, store):
        error = ProviderError("LLM API call failed: 500")
        chat.send_message.side_effect = error

        with pytest.raises(OrchestrationFailed) as exc_info:
            await orchestrator.handle_message("alice", "hello", "req-1")

        assert not isinstance(exc_info.value, ToolCatalogUnavailable)
        assert exc_info.value.cause is error
        assert store.get_history("alice") == []

    @pytest.mark.asyncio
    async def test_later_round_failure_leaves_history_untouched(self, orchestrator, chat, store):
        store.append_turn("alice", "user", "earlier")
        store.append_turn("alice", "model", "reply")
        chat.send_message.side_effect = [
            _calls(("listMessages", {})),
            ProviderError("LLM API call failed: timeout"),
        ]

        with pytest.raises(OrchestrationFailed):
            await orchestrator.handle_message("alice", "hello", "req-1")

        assert [t.text for t in store.get_history("alice")] == ["earlier", "reply"]

    @pytest.mark.asyncio
    async def test_start_chat_failure_wrapped(self, orchestrator, provider):
        provider.start_chat.side_effect = KeyError("bad role")

        with pytest.raises(OrchestrationFailed, match="Failed to process message"):
            await orchestrator.handle_message("alice", "hello", "req-1")
