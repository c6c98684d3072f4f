"""
Component factory.

Centralises the construction of the orchestration components from
settings, so the CLI, tests and any gateway adapter wire them the same way.
"""

from __future__ import annotations

from relaybot.config.settings import Settings
from relaybot.conversation.store import ConversationStore
from relaybot.conversation.sweeper import ExpirySweeper
from relaybot.llm.orchestrator import Orchestrator, load_system_instruction
from relaybot.llm.provider import LiteLLMChatProvider
from relaybot.tools.base import ToolExecutor
from relaybot.tools.mcp_executor import MCPToolExecutor


class AssistantComponents:
    """
    Factory for building orchestration components from settings.

    Example::

        factory = AssistantComponents(settings)
        store = factory.create_store()
        async with factory.create_tool_executor() as executor, \\
                   factory.create_sweeper(store):
            orchestrator = factory.create_orchestrator(executor, store)
            reply = await orchestrator.handle_message("alice", "hi", "req-1")
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    def create_tool_executor(self) -> MCPToolExecutor:
        """Create an MCPToolExecutor for the configured transport."""
        tools = self.settings.tools
        if not tools.configured:
            raise ValueError(
                "No tool server configured. Set TOOLS__MCP_SERVER_URL or TOOLS__MCP_SERVER_COMMAND."
            )
        return MCPToolExecutor(
            server_url=tools.mcp_server_url,
            command=tools.mcp_server_command,
            args=tools.mcp_server_args,
        )

    def create_provider(self) -> LiteLLMChatProvider:
        return LiteLLMChatProvider(self.settings.llm)

    def create_store(self) -> ConversationStore:
        """Create an empty ConversationStore with the configured limits."""
        return ConversationStore(
            history_limit=self.settings.agent.history_limit,
            history_expiry=self.settings.agent.history_expiry,
        )

    def create_sweeper(self, store: ConversationStore) -> ExpirySweeper:
        return ExpirySweeper(store, interval=self.settings.agent.cleanup_interval)

    def create_orchestrator(
        self,
        executor: ToolExecutor,
        store: ConversationStore,
    ) -> Orchestrator:
        """Create an Orchestrator from settings + initialized dependencies."""
        return Orchestrator(
            provider=self.create_provider(),
            executor=executor,
            store=store,
            system_instruction=load_system_instruction(self.settings.agent.system_prompt_path),
            max_function_calls=self.settings.agent.max_function_calls,
        )
