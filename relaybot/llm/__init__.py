"""
LLM Orchestration Layer.

Translates tool schemas for the LLM, talks to the model through LiteLLM,
and runs the tool-calling loop for each incoming message:

    incoming message
          ↓
    Orchestrator.handle_message(user_id, text, correlation_id)
          ↓
    ToolCatalog → normalize() → ChatProvider ←→ ToolExecutor
          ↓
    reply text  →  message gateway
"""

from relaybot.llm.catalog import ToolCatalog
from relaybot.llm.models import (
    FunctionCall,
    FunctionDeclaration,
    ModelResponse,
    OrchestrationResult,
    TokenUsage,
    ToolResult,
)
from relaybot.llm.orchestrator import Orchestrator
from relaybot.llm.provider import ChatProvider, ChatSession, LiteLLMChatProvider
from relaybot.llm.schema import normalize

__all__ = [
    "ChatProvider",
    "ChatSession",
    "FunctionCall",
    "FunctionDeclaration",
    "LiteLLMChatProvider",
    "ModelResponse",
    "Orchestrator",
    "OrchestrationResult",
    "TokenUsage",
    "ToolCatalog",
    "ToolResult",
    "normalize",
]
