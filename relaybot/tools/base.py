"""
Base classes for tool executors.

Provides the abstract interface the orchestration loop uses to enumerate
and invoke tools exposed by an external tool-execution service.
"""

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ToolDescriptor(BaseModel):
    """
    A tool as advertised by the tool-execution service.

    The input schema is kept in the provider's JSON Schema dialect; it is
    converted to the LLM's dialect by relaybot.llm.schema.normalize().

    Example:
        >>> ToolDescriptor(
        ...     name="listMessages",
        ...     description="List Gmail messages matching a query",
        ...     input_schema={
        ...         "type": "object",
        ...         "properties": {"query": {"type": "string"}},
        ...         "required": ["query"],
        ...     },
        ... )
    """

    name: str = Field(min_length=1, description="Tool name used when invoking it")
    description: str | None = Field(None, description="Human-readable description")
    input_schema: dict[str, Any] | None = Field(
        None, description="JSON-Schema-like parameter schema"
    )

    model_config = ConfigDict(frozen=True)


class ToolExecutor(ABC):
    """
    Abstract base class for tool executors.

    Executors hold the connection to a tool service. Tool availability may
    change at any time, so callers re-list tools on every run instead of
    caching the result.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """
        Connect to the tool service.

        Raises:
            ConnectionError: If the service cannot be reached
        """
        pass

    @abstractmethod
    async def shutdown(self) -> None:
        """Close the connection and release any resources."""
        pass

    @abstractmethod
    async def list_tools(self) -> list[ToolDescriptor]:
        """
        List all tools currently offered by the service.

        Raises:
            Exception: Any failure to enumerate tools; never a partial list
        """
        pass

    @abstractmethod
    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        """
        Invoke a tool.

        Args:
            name: Name of the tool to invoke
            arguments: Tool-specific arguments

        Returns:
            JSON-compatible tool result

        Raises:
            ToolInvocationFailed: If the tool reports an execution error
        """
        pass

    async def __aenter__(self):
        """Context manager entry - initialize the executor."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - shutdown the executor."""
        await self.shutdown()
        return False
