"""
Tool catalog adapter.

Fetches the current tool list from a ToolExecutor and renders it into
FunctionDeclarations the LLM understands.
"""

from __future__ import annotations

from collections.abc import Mapping

from relaybot.llm.models import FunctionDeclaration
from relaybot.llm.schema import normalize
from relaybot.tools.base import ToolDescriptor, ToolExecutor


def to_function_declaration(tool: ToolDescriptor) -> FunctionDeclaration:
    """Render one tool descriptor as an LLM function declaration."""
    schema = normalize(tool.input_schema)
    if not isinstance(schema, Mapping):
        schema = {}

    return FunctionDeclaration(
        name=tool.name,
        description=tool.description or f"Execute {tool.name}",
        parameters={
            "type": "object",
            "properties": schema.get("properties") or {},
            "required": list(schema.get("required") or []),
        },
    )


class ToolCatalog:
    """
    Builds the tool declaration set for one orchestration run.

    Nothing is cached: tools are listed again on every call because the
    tool service may add or remove tools between messages. Listing
    failures propagate unchanged so a partial tool set is never used.
    """

    def __init__(self, executor: ToolExecutor):
        self._executor = executor

    async def build_tool_declarations(self) -> list[FunctionDeclaration]:
        tools = await self._executor.list_tools()
        return [to_function_declaration(tool) for tool in tools]
