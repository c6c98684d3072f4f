"""
MCP-based tool executor.

Connects to a Model Context Protocol server either over streamable HTTP
(a remote tool service) or over stdio (a server spawned as a subprocess)
and exposes its tools through the ToolExecutor interface.
"""

from contextlib import AsyncExitStack
from typing import Any

from mcp import ClientSession
from mcp.client.stdio import StdioServerParameters, stdio_client
from mcp.client.streamable_http import streamablehttp_client

from relaybot.config.logging import get_logger
from relaybot.errors import ToolExecutorNotReady, ToolInvocationFailed
from relaybot.tools.base import ToolDescriptor, ToolExecutor

logger = get_logger(__name__)


class MCPToolExecutor(ToolExecutor):
    """
    Tool executor speaking MCP to a single server.

    Exactly one transport must be given: ``server_url`` for streamable HTTP,
    or ``command`` (plus ``args``) for a stdio subprocess.
    """

    def __init__(
        self,
        server_url: str | None = None,
        command: str | None = None,
        args: list[str] | None = None,
    ):
        if bool(server_url) == bool(command):
            raise ValueError("Provide exactly one of server_url or command")

        self._server_url = server_url
        self._command = command
        self._args = list(args or [])
        self._exit_stack: AsyncExitStack | None = None
        self._session: ClientSession | None = None
        self._session_id: str | None = None

    @property
    def initialized(self) -> bool:
        return self._session is not None

    @property
    def session_id(self) -> str | None:
        """MCP session id assigned by an HTTP server, if any."""
        return self._session_id

    async def initialize(self) -> None:
        """Open the transport and perform the MCP handshake."""
        if self.initialized:
            return

        exit_stack = AsyncExitStack()
        try:
            if self._server_url:
                logger.info(f"Connecting to MCP server at {self._server_url}...")
                read_stream, write_stream, get_session_id = await exit_stack.enter_async_context(
                    streamablehttp_client(self._server_url)
                )
            else:
                logger.info(f"Starting MCP server: {self._command} {' '.join(self._args)}")
                server_params = StdioServerParameters(command=self._command, args=self._args)
                read_stream, write_stream = await exit_stack.enter_async_context(
                    stdio_client(server_params)
                )
                get_session_id = None

            session = await exit_stack.enter_async_context(
                ClientSession(read_stream, write_stream)
            )
            await session.initialize()
        except Exception as e:
            await exit_stack.aclose()
            raise ConnectionError(f"Failed to connect to MCP server: {e}") from e

        self._exit_stack = exit_stack
        self._session = session
        if get_session_id is not None:
            self._session_id = get_session_id()
        logger.info(f"Connected to MCP server (session: {self._session_id or 'stdio'})")

    async def shutdown(self) -> None:
        """Close the MCP session and its transport."""
        if self._exit_stack is None:
            return  # Already shut down or never initialized

        exit_stack = self._exit_stack
        self._exit_stack = None
        self._session = None
        self._session_id = None
        await exit_stack.aclose()
        logger.info("Disconnected from MCP server")

    async def list_tools(self) -> list[ToolDescriptor]:
        """List available tools from the MCP server."""
        if self._session is None:
            raise ToolExecutorNotReady("Not connected to MCP server")

        result = await self._session.list_tools()
        logger.debug(f"Found {len(result.tools)} tools")

        return [
            ToolDescriptor(
                name=tool.name,
                description=tool.description,
                input_schema=tool.inputSchema,
            )
            for tool in result.tools
        ]

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        """
        Call a tool on the MCP server.

        Returns the structured content when the server provides it, otherwise
        the text blocks of the result joined into ``{"text": ...}``.

        Raises:
            ToolInvocationFailed: If the server flags the result as an error
        """
        if self._session is None:
            raise ToolExecutorNotReady("Not connected to MCP server")

        result = await self._session.call_tool(name, arguments)

        # MCP returns content as a list of blocks; only text blocks are relayed
        text = " ".join(
            block.text for block in result.content if getattr(block, "text", None)
        )

        if result.isError:
            raise ToolInvocationFailed(text or f"Tool {name} reported an error", tool_name=name)

        if result.structuredContent is not None:
            return result.structuredContent
        return {"text": text}
