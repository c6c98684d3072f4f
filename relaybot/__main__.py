"""
RelayBot CLI entry point.

Provides command-line access to the orchestration core: inspect the
configuration and tool catalog, send a single message, or chat
interactively.
"""

import argparse
import asyncio
import sys
import uuid
from pathlib import Path

from relaybot import __version__
from relaybot.components import AssistantComponents
from relaybot.config.logging import get_logger, setup_logging
from relaybot.config.settings import Settings, load_settings
from relaybot.errors import OrchestrationFailed, ToolCatalogUnavailable

CHAT_HELP = "Commands: /reset clears your history, /stats shows memory usage, /quit exits."


def create_parser() -> argparse.ArgumentParser:
    """Create and configure argument parser."""
    parser = argparse.ArgumentParser(
        prog="relaybot",
        description="Tool-calling LLM assistant backed by an MCP tool server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"RelayBot {__version__}",
    )

    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to .env file (default: .env in current directory)",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Override logging level from config",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser(
        "config",
        help="Show current configuration",
    )

    subparsers.add_parser(
        "tools",
        help="List the tools offered by the MCP server, as declared to the LLM",
    )

    ask_parser = subparsers.add_parser(
        "ask",
        help="Send a single message and print the reply",
    )
    ask_parser.add_argument(
        "message",
        help='Message to send, e.g. "Any unread emails?"',
    )
    ask_parser.add_argument(
        "--user-id",
        default="cli",
        help="Conversation owner (default: cli)",
    )

    chat_parser = subparsers.add_parser(
        "chat",
        help="Interactive conversation with history",
    )
    chat_parser.add_argument(
        "--user-id",
        default="cli",
        help="Conversation owner (default: cli)",
    )

    return parser


def new_correlation_id() -> str:
    return uuid.uuid4().hex[:8]


def cmd_config(settings: Settings) -> int:
    """Show current configuration."""
    logger = get_logger(__name__)

    logger.info("\n=== RelayBot Configuration ===\n")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Log Level: {settings.log_level}")
    logger.info(f"Log File: {settings.log_file or 'None (console only)'}")
    logger.info(f"\nLLM Model: {settings.llm.model}")
    logger.info(f"LLM API Key: {'Set' if settings.llm.api_key else 'Not set'}")
    logger.info(f"LLM Temperature: {settings.llm.temperature}")
    logger.info(f"\nMCP Server URL: {settings.tools.mcp_server_url or 'Not set'}")
    logger.info(f"MCP Server Command: {settings.tools.mcp_server_command or 'Not set'}")
    logger.info(f"\nHistory Limit: {settings.agent.history_limit} messages")
    logger.info(f"History Expiry: {settings.agent.history_expiry_hours}h")
    logger.info(f"Cleanup Interval: {settings.agent.cleanup_interval_hours}h")
    logger.info(f"Max Function Calls: {settings.agent.max_function_calls}")
    logger.info(f"System Prompt: {settings.agent.system_prompt_path or 'packaged default'}")

    return 0


async def cmd_tools(settings: Settings) -> int:
    """Print the tool declarations the LLM would receive."""
    logger = get_logger(__name__)
    from relaybot.llm.catalog import ToolCatalog

    try:
        factory = AssistantComponents(settings)
        async with factory.create_tool_executor() as executor:
            declarations = await ToolCatalog(executor).build_tool_declarations()
    except Exception as e:
        logger.error(f"Failed to list tools: {e}", exc_info=True)
        return 1

    print(f"\n=== Available Tools ({len(declarations)}) ===")
    for i, declaration in enumerate(declarations, start=1):
        print(f"\n{i}. {declaration.name}")
        print(f"   {declaration.description}")
        properties = declaration.parameters.get("properties", {})
        required = set(declaration.parameters.get("required", []))
        for name, schema in properties.items():
            kind = schema.get("type", "any") if isinstance(schema, dict) else "any"
            marker = "*" if name in required else " "
            print(f"   {marker} {name}: {kind}")

    return 0


async def cmd_ask(args, settings: Settings) -> int:
    """Send one message through the orchestrator and print the reply."""
    logger = get_logger(__name__)

    try:
        factory = AssistantComponents(settings)
        async with factory.create_tool_executor() as executor:
            orchestrator = factory.create_orchestrator(executor, factory.create_store())
            result = await orchestrator.process(args.user_id, args.message, new_correlation_id())
    except ToolCatalogUnavailable as e:
        print(f"\nTool server unavailable: {e}", file=sys.stderr)
        return 1
    except OrchestrationFailed as e:
        print(f"\nLLM error: {e}", file=sys.stderr)
        print("Tip: Set LLM__API_KEY in your .env file.", file=sys.stderr)
        return 1
    except Exception as e:
        logger.error(f"Ask failed: {e}", exc_info=True)
        return 1

    print(f"\n{result.text}")

    if result.tool_results:
        print("\n--- Tool Calls ---")
        for tool_result in result.tool_results:
            status = "failed" if tool_result.failed else "ok"
            print(f"  {tool_result.name} ({status})")

    if result.cap_exceeded:
        print(f"\n(stopped after {result.tool_rounds} tool rounds)")

    print(f"\nTokens: {result.usage.total_tokens} "
          f"(prompt {result.usage.prompt_tokens} "
          f"+ completion {result.usage.completion_tokens})")

    return 0


async def cmd_chat(args, settings: Settings) -> int:
    """Interactive conversation; history persists until /reset or expiry."""
    logger = get_logger(__name__)
    user_id: str = args.user_id

    try:
        factory = AssistantComponents(settings)
        store = factory.create_store()
        async with factory.create_tool_executor() as executor, \
                   factory.create_sweeper(store):
            orchestrator = factory.create_orchestrator(executor, store)
            print(CHAT_HELP)

            while True:
                try:
                    line = await asyncio.to_thread(input, "you> ")
                except EOFError:
                    break

                text = line.strip()
                if not text:
                    continue
                if text == "/quit":
                    break
                if text == "/reset":
                    store.clear(user_id)
                    print("History cleared.")
                    continue
                if text == "/stats":
                    stats = store.stats()
                    print(f"{stats.total_users} user(s), {stats.total_messages} message(s)")
                    continue

                try:
                    reply = await orchestrator.handle_message(user_id, text, new_correlation_id())
                except OrchestrationFailed as e:
                    print(f"Sorry, something went wrong: {e}", file=sys.stderr)
                    continue
                print(f"bot> {reply}")
    except Exception as e:
        logger.error(f"Chat failed: {e}", exc_info=True)
        return 1

    return 0


def main() -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    # Load settings
    try:
        settings = load_settings(env_file=args.env_file)
    except Exception as e:
        print(f"Error loading settings: {e}", file=sys.stderr)
        return 1

    # Override log level if specified
    if args.log_level:
        settings.log_level = args.log_level

    setup_logging(settings)

    if args.command == "config":
        return cmd_config(settings)
    elif args.command == "tools":
        return asyncio.run(cmd_tools(settings))
    elif args.command == "ask":
        return asyncio.run(cmd_ask(args, settings))
    elif args.command == "chat":
        return asyncio.run(cmd_chat(args, settings))
    else:
        # Default: show help
        parser.print_help()
        return 0


if __name__ == "__main__":
    sys.exit(main())
