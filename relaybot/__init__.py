"""
RelayBot - tool-calling LLM assistant for messaging gateways.

This package provides the orchestration core that bridges incoming chat
messages to an LLM provider, lets the model invoke tools exposed by an
MCP server, and keeps a short per-user conversation history in memory.
"""

__version__ = "0.1.0"
