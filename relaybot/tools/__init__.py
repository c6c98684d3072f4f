"""
Tool Integration Layer.

Provides executors for external tool services (MCP servers) whose tools
the LLM may invoke while answering a message.
"""
