"""Sandboxed Soroban contract builds over MCP."""

__version__ = "0.1.0"
