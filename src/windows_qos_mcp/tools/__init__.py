"""MCP tool registration package.

Call ``register_all_tools(mcp)`` after creating the FastMCP instance
to register all 8 tool handlers.
"""

from windows_qos_mcp.tools import policy_tools


def register_all_tools(mcp):
    """Register all tool handlers on *mcp*."""
    policy_tools.register(mcp)
