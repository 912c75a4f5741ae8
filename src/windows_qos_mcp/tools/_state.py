"""Shared mutable state for MCP tool handlers.

Initialised by the FastMCP lifespan in ``__main__.py``. Tool modules import
this module and read ``service`` at call-time, so they always see the
current (post-lifespan) value.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from windows_qos_mcp.policy.service import QosPolicyService

service: QosPolicyService | None = None
