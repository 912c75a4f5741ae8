import logging
import sys
from contextlib import asynccontextmanager
from enum import Enum
from textwrap import dedent

import click
from fastmcp import FastMCP

from windows_qos_mcp.audit import configure_audit_log
from windows_qos_mcp.config import BACKEND_CHOICES, Settings
from windows_qos_mcp.policy.service import QosPolicyService
from windows_qos_mcp.registry.selector import BackendSelector
from windows_qos_mcp.shell.service import ShellService
from windows_qos_mcp.tools import _state, register_all_tools

logger = logging.getLogger("windows_qos_mcp")

settings = Settings.from_env()


instructions = dedent("""
Windows QoS MCP server inspects and edits Policy-based QoS rules stored in the
registry (HKLM/HKCU, 64-bit and 32-bit views) and provisions active QoS
policies through the NetQos PowerShell module.
""")


def build_service(config: Settings) -> QosPolicyService:
    """Construct the registry selector (probed once) and the policy service."""
    registry = BackendSelector(preferred=config.backend, reg_timeout=config.reg_timeout)
    shell = ShellService(timeout=config.powershell_timeout)
    return QosPolicyService(registry, shell)


@asynccontextmanager
async def lifespan(app: FastMCP):
    """Runs initialization code before the server starts and cleanup code after it shuts down."""
    configure_audit_log(settings.audit_log)
    _state.service = build_service(settings)
    try:
        yield
    finally:
        _state.service = None


mcp = FastMCP(name="windows-qos-mcp", instructions=instructions, lifespan=lifespan)
register_all_tools(mcp)


class Transport(Enum):
    STDIO = "stdio"
    SSE = "sse"
    STREAMABLE_HTTP = "streamable-http"

    def __str__(self):
        return self.value


@click.command()
@click.option(
    "--transport",
    help="The transport layer used by the MCP server.",
    type=click.Choice(
        [Transport.STDIO.value, Transport.SSE.value, Transport.STREAMABLE_HTTP.value]
    ),
    default="stdio",
)
@click.option(
    "--host",
    help="Host to bind the SSE/Streamable HTTP server.",
    default="localhost",
    type=str,
    show_default=True,
)
@click.option(
    "--port",
    help="Port to bind the SSE/Streamable HTTP server.",
    default=8000,
    type=int,
    show_default=True,
)
@click.option(
    "--backend",
    help="Registry backend: winreg (native), reg.exe (shell) or auto-detect.",
    type=click.Choice(list(BACKEND_CHOICES)),
    default=None,
)
@click.option(
    "--verbose",
    help="Enable debug logging.",
    is_flag=True,
    default=False,
)
def main(transport, host, port, backend, verbose):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="[%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
    if backend:
        settings.backend = backend

    if transport != Transport.STDIO.value and host not in ("localhost", "127.0.0.1"):
        # Policy tools are loopback-only.
        click.echo(
            f"Error: Refusing to bind to {host}. Use --host localhost.",
            err=True,
        )
        sys.exit(1)

    match transport:
        case Transport.STDIO.value:
            mcp.run(transport=Transport.STDIO.value, show_banner=False)
        case Transport.SSE.value | Transport.STREAMABLE_HTTP.value:
            mcp.run(transport=transport, host=host, port=port, show_banner=False)
        case _:
            raise ValueError(f"Invalid transport: {transport}")


if __name__ == "__main__":
    main()
