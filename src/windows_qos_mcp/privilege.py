"""Elevation check guarding registry writes and NetQos provisioning."""

import ctypes
import logging
from collections.abc import Callable, Iterable

from windows_qos_mcp.errors import PermissionDeniedError
from windows_qos_mcp.shell.service import ShellService

logger = logging.getLogger(__name__)

Probe = Callable[[], bool]

NET_SESSION_COMMAND = ["net", "session"]


def is_user_an_admin() -> bool:
    """``shell32.IsUserAnAdmin``; raises off Windows (no ``ctypes.windll``)."""
    return bool(ctypes.windll.shell32.IsUserAnAdmin())


def net_session_elevated(shell: ShellService) -> Probe:
    """``net session`` exits 0 only in an elevated session."""

    def net_session() -> bool:
        return shell.run(NET_SESSION_COMMAND).ok

    return net_session


class PrivilegeGate:
    """Runs low-risk probes in order; the first truthy answer wins.

    A probe that raises counts as "not elevated", so the gate fails closed.
    """

    def __init__(self, probes: Iterable[Probe]) -> None:
        self._probes = list(probes)

    def is_elevated(self) -> bool:
        for probe in self._probes:
            try:
                if probe():
                    return True
            except Exception as e:
                logger.debug("Elevation probe %s failed: %s", getattr(probe, "__name__", probe), e)
        return False

    def require_elevated(self, action: str = "this operation") -> None:
        if not self.is_elevated():
            raise PermissionDeniedError(f"Administrator rights are required for {action}.")
