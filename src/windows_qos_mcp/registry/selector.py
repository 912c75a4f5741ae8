"""One-time choice between the native and ``reg.exe`` registry backends.

The selector is built once by the server lifespan and handed to every
component that needs registry access. Callers use its uniform interface and
never check which backend is active.
"""

import logging
from typing import Literal

from windows_qos_mcp.registry import native
from windows_qos_mcp.registry.backend import RegistryBackend
from windows_qos_mcp.registry.models import Hive, PolicyRecord, View
from windows_qos_mcp.registry.native import NativeRegistryBackend
from windows_qos_mcp.registry.shell import DEFAULT_REG_TIMEOUT, ShellRegistryBackend

logger = logging.getLogger(__name__)

BackendPreference = Literal["auto", "native", "shell"]


class BackendSelector:
    """Resolves the registry backend at construction and delegates to it.

    Args:
        preferred: ``"auto"`` picks the native backend when ``winreg`` is
            importable and can open ``HKLM\\Software``, otherwise
            ``reg.exe``. ``"native"`` and ``"shell"`` force a backend
            (``"native"`` still falls back when ``winreg`` is missing).
        reg_timeout: Timeout in seconds for each ``reg.exe`` invocation.
        backend: An already-built backend, bypassing the probe (tests).
    """

    def __init__(
        self,
        preferred: BackendPreference = "auto",
        reg_timeout: int = DEFAULT_REG_TIMEOUT,
        backend: RegistryBackend | None = None,
    ) -> None:
        self._backend: RegistryBackend = backend or self._probe(preferred, reg_timeout)
        logger.info("Registry backend: %s", self._backend.name)

    @staticmethod
    def _probe(preferred: str, reg_timeout: int) -> RegistryBackend:
        if preferred == "shell":
            return ShellRegistryBackend(timeout=reg_timeout)
        if native.HAS_WINREG:
            backend = NativeRegistryBackend()
            if preferred == "native" or backend.can_open_root():
                return backend
            return ShellRegistryBackend(timeout=reg_timeout)
        if preferred == "native":
            logger.warning("Native registry backend requested but winreg is unavailable")
        return ShellRegistryBackend(timeout=reg_timeout)

    @property
    def backend_name(self) -> str:
        return self._backend.name

    def list_rule_names(self, hive: Hive, view: View) -> list[str]:
        return self._backend.list_rule_names(hive, view)

    def read_rule(self, hive: Hive, view: View, rule_name: str) -> PolicyRecord | None:
        return self._backend.read_rule(hive, view, rule_name)

    def write_field(self, hive: Hive, view: View, rule_name: str, field: str, value) -> None:
        self._backend.write_field(hive, view, rule_name, field, value)

    def delete_rule(self, hive: Hive, view: View, rule_name: str) -> bool:
        return self._backend.delete_rule(hive, view, rule_name)

    def probe_write_access(self) -> bool:
        return self._backend.probe_write_access()
