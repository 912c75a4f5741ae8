"""Registry backend on the ``winreg`` standard-library module.

``winreg`` only exists on Windows; ``HAS_WINREG`` reports whether it could be
imported so the backend selector can fall back to ``reg.exe``.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from windows_qos_mcp.errors import BackendError
from windows_qos_mcp.registry import codec
from windows_qos_mcp.registry.models import (
    POLICY_FIELDS,
    QOS_ROOT,
    Hive,
    PolicyRecord,
    View,
)

logger = logging.getLogger(__name__)

try:
    import winreg

    HAS_WINREG = True
except ImportError:
    winreg = None  # type: ignore[assignment]
    HAS_WINREG = False
    logger.debug("winreg not available, registry access limited to reg.exe")

_SOFTWARE_KEY = "Software"
_PROBE_KEY = "Software\\Policies"


class NativeRegistryBackend:
    """Reads and writes QoS rules through the Win32 registry API."""

    name = "native"

    def _hive_key(self, hive: Hive):
        return winreg.HKEY_CURRENT_USER if hive is Hive.USER else winreg.HKEY_LOCAL_MACHINE

    def _access(self, view: View, write: bool = False) -> int:
        base = winreg.KEY_ALL_ACCESS if write else winreg.KEY_READ
        wow = winreg.KEY_WOW64_64KEY if view is View.VIEW_64 else winreg.KEY_WOW64_32KEY
        return base | wow

    @contextmanager
    def open_policy_root(self, hive: Hive, view: View, write: bool = False) -> Iterator:
        """Yield a handle to the QoS root, or ``None`` if the key does not exist.

        The handle is closed when the block exits, whatever the outcome.
        """
        try:
            handle = winreg.OpenKey(self._hive_key(hive), QOS_ROOT, 0, self._access(view, write))
        except FileNotFoundError:
            yield None
            return
        except OSError as e:
            raise BackendError(f"Cannot open {hive}\\{QOS_ROOT} ({view}-bit): {e}") from e
        with handle:
            yield handle

    def list_rule_names(self, hive: Hive, view: View) -> list[str]:
        with self.open_policy_root(hive, view) as root:
            if root is None:
                return []
            try:
                subkey_count, _, _ = winreg.QueryInfoKey(root)
                return [winreg.EnumKey(root, i) for i in range(subkey_count)]
            except OSError as e:
                raise BackendError(f"Cannot enumerate {hive}\\{QOS_ROOT}: {e}") from e

    def _query(self, key, value_name: str) -> str:
        try:
            raw, _ = winreg.QueryValueEx(key, value_name)
        except OSError:
            return ""
        return codec.decode(raw)

    def read_rule(self, hive: Hive, view: View, rule_name: str) -> PolicyRecord | None:
        with self.open_policy_root(hive, view) as root:
            if root is None:
                return None
            try:
                rule_key = winreg.OpenKey(root, rule_name, 0, self._access(view))
            except OSError:
                return None
            with rule_key:
                values = {
                    attr: self._query(rule_key, value_name)
                    for attr, value_name in POLICY_FIELDS.items()
                }
        return PolicyRecord(rule_name=rule_name, hive=hive, view=view, **values)

    def write_field(self, hive: Hive, view: View, rule_name: str, field: str, value) -> None:
        encoded = codec.encode(field, value)
        access = self._access(view, write=True)
        try:
            with winreg.CreateKeyEx(self._hive_key(hive), QOS_ROOT, 0, access) as root:
                with winreg.CreateKeyEx(root, rule_name, 0, access) as rule_key:
                    winreg.SetValueEx(rule_key, encoded.name, 0, winreg.REG_SZ, encoded.data)
        except OSError as e:
            raise BackendError(
                f'Cannot write "{encoded.name}" for rule {rule_name} ({hive}, {view}-bit): {e}'
            ) from e

    def delete_rule(self, hive: Hive, view: View, rule_name: str) -> bool:
        with self.open_policy_root(hive, view, write=True) as root:
            if root is None:
                return False
            try:
                winreg.DeleteKeyEx(root, rule_name, self._access(view, write=True), 0)
            except FileNotFoundError:
                return False
            except OSError as e:
                raise BackendError(
                    f"Cannot delete rule {rule_name} ({hive}, {view}-bit): {e}"
                ) from e
        logger.info("Deleted QoS rule %s (%s, %s-bit) via winreg", rule_name, hive, view)
        return True

    def probe_write_access(self) -> bool:
        """Open ``HKLM\\Software\\Policies`` for write; only administrators can."""
        access = winreg.KEY_WRITE | winreg.KEY_WOW64_64KEY
        with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, _PROBE_KEY, 0, access):
            return True

    def can_open_root(self) -> bool:
        """Whether ``HKLM\\Software`` opens for reading through ``winreg``."""
        try:
            with winreg.OpenKey(
                winreg.HKEY_LOCAL_MACHINE, _SOFTWARE_KEY, 0, self._access(View.VIEW_64)
            ):
                return True
        except OSError as e:
            logger.warning("winreg cannot open HKLM\\%s: %s", _SOFTWARE_KEY, e)
            return False
