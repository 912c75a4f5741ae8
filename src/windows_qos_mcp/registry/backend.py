"""Operation interface shared by the native and ``reg.exe`` registry backends."""

from typing import Protocol

from windows_qos_mcp.registry.models import Hive, PolicyRecord, View


class RegistryBackend(Protocol):
    name: str

    def list_rule_names(self, hive: Hive, view: View) -> list[str]:
        """Immediate subkey names of the QoS root; ``[]`` if the root is absent."""
        ...

    def read_rule(self, hive: Hive, view: View, rule_name: str) -> PolicyRecord | None:
        """Decode every schema field of one rule; ``None`` if the key can't be opened."""
        ...

    def write_field(self, hive: Hive, view: View, rule_name: str, field: str, value) -> None:
        """Create the rule key if needed and set one REG_SZ value."""
        ...

    def delete_rule(self, hive: Hive, view: View, rule_name: str) -> bool:
        """Delete the rule key. ``False`` (not an error) when it does not exist."""
        ...

    def probe_write_access(self) -> bool:
        """Low-risk check that the process may write machine policy keys."""
        ...
