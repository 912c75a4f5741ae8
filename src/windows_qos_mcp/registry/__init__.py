from windows_qos_mcp.registry.models import Hive, PolicyRecord, View
from windows_qos_mcp.registry.selector import BackendSelector

__all__ = ["BackendSelector", "Hive", "PolicyRecord", "View"]
