"""Snapshot of every QoS rule across both hives and both registry views."""

import logging

from windows_qos_mcp.errors import ErrorCode
from windows_qos_mcp.registry.models import LOCATIONS, Hive, PolicyRecord, View
from windows_qos_mcp.registry.selector import BackendSelector

logger = logging.getLogger(__name__)


class PolicyEnumerator:
    def __init__(self, registry: BackendSelector) -> None:
        self.registry = registry

    def collect(self, hive: Hive, view: View) -> list[PolicyRecord]:
        """Records at one location. Unreadable rules are skipped."""
        records = []
        for rule_name in self.registry.list_rule_names(hive, view):
            try:
                record = self.registry.read_rule(hive, view, rule_name)
            except Exception as e:
                logger.warning(
                    "%s: skipped rule %s (%s, %s-bit): %s",
                    ErrorCode.PARTIAL_FAILURE,
                    rule_name,
                    hive,
                    view,
                    e,
                )
                continue
            if record is not None:
                records.append(record)
        return records

    def collect_all(self) -> list[PolicyRecord]:
        """HKLM/64, HKLM/32, HKCU/64, HKCU/32, in that order.

        A location that cannot be enumerated is skipped; the rest are still
        returned. Total failure yields an empty list.
        """
        records: list[PolicyRecord] = []
        for hive, view in LOCATIONS:
            try:
                records.extend(self.collect(hive, view))
            except Exception as e:
                logger.warning(
                    "%s: skipped %s %s-bit view: %s", ErrorCode.PARTIAL_FAILURE, hive, view, e
                )
        return records

    def find(self, rule_name: str) -> list[PolicyRecord]:
        """Every location holding a rule with this name (case-insensitive)."""
        wanted = rule_name.strip().lower()
        return [r for r in self.collect_all() if r.rule_name.lower() == wanted]
