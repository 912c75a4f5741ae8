"""Create, update and delete QoS rule keys.

Writes are field-by-field with no transaction: if one value fails the
operation reports that error and the values already written stay.
"""

import logging

from windows_qos_mcp.errors import ValidationError
from windows_qos_mcp.registry.models import (
    DEFAULT_VERSION,
    LOCATIONS,
    POLICY_FIELDS,
    Hive,
    PolicyRecord,
    View,
)
from windows_qos_mcp.registry.selector import BackendSelector

logger = logging.getLogger(__name__)


def _require_rule_name(rule_name: str | None) -> str:
    name = (rule_name or "").strip()
    if not name:
        raise ValidationError("Rule name is required.")
    if "\\" in name:
        raise ValidationError(f"Rule name must not contain a backslash: {name}")
    return name


class PolicyWriter:
    def __init__(self, registry: BackendSelector) -> None:
        self.registry = registry

    def create_or_update(self, record: PolicyRecord) -> PolicyRecord:
        """Write the fields present on *record*; absent fields are left untouched.

        A rule created without an explicit version gets ``Version = "1.0"``.
        Returns the record as written (with the trimmed name).
        """
        rule_name = _require_rule_name(record.rule_name)
        hive, view = Hive.parse(record.hive), View.parse(record.view)
        target = PolicyRecord(
            rule_name=rule_name,
            hive=hive,
            view=view,
            **{attr: getattr(record, attr) for attr in POLICY_FIELDS},
        )
        if target.version is None and self.registry.read_rule(hive, view, rule_name) is None:
            target.version = DEFAULT_VERSION

        for attr in POLICY_FIELDS:
            value = getattr(target, attr)
            if value is not None:
                self.registry.write_field(hive, view, rule_name, attr, value)
        logger.info(
            "Wrote QoS rule %s (%s, %s-bit): %s",
            rule_name,
            hive,
            view,
            ", ".join(target.field_values()) or "no fields",
        )
        return target

    def delete(
        self,
        rule_name: str,
        hive: Hive | str | None = None,
        view: View | str | None = None,
    ) -> bool:
        """Delete one location's key. Returns ``False`` when it did not exist."""
        name = _require_rule_name(rule_name)
        return self.registry.delete_rule(Hive.parse(hive), View.parse(view), name)

    def clean_all(self, rule_name: str) -> list[tuple[Hive, View]]:
        """Best-effort removal of the rule from all four locations.

        Per-location failures are logged and skipped. Returns the locations
        where a key was actually removed.
        """
        name = _require_rule_name(rule_name)
        removed = []
        for hive, view in LOCATIONS:
            try:
                if self.registry.delete_rule(hive, view, name):
                    removed.append((hive, view))
            except Exception as e:
                logger.warning("Could not remove %s from %s %s-bit view: %s", name, hive, view, e)
        return removed
