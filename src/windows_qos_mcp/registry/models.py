"""Policy-based QoS data model.

Each rule is a subkey of ``Software\\Policies\\Microsoft\\Windows\\QoS`` under
HKLM or HKCU, in either the 64-bit or the 32-bit (WOW64) registry view.
Every value is stored as REG_SZ, including the numeric ones (DSCP, throttle
rate, prefix lengths), so the model keeps them as strings.
"""

from dataclasses import asdict, dataclass, fields
from enum import Enum

from windows_qos_mcp.errors import ValidationError

QOS_ROOT = "Software\\Policies\\Microsoft\\Windows\\QoS"

WILDCARD = "*"

DEFAULT_VERSION = "1.0"

# Record attribute -> registry value name, in write order.
POLICY_FIELDS: dict[str, str] = {
    "application_name": "Application Name",
    "dscp_value": "DSCP Value",
    "throttle_rate": "Throttle Rate",
    "protocol": "Protocol",
    "local_ip": "Local IP",
    "local_ip_prefix_length": "Local IP Prefix Length",
    "local_port": "Local Port",
    "remote_ip": "Remote IP",
    "remote_ip_prefix_length": "Remote IP Prefix Length",
    "remote_port": "Remote Port",
    "version": "Version",
}

_VALUE_NAME_TO_FIELD = {v.lower(): k for k, v in POLICY_FIELDS.items()}


class Hive(Enum):
    MACHINE = "HKLM"
    USER = "HKCU"

    def __str__(self):
        return self.value

    @property
    def long_name(self) -> str:
        return "HKEY_LOCAL_MACHINE" if self is Hive.MACHINE else "HKEY_CURRENT_USER"

    @classmethod
    def parse(cls, value: "Hive | str | None") -> "Hive":
        """Accept ``HKLM``/``HKEY_LOCAL_MACHINE``/``machine`` and the HKCU forms."""
        if isinstance(value, Hive):
            return value
        if value is None or not str(value).strip():
            return cls.MACHINE
        key = str(value).strip().upper().rstrip(":")
        if key in ("HKLM", "HKEY_LOCAL_MACHINE", "MACHINE"):
            return cls.MACHINE
        if key in ("HKCU", "HKEY_CURRENT_USER", "USER"):
            return cls.USER
        raise ValidationError(f"Unknown registry hive: {value}")


class View(Enum):
    VIEW_64 = "64"
    VIEW_32 = "32"

    def __str__(self):
        return self.value

    @classmethod
    def parse(cls, value: "View | str | int | None") -> "View":
        if isinstance(value, View):
            return value
        if value is None or not str(value).strip():
            return cls.VIEW_64
        key = str(value).strip().upper()
        if key in ("64", "VIEW_64"):
            return cls.VIEW_64
        if key in ("32", "VIEW_32"):
            return cls.VIEW_32
        raise ValidationError(f"Unknown registry view: {value}")


# Enumeration order is part of the contract: HKLM before HKCU, 64 before 32.
HIVES: tuple[Hive, ...] = (Hive.MACHINE, Hive.USER)
VIEWS: tuple[View, ...] = (View.VIEW_64, View.VIEW_32)
LOCATIONS: tuple[tuple[Hive, View], ...] = tuple((h, v) for h in HIVES for v in VIEWS)


def policy_key_path(hive: Hive, rule_name: str | None = None) -> str:
    """Short-form path as passed to ``reg.exe``, e.g. ``HKLM\\Software\\...\\QoS\\Rule``."""
    path = f"{hive.value}\\{QOS_ROOT}"
    return f"{path}\\{rule_name}" if rule_name else path


@dataclass
class PolicyRecord:
    """One QoS rule at one (hive, view) location.

    ``None`` on a field attribute means "not supplied" and is skipped by
    writers (partial update). Records produced by reads always carry
    strings, ``""`` for values missing from the key.
    """

    rule_name: str
    hive: Hive = Hive.MACHINE
    view: View = View.VIEW_64
    application_name: str | None = None
    dscp_value: str | None = None
    throttle_rate: str | None = None
    protocol: str | None = None
    local_ip: str | None = None
    local_ip_prefix_length: str | None = None
    local_port: str | None = None
    remote_ip: str | None = None
    remote_ip_prefix_length: str | None = None
    remote_port: str | None = None
    version: str | None = None
    key_path: str = ""

    def __post_init__(self):
        if not self.key_path and self.rule_name:
            self.key_path = policy_key_path(self.hive, self.rule_name)

    def field_values(self) -> dict[str, str]:
        """Registry value name -> value, for the fields that are present."""
        return {
            value_name: getattr(self, attr)
            for attr, value_name in POLICY_FIELDS.items()
            if getattr(self, attr) is not None
        }

    def is_wildcard(self, attr: str) -> bool:
        """Absent and ``*`` both mean "not restricted" for a match condition."""
        value = getattr(self, attr)
        return value is None or value.strip() in ("", WILDCARD)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["hive"] = self.hive.value
        data["view"] = self.view.value
        return data

    @classmethod
    def from_mapping(cls, mapping: dict) -> "PolicyRecord":
        """Build a record from snake_case keys or registry value names.

        Values are stringified; ``None`` stays ``None`` so the field is
        treated as absent.
        """
        known = {f.name for f in fields(cls)}
        kwargs: dict = {}
        for key, value in mapping.items():
            attr = key if key in known else _VALUE_NAME_TO_FIELD.get(str(key).lower())
            if attr is None or attr == "key_path":
                continue
            kwargs[attr] = value
        rule_name = kwargs.pop("rule_name", "")
        hive = Hive.parse(kwargs.pop("hive", None))
        view = View.parse(kwargs.pop("view", None))
        for attr, value in kwargs.items():
            if value is not None:
                kwargs[attr] = str(value)
        return cls(
            rule_name=str(rule_name or "").strip(),
            hive=hive,
            view=view,
            **kwargs,
        )
