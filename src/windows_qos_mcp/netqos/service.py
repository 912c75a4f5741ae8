"""Active QoS policies through the NetQos PowerShell module.

Registry rules are declarations that Group Policy turns into active
policies; ``New-NetQosPolicy`` / ``Remove-NetQosPolicy`` manage the active
side directly. Every free-text value interpolated into a script goes through
``ShellService.ps_quote``.

``New-NetQosPolicy`` takes a single ``-IPPortMatchCondition`` and has no
separate local/remote port conditions, so when both ports are supplied only
one of them (local first) is used.
"""

import logging
import math
import re
from dataclasses import dataclass, field, fields

from windows_qos_mcp.errors import BackendError, ValidationError
from windows_qos_mcp.policy.writer import PolicyWriter
from windows_qos_mcp.privilege import PrivilegeGate
from windows_qos_mcp.registry.models import WILDCARD, Hive, View
from windows_qos_mcp.shell.service import ShellService

logger = logging.getLogger(__name__)

DSCP_MIN, DSCP_MAX = 0, 63
PORT_MIN, PORT_MAX = 1, 65535

NETWORK_PROFILES = ("All", "Domain", "Private", "Public")
REMOVAL_STORES = ("localhost", "GPO:localhost", "ActiveStore")
_PROTOCOLS = {"TCP": "TCP", "UDP": "UDP", "BOTH": "Both"}

_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")

DOMAIN_POLICY_WARNING = (
    "The policy is still present in the active store; it may be governed by a "
    "domain Group Policy and reappear."
)


@dataclass
class ProvisionRequest:
    """Form for one active policy. Blank or ``*`` values mean "not set"."""

    name: str
    dscp_value: str | None = None
    throttle_rate: str | None = None  # kilobytes per second
    application_name: str | None = None
    protocol: str | None = None
    local_ip: str | None = None
    local_ip_prefix_length: str | None = None
    local_port: str | None = None
    remote_ip: str | None = None
    remote_ip_prefix_length: str | None = None
    remote_port: str | None = None
    network_profile: str = "All"
    policy_store: str = "localhost"

    @classmethod
    def from_mapping(cls, mapping: dict) -> "ProvisionRequest":
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in mapping.items() if k in known and v is not None}
        if "name" not in kwargs and mapping.get("rule_name"):
            kwargs["name"] = mapping["rule_name"]
        kwargs = {k: str(v) for k, v in kwargs.items()}
        kwargs.setdefault("name", "")
        return cls(**kwargs)


@dataclass
class RetireOutcome:
    remaining: str
    registry_removed: list[tuple[Hive, View]] = field(default_factory=list)
    warning: str | None = None


def _is_set(value: str | None) -> bool:
    return value is not None and value.strip() not in ("", WILDCARD)


def _leading_int(value: str | None) -> int | None:
    if not _is_set(value):
        return None
    m = _LEADING_INT_RE.match(value)
    return int(m.group(1)) if m else None


def clamp_dscp(value: str | None) -> int | None:
    """DSCP as an int in [0, 63]; ``None`` when blank or non-numeric."""
    dscp = _leading_int(value)
    if dscp is None:
        return None
    return max(DSCP_MIN, min(DSCP_MAX, dscp))


def kbps_to_bits_per_second(value: str | None) -> int | None:
    """Kilobytes/s to bits/s (x 1000 x 8, rounded half up).

    Non-numeric or non-positive rates return ``None``: no throttle.
    """
    if not _is_set(value):
        return None
    try:
        rate = float(value.strip())
    except ValueError:
        return None
    if not math.isfinite(rate) or rate <= 0:
        return None
    return math.floor(rate * 1000 * 8 + 0.5)


def _valid_port(value: str | None) -> int | None:
    if not _is_set(value) or not value.strip().isdigit():
        return None
    port = int(value.strip())
    return port if PORT_MIN <= port <= PORT_MAX else None


def effective_port(local_port: str | None, remote_port: str | None) -> int | None:
    """The single port condition New-NetQosPolicy supports; local wins."""
    local, remote = _valid_port(local_port), _valid_port(remote_port)
    if local is not None and remote is not None and local != remote:
        logger.warning(
            "Both local (%s) and remote (%s) ports given; only one port condition "
            "is supported, using %s",
            local,
            remote,
            local,
        )
    return local if local is not None else remote


class NetQosProvisioner:
    """Builds and runs New-/Remove-/Get-NetQosPolicy scripts."""

    def __init__(self, shell: ShellService, privilege: PrivilegeGate, writer: PolicyWriter) -> None:
        self.shell = shell
        self.privilege = privilege
        self.writer = writer

    def build_new_policy_args(self, request: ProvisionRequest) -> list[str]:
        q = self.shell.ps_quote
        name = request.name.strip()
        if not name:
            raise ValidationError("Policy name is required.")
        profile = (request.network_profile or "All").strip()
        matched_profile = next((p for p in NETWORK_PROFILES if p.lower() == profile.lower()), None)
        if matched_profile is None:
            raise ValidationError(
                f"Unknown network profile '{profile}'. Allowed: {', '.join(NETWORK_PROFILES)}"
            )

        params = [f"-Name {q(name)}"]
        dscp = clamp_dscp(request.dscp_value)
        if dscp is not None:
            params.append(f"-DSCPAction {dscp}")
        bps = kbps_to_bits_per_second(request.throttle_rate)
        if bps is not None:
            params.append(f"-ThrottleRateActionBitsPerSecond {bps}")
        if _is_set(request.application_name):
            params.append(f"-AppPathNameMatchCondition {q(request.application_name.strip())}")
        protocol = _PROTOCOLS.get((request.protocol or "").strip().upper())
        if protocol:
            params.append(f"-IPProtocolMatchCondition {protocol}")
        port = effective_port(request.local_port, request.remote_port)
        if port is not None:
            params.append(f"-IPPortMatchCondition {port}")
        if _is_set(request.local_ip) and _is_set(request.local_ip_prefix_length):
            prefix = f"{request.local_ip.strip()}/{request.local_ip_prefix_length.strip()}"
            params.append(f"-IPSrcPrefixMatchCondition {q(prefix)}")
        if _is_set(request.remote_ip) and _is_set(request.remote_ip_prefix_length):
            prefix = f"{request.remote_ip.strip()}/{request.remote_ip_prefix_length.strip()}"
            params.append(f"-IPDstPrefixMatchCondition {q(prefix)}")
        params.append(f"-NetworkProfile {matched_profile}")
        params.append(f"-PolicyStore {q((request.policy_store or 'localhost').strip())}")
        return params

    def build_new_policy_script(self, request: ProvisionRequest) -> str:
        params = self.build_new_policy_args(request)
        name = self.shell.ps_quote(request.name.strip())
        return "\n".join(
            [
                "$ErrorActionPreference = 'Stop'",
                f"New-NetQosPolicy {' '.join(params)}",
                f"Get-NetQosPolicy -Name {name} -PolicyStore ActiveStore | Format-List *",
                "",
            ]
        )

    def build_remove_policy_script(self, name: str) -> str:
        q = self.shell.ps_quote
        lines = [
            f"Remove-NetQosPolicy -Name {q(name)} -PolicyStore {q(store)} "
            "-Confirm:$false -ErrorAction SilentlyContinue"
            for store in REMOVAL_STORES
        ]
        lines.append(
            f"Get-NetQosPolicy -Name {q(name)} -PolicyStore ActiveStore "
            "-ErrorAction SilentlyContinue | Format-List *"
        )
        return "\n".join(lines) + "\n"

    def provision(self, request: ProvisionRequest) -> str:
        """Create the active policy; returns the resulting policy listing."""
        self.privilege.require_elevated("creating an active QoS policy")
        script = self.build_new_policy_script(request)
        result = self.shell.run_script(script)
        if not result.ok:
            raise BackendError(
                result.stderr.strip() or result.stdout.strip() or "New-NetQosPolicy failed"
            )
        logger.info("Provisioned active QoS policy %s", request.name.strip())
        return result.stdout

    def retire(self, name: str) -> RetireOutcome:
        """Remove the policy from every store, then its registry declarations."""
        self.privilege.require_elevated("removing an active QoS policy")
        name = (name or "").strip()
        if not name:
            raise ValidationError("Policy name is required.")
        try:
            result = self.shell.run_script(self.build_remove_policy_script(name))
        finally:
            # registry declarations go even if the store removal timed out
            removed = self.writer.clean_all(name)
        if not result.ok:
            raise BackendError(
                result.stderr.strip() or result.stdout.strip() or "Remove-NetQosPolicy failed"
            )
        remaining = result.stdout.strip()
        logger.info("Retired active QoS policy %s (registry keys removed: %d)", name, len(removed))
        return RetireOutcome(
            remaining=remaining,
            registry_removed=removed,
            warning=DOMAIN_POLICY_WARNING if remaining else None,
        )

    def get_active(self, name: str | None = None, store: str = "ActiveStore") -> str:
        q = self.shell.ps_quote
        name_arg = f"-Name {q(name.strip())} " if name and name.strip() else ""
        command = (
            f"Get-NetQosPolicy {name_arg}-PolicyStore {q(store or 'ActiveStore')} "
            "-ErrorAction SilentlyContinue | Format-List *"
        )
        result = self.shell.execute(command)
        if not result.ok:
            raise BackendError(result.stderr.strip() or "Get-NetQosPolicy failed")
        return result.stdout
