"""QoS policy MCP tools.

Registers: ListPolicies, SetPolicy, DeletePolicy, CheckAdmin,
ProvisionActivePolicy, RetireActivePolicy, GetActivePolicy,
OpenPolicyEditor (8 tools).

Every tool returns the ``{"success": bool, "data"?, "error"?, "code"?,
"warning"?}`` shape produced by ``OperationResult.to_dict``.
"""

import logging
from typing import Literal

from fastmcp import Context
from mcp.types import ToolAnnotations

from windows_qos_mcp.audit import with_audit
from windows_qos_mcp.errors import ErrorCode
from windows_qos_mcp.tools import _state
from windows_qos_mcp.tools._helpers import _optional_str

logger = logging.getLogger("windows_qos_mcp")

_NOT_READY = {
    "success": False,
    "error": "QoS policy service is not initialised.",
    "code": ErrorCode.BACKEND_ERROR.value,
}


def register(mcp):  # noqa: C901
    """Register QoS policy tools on *mcp*."""

    @mcp.tool(
        name="ListPolicies",
        description="Lists every Policy-based QoS rule declared under Software\\Policies\\Microsoft\\Windows\\QoS in HKLM and HKCU, in both the 64-bit and 32-bit registry views (order: HKLM/64, HKLM/32, HKCU/64, HKCU/32). Each record carries rule_name, hive, view, key_path and the string values Application Name, DSCP Value, Throttle Rate, Protocol, Local/Remote IP, prefix lengths, ports and Version. An empty list means no readable rules.",
        annotations=ToolAnnotations(
            title="ListPolicies",
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
    )
    @with_audit("ListPolicies")
    def list_policies_tool(ctx: Context = None) -> dict:
        if _state.service is None:
            return dict(_NOT_READY)
        return _state.service.list_policies().to_dict()

    @mcp.tool(
        name="SetPolicy",
        description="Creates or updates a QoS rule in the registry. Only the fields you pass are written; omitted fields keep their current value. All values are stored as REG_SZ strings, use '*' for 'any'. hive is HKLM (default) or HKCU, view is '64' (default) or '32'. A new rule without version gets Version '1.0'. Requires administrator rights.",
        annotations=ToolAnnotations(
            title="SetPolicy",
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
    )
    @with_audit("SetPolicy")
    def set_policy_tool(
        rule_name: str,
        hive: Literal["HKLM", "HKCU"] = "HKLM",
        view: Literal["64", "32"] = "64",
        application_name: str | None = None,
        dscp_value: str | int | None = None,
        throttle_rate: str | int | None = None,
        protocol: str | None = None,
        local_ip: str | None = None,
        local_ip_prefix_length: str | int | None = None,
        local_port: str | int | None = None,
        remote_ip: str | None = None,
        remote_ip_prefix_length: str | int | None = None,
        remote_port: str | int | None = None,
        version: str | None = None,
        ctx: Context = None,
    ) -> dict:
        if _state.service is None:
            return dict(_NOT_READY)
        record = {
            "rule_name": rule_name,
            "hive": hive,
            "view": view,
            "application_name": _optional_str(application_name),
            "dscp_value": _optional_str(dscp_value),
            "throttle_rate": _optional_str(throttle_rate),
            "protocol": _optional_str(protocol),
            "local_ip": _optional_str(local_ip),
            "local_ip_prefix_length": _optional_str(local_ip_prefix_length),
            "local_port": _optional_str(local_port),
            "remote_ip": _optional_str(remote_ip),
            "remote_ip_prefix_length": _optional_str(remote_ip_prefix_length),
            "remote_port": _optional_str(remote_port),
            "version": _optional_str(version),
        }
        return _state.service.create_or_update_policy(record).to_dict()

    @mcp.tool(
        name="DeletePolicy",
        description="Deletes one QoS rule key at a single (hive, view) location. Deleting a rule that does not exist succeeds with deleted=false. Requires administrator rights.",
        annotations=ToolAnnotations(
            title="DeletePolicy",
            readOnlyHint=False,
            destructiveHint=True,
            idempotentHint=True,
            openWorldHint=False,
        ),
    )
    @with_audit("DeletePolicy")
    def delete_policy_tool(
        rule_name: str,
        view: Literal["64", "32"] = "64",
        hive: Literal["HKLM", "HKCU"] = "HKLM",
        ctx: Context = None,
    ) -> dict:
        if _state.service is None:
            return dict(_NOT_READY)
        return _state.service.delete_policy(rule_name, view=view, hive=hive).to_dict()

    @mcp.tool(
        name="CheckAdmin",
        description="Reports whether the server process runs with administrator rights (data=true/false). Write, delete and provisioning tools require it.",
        annotations=ToolAnnotations(
            title="CheckAdmin",
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
    )
    @with_audit("CheckAdmin")
    def check_admin_tool(ctx: Context = None) -> dict:
        if _state.service is None:
            return dict(_NOT_READY)
        return _state.service.check_admin().to_dict()

    @mcp.tool(
        name="ProvisionActivePolicy",
        description="Creates an active QoS policy with New-NetQosPolicy. dscp_value is clamped to 0-63; throttle_rate is in kilobytes per second and converted to bits per second (x8000); non-positive rates mean unlimited. Only one port condition is supported: local_port is used if valid, otherwise remote_port. network_profile: All, Domain, Private or Public. policy_store: localhost (default), GPO:localhost or ActiveStore. Requires administrator rights.",
        annotations=ToolAnnotations(
            title="ProvisionActivePolicy",
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=False,
            openWorldHint=False,
        ),
    )
    @with_audit("ProvisionActivePolicy")
    def provision_active_policy_tool(
        name: str,
        dscp_value: str | int | None = None,
        throttle_rate: str | float | None = None,
        application_name: str | None = None,
        protocol: Literal["TCP", "UDP", "Both", "*"] | None = None,
        local_ip: str | None = None,
        local_ip_prefix_length: str | int | None = None,
        local_port: str | int | None = None,
        remote_ip: str | None = None,
        remote_ip_prefix_length: str | int | None = None,
        remote_port: str | int | None = None,
        network_profile: Literal["All", "Domain", "Private", "Public"] = "All",
        policy_store: str = "localhost",
        ctx: Context = None,
    ) -> dict:
        if _state.service is None:
            return dict(_NOT_READY)
        form = {
            "name": name,
            "dscp_value": _optional_str(dscp_value),
            "throttle_rate": _optional_str(throttle_rate),
            "application_name": _optional_str(application_name),
            "protocol": _optional_str(protocol),
            "local_ip": _optional_str(local_ip),
            "local_ip_prefix_length": _optional_str(local_ip_prefix_length),
            "local_port": _optional_str(local_port),
            "remote_ip": _optional_str(remote_ip),
            "remote_ip_prefix_length": _optional_str(remote_ip_prefix_length),
            "remote_port": _optional_str(remote_port),
            "network_profile": network_profile,
            "policy_store": policy_store,
        }
        return _state.service.provision_active_policy(form).to_dict()

    @mcp.tool(
        name="RetireActivePolicy",
        description="Removes an active QoS policy from the localhost, GPO:localhost and ActiveStore policy stores (each best-effort), then deletes its registry declarations in every hive and view. If the policy is still active afterwards a warning is returned: a domain Group Policy may re-apply it. Requires administrator rights.",
        annotations=ToolAnnotations(
            title="RetireActivePolicy",
            readOnlyHint=False,
            destructiveHint=True,
            idempotentHint=True,
            openWorldHint=False,
        ),
    )
    @with_audit("RetireActivePolicy")
    def retire_active_policy_tool(name: str, ctx: Context = None) -> dict:
        if _state.service is None:
            return dict(_NOT_READY)
        return _state.service.retire_active_policy(name).to_dict()

    @mcp.tool(
        name="GetActivePolicy",
        description="Lists active QoS policies via Get-NetQosPolicy as Format-List text. Pass name to show one policy; store defaults to ActiveStore.",
        annotations=ToolAnnotations(
            title="GetActivePolicy",
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
    )
    @with_audit("GetActivePolicy")
    def get_active_policy_tool(
        name: str | None = None, store: str = "ActiveStore", ctx: Context = None
    ) -> dict:
        if _state.service is None:
            return dict(_NOT_READY)
        return _state.service.get_active_policy(name, store).to_dict()

    @mcp.tool(
        name="OpenPolicyEditor",
        description="Opens the Local Group Policy Editor (gpedit.msc) on the server's desktop so Policy-based QoS can be edited interactively. Returns immediately.",
        annotations=ToolAnnotations(
            title="OpenPolicyEditor",
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=False,
            openWorldHint=False,
        ),
    )
    @with_audit("OpenPolicyEditor")
    def open_policy_editor_tool(ctx: Context = None) -> dict:
        if _state.service is None:
            return dict(_NOT_READY)
        return _state.service.open_policy_editor().to_dict()
