"""Policy operations exposed to the MCP tools.

Every public method returns an :class:`OperationResult`; ``QosError``s and
unexpected exceptions are converted here and never reach the caller.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from windows_qos_mcp.errors import ErrorCode, QosError
from windows_qos_mcp.netqos.service import NetQosProvisioner, ProvisionRequest
from windows_qos_mcp.policy.enumerator import PolicyEnumerator
from windows_qos_mcp.policy.writer import PolicyWriter
from windows_qos_mcp.privilege import PrivilegeGate, is_user_an_admin, net_session_elevated
from windows_qos_mcp.registry.models import Hive, PolicyRecord, View
from windows_qos_mcp.registry.selector import BackendSelector
from windows_qos_mcp.shell.service import ShellService

logger = logging.getLogger(__name__)

POLICY_EDITOR_COMMAND = ["mmc.exe", "gpedit.msc"]


@dataclass
class OperationResult:
    success: bool
    data: Any = None
    error: str | None = None
    code: ErrorCode | None = None
    warning: str | None = None

    def to_dict(self) -> dict:
        out: dict[str, Any] = {"success": self.success}
        if self.data is not None:
            out["data"] = self.data
        if self.error is not None:
            out["error"] = self.error
        if self.code is not None:
            out["code"] = self.code.value
        if self.warning is not None:
            out["warning"] = self.warning
        return out


def _location(hive: Hive, view: View) -> dict:
    return {"hive": hive.value, "view": view.value}


class QosPolicyService:
    """Facade over the enumerator, writer, provisioner and privilege gate."""

    def __init__(
        self,
        registry: BackendSelector,
        shell: ShellService,
        privilege: PrivilegeGate | None = None,
    ) -> None:
        self.registry = registry
        self.shell = shell
        self.privilege = privilege or PrivilegeGate(
            [registry.probe_write_access, net_session_elevated(shell), is_user_an_admin]
        )
        self.enumerator = PolicyEnumerator(registry)
        self.writer = PolicyWriter(registry)
        self.provisioner = NetQosProvisioner(shell, self.privilege, self.writer)

    def _guard(self, operation: str, func: Callable[[], OperationResult]) -> OperationResult:
        try:
            return func()
        except QosError as e:
            logger.warning("%s failed [%s]: %s", operation, e.code, e.message)
            return OperationResult(success=False, error=e.message, code=e.code)
        except Exception as e:
            logger.error("%s failed unexpectedly", operation, exc_info=True)
            return OperationResult(
                success=False,
                error=f"{type(e).__name__}: {e}",
                code=ErrorCode.BACKEND_ERROR,
            )

    def list_policies(self) -> OperationResult:
        def run():
            records = self.enumerator.collect_all()
            return OperationResult(success=True, data=[r.to_dict() for r in records])

        return self._guard("list_policies", run)

    def create_or_update_policy(self, record: PolicyRecord | dict) -> OperationResult:
        def run():
            if isinstance(record, PolicyRecord):
                target = record
            else:
                target = PolicyRecord.from_mapping(record)
            self.privilege.require_elevated("writing QoS policy rules")
            written = self.writer.create_or_update(target)
            return OperationResult(success=True, data=written.to_dict())

        return self._guard("create_or_update_policy", run)

    def delete_policy(
        self,
        rule_name: str,
        view: View | str | None = None,
        hive: Hive | str | None = None,
    ) -> OperationResult:
        def run():
            target_hive, target_view = Hive.parse(hive), View.parse(view)
            self.privilege.require_elevated("deleting QoS policy rules")
            deleted = self.writer.delete(rule_name, target_hive, target_view)
            data = {"rule_name": rule_name.strip(), "deleted": deleted}
            data.update(_location(target_hive, target_view))
            return OperationResult(success=True, data=data)

        return self._guard("delete_policy", run)

    def check_admin(self) -> OperationResult:
        return OperationResult(success=True, data=self.privilege.is_elevated())

    def provision_active_policy(self, form: ProvisionRequest | dict) -> OperationResult:
        def run():
            if isinstance(form, ProvisionRequest):
                request = form
            else:
                request = ProvisionRequest.from_mapping(form)
            stdout = self.provisioner.provision(request)
            data = {"name": request.name.strip(), "stdout": stdout}
            return OperationResult(success=True, data=data)

        return self._guard("provision_active_policy", run)

    def retire_active_policy(self, name: str) -> OperationResult:
        def run():
            outcome = self.provisioner.retire(name)
            data = {
                "name": name.strip(),
                "remaining": outcome.remaining,
                "registry_removed": [_location(h, v) for h, v in outcome.registry_removed],
            }
            return OperationResult(success=True, data=data, warning=outcome.warning)

        return self._guard("retire_active_policy", run)

    def get_active_policy(
        self, name: str | None = None, store: str = "ActiveStore"
    ) -> OperationResult:
        def run():
            return OperationResult(success=True, data=self.provisioner.get_active(name, store))

        return self._guard("get_active_policy", run)

    def open_policy_editor(self) -> OperationResult:
        def run():
            self.shell.launch(POLICY_EDITOR_COMMAND)
            return OperationResult(success=True)

        return self._guard("open_policy_editor", run)
