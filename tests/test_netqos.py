"""NetQosProvisioner script construction, conversions and privilege checks."""

from unittest.mock import MagicMock

import pytest

from windows_qos_mcp.errors import (
    BackendError,
    CommandTimeoutError,
    PermissionDeniedError,
    ValidationError,
)
from windows_qos_mcp.netqos.service import (
    DOMAIN_POLICY_WARNING,
    NetQosProvisioner,
    ProvisionRequest,
    clamp_dscp,
    effective_port,
    kbps_to_bits_per_second,
)
from windows_qos_mcp.privilege import PrivilegeGate
from windows_qos_mcp.registry.models import Hive, View
from windows_qos_mcp.shell.service import CommandResult, ShellService


def _shell(stdout: str = "", ok: bool = True, stderr: str = "") -> MagicMock:
    shell = MagicMock()
    shell.ps_quote = ShellService.ps_quote
    result = CommandResult(ok=ok, stdout=stdout, stderr=stderr, returncode=0 if ok else 1)
    shell.run_script.return_value = result
    shell.execute.return_value = result
    return shell


def _provisioner(shell=None, elevated=True, writer=None) -> NetQosProvisioner:
    writer = writer or MagicMock()
    if not isinstance(writer.clean_all.return_value, list):
        writer.clean_all.return_value = []
    return NetQosProvisioner(shell or _shell(), PrivilegeGate([lambda: elevated]), writer)


class TestConversions:
    @pytest.mark.parametrize(
        "raw,expected",
        [("46", 46), ("100", 63), ("-4", 0), ("63", 63), (" 10abc", 10), ("", None), ("*", None)],
    )
    def test_clamp_dscp(self, raw, expected):
        assert clamp_dscp(raw) == expected

    def test_clamp_dscp_non_numeric(self):
        assert clamp_dscp("high") is None

    @pytest.mark.parametrize(
        "raw,expected",
        [("1000", 8_000_000), ("1.5", 12_000), ("0.5", 4_000), ("0", None), ("-1", None)],
    )
    def test_kbps_to_bits(self, raw, expected):
        assert kbps_to_bits_per_second(raw) == expected

    @pytest.mark.parametrize("raw", ["fast", "nan", "inf", None, "*"])
    def test_kbps_invalid_means_unlimited(self, raw):
        assert kbps_to_bits_per_second(raw) is None


class TestEffectivePort:
    def test_local_wins(self):
        assert effective_port("443", "8443") == 443

    def test_remote_used_when_local_missing(self):
        assert effective_port(None, "5060") == 5060
        assert effective_port("*", "5060") == 5060

    def test_invalid_local_falls_back_to_remote(self):
        assert effective_port("70000", "5060") == 5060
        assert effective_port("0", "5060") == 5060

    def test_none_valid(self):
        assert effective_port("abc", "") is None

    def test_conflict_logged(self, caplog):
        effective_port("443", "8443")
        assert "only one port condition" in caplog.text


class TestNewPolicyArgs:
    def test_full_form(self):
        request = ProvisionRequest(
            name="VoipQoS",
            dscp_value="46",
            throttle_rate="1000",
            application_name="C:\\Apps\\voip.exe",
            protocol="udp",
            remote_port="5060",
            remote_ip="10.0.0.0",
            remote_ip_prefix_length="8",
        )
        assert _provisioner().build_new_policy_args(request) == [
            "-Name 'VoipQoS'",
            "-DSCPAction 46",
            "-ThrottleRateActionBitsPerSecond 8000000",
            "-AppPathNameMatchCondition 'C:\\Apps\\voip.exe'",
            "-IPProtocolMatchCondition UDP",
            "-IPPortMatchCondition 5060",
            "-IPDstPrefixMatchCondition '10.0.0.0/8'",
            "-NetworkProfile All",
            "-PolicyStore 'localhost'",
        ]

    def test_minimal_form(self):
        args = _provisioner().build_new_policy_args(ProvisionRequest(name="Min"))
        assert args == ["-Name 'Min'", "-NetworkProfile All", "-PolicyStore 'localhost'"]

    def test_wildcards_omitted(self):
        request = ProvisionRequest(
            name="W", application_name="*", protocol="*", local_ip="*", local_ip_prefix_length="*"
        )
        assert len(_provisioner().build_new_policy_args(request)) == 3

    def test_both_protocol(self):
        args = _provisioner().build_new_policy_args(ProvisionRequest(name="B", protocol="both"))
        assert "-IPProtocolMatchCondition Both" in args

    def test_source_prefix_needs_length(self):
        request = ProvisionRequest(name="S", local_ip="192.168.1.0")
        args = _provisioner().build_new_policy_args(request)
        assert not any(a.startswith("-IPSrcPrefixMatchCondition") for a in args)
        request.local_ip_prefix_length = "24"
        args = _provisioner().build_new_policy_args(request)
        assert "-IPSrcPrefixMatchCondition '192.168.1.0/24'" in args

    def test_quotes_escaped(self):
        request = ProvisionRequest(name="Bob's; Remove-Item C:\\", application_name="$(calc)")
        args = _provisioner().build_new_policy_args(request)
        assert args[0] == "-Name 'Bob''s; Remove-Item C:\\'"
        assert args[1] == "-AppPathNameMatchCondition '$(calc)'"

    def test_profile_case_normalised(self):
        request = ProvisionRequest(name="P", network_profile="private")
        assert "-NetworkProfile Private" in _provisioner().build_new_policy_args(request)

    def test_unknown_profile_rejected(self):
        with pytest.raises(ValidationError, match="network profile"):
            _provisioner().build_new_policy_args(ProvisionRequest(name="P", network_profile="Work"))

    def test_blank_name_rejected(self):
        with pytest.raises(ValidationError):
            _provisioner().build_new_policy_args(ProvisionRequest(name="  "))


class TestProvision:
    def test_runs_script_and_returns_listing(self):
        shell = _shell(stdout="Name : VoipQoS\nDSCPValue : 46\n")
        out = _provisioner(shell).provision(ProvisionRequest(name="VoipQoS", dscp_value="46"))
        assert "DSCPValue : 46" in out
        script = shell.run_script.call_args.args[0]
        lines = script.splitlines()
        assert lines[0] == "$ErrorActionPreference = 'Stop'"
        assert lines[1].startswith("New-NetQosPolicy -Name 'VoipQoS' -DSCPAction 46")
        assert lines[2] == (
            "Get-NetQosPolicy -Name 'VoipQoS' -PolicyStore ActiveStore | Format-List *"
        )

    def test_not_elevated(self):
        shell = _shell()
        with pytest.raises(PermissionDeniedError):
            _provisioner(shell, elevated=False).provision(ProvisionRequest(name="A"))
        shell.run_script.assert_not_called()

    def test_failure_reports_stderr(self):
        shell = _shell(ok=False, stderr="New-NetQosPolicy : already exists")
        with pytest.raises(BackendError, match="already exists"):
            _provisioner(shell).provision(ProvisionRequest(name="A"))


class TestRetire:
    def test_removes_from_all_stores_then_registry(self):
        shell = _shell(stdout="")
        writer = MagicMock()
        writer.clean_all.return_value = [(Hive.MACHINE, View.VIEW_64)]
        outcome = _provisioner(shell, writer=writer).retire(" VoipQoS ")

        script = shell.run_script.call_args.args[0]
        assert "-PolicyStore 'localhost'" in script
        assert "-PolicyStore 'GPO:localhost'" in script
        assert "-PolicyStore 'ActiveStore' -Confirm:$false" in script
        assert script.count("-ErrorAction SilentlyContinue") == 4
        writer.clean_all.assert_called_once_with("VoipQoS")
        assert outcome.registry_removed == [(Hive.MACHINE, View.VIEW_64)]
        assert outcome.warning is None

    def test_still_active_warns(self):
        shell = _shell(stdout="\nName : VoipQoS\nOwner : Group Policy (Machine)\n")
        outcome = _provisioner(shell).retire("VoipQoS")
        assert outcome.warning == DOMAIN_POLICY_WARNING
        assert outcome.remaining.startswith("Name : VoipQoS")

    def test_timeout_still_cleans_registry(self):
        shell = _shell()
        shell.run_script.side_effect = CommandTimeoutError("powershell.exe timed out after 60s")
        writer = MagicMock()
        with pytest.raises(CommandTimeoutError):
            _provisioner(shell, writer=writer).retire("VoipQoS")
        writer.clean_all.assert_called_once_with("VoipQoS")

    def test_script_failure_still_cleans_registry(self):
        writer = MagicMock()
        with pytest.raises(BackendError, match="denied"):
            _provisioner(_shell(ok=False, stderr="denied"), writer=writer).retire("VoipQoS")
        writer.clean_all.assert_called_once_with("VoipQoS")

    def test_not_elevated(self):
        writer = MagicMock()
        with pytest.raises(PermissionDeniedError):
            _provisioner(elevated=False, writer=writer).retire("A")
        writer.clean_all.assert_not_called()

    def test_blank_name(self):
        with pytest.raises(ValidationError):
            _provisioner().retire("")


class TestGetActive:
    def test_named_policy(self):
        shell = _shell(stdout="Name : A\n")
        assert _provisioner(shell).get_active("A") == "Name : A\n"
        command = shell.execute.call_args.args[0]
        assert command.startswith("Get-NetQosPolicy -Name 'A' -PolicyStore 'ActiveStore'")

    def test_all_policies(self):
        shell = _shell()
        _provisioner(shell).get_active(None, "localhost")
        command = shell.execute.call_args.args[0]
        assert command.startswith("Get-NetQosPolicy -PolicyStore 'localhost'")

    def test_failure(self):
        with pytest.raises(BackendError):
            _provisioner(_shell(ok=False, stderr="no module")).get_active()


def test_request_from_mapping():
    request = ProvisionRequest.from_mapping(
        {"rule_name": "Voip", "dscp_value": 46, "local_port": None, "colour": "red"}
    )
    assert request.name == "Voip"
    assert request.dscp_value == "46"
    assert request.local_port is None
    assert request.network_profile == "All"
