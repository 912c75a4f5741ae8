from unittest.mock import MagicMock, patch

import pytest

from windows_qos_mcp.errors import ErrorCode, PermissionDeniedError
from windows_qos_mcp.privilege import PrivilegeGate, is_user_an_admin, net_session_elevated
from windows_qos_mcp.shell.service import ShellService


class TestIsElevated:
    def test_first_truthy_probe_wins(self):
        second = MagicMock(return_value=True)
        gate = PrivilegeGate([lambda: True, second])
        assert gate.is_elevated() is True
        second.assert_not_called()

    def test_falls_through_to_later_probe(self):
        assert PrivilegeGate([lambda: False, lambda: True]).is_elevated() is True

    def test_raising_probe_counts_as_not_elevated(self):
        def denied():
            raise PermissionError(5, "Access is denied")

        assert PrivilegeGate([denied]).is_elevated() is False

    def test_raising_probe_then_success(self):
        def broken():
            raise AttributeError("windll")

        assert PrivilegeGate([broken, lambda: True]).is_elevated() is True

    def test_no_probes(self):
        assert PrivilegeGate([]).is_elevated() is False


class TestRequireElevated:
    def test_passes_when_elevated(self):
        PrivilegeGate([lambda: True]).require_elevated("writing")

    def test_raises_permission_denied(self):
        with pytest.raises(PermissionDeniedError, match="deleting QoS rules") as exc:
            PrivilegeGate([lambda: False]).require_elevated("deleting QoS rules")
        assert exc.value.code is ErrorCode.PERMISSION_DENIED


def test_is_user_an_admin_uses_shell32():
    fake_ctypes = MagicMock()
    fake_ctypes.windll.shell32.IsUserAnAdmin.return_value = 1
    with patch("windows_qos_mcp.privilege.ctypes", fake_ctypes):
        assert is_user_an_admin() is True


def test_shell_backend_write_access_with_fake_registry(shell_backend, fake_registry):
    gate = PrivilegeGate([shell_backend.probe_write_access])
    assert gate.is_elevated() is True
    fake_registry.elevated = False
    assert gate.is_elevated() is False


class TestNetSessionElevated:
    @pytest.fixture
    def shell(self):
        svc = ShellService(timeout=5)
        svc.encoding = "utf-8"
        return svc

    def test_elevated(self, shell, fake_registry):
        with patch("subprocess.run", side_effect=fake_registry.run):
            assert net_session_elevated(shell)() is True
        assert fake_registry.calls == [["net", "session"]]

    def test_not_elevated(self, shell, fake_registry):
        fake_registry.elevated = False
        with patch("subprocess.run", side_effect=fake_registry.run):
            assert net_session_elevated(shell)() is False

    def test_missing_net_fails_closed(self, shell):
        with patch("subprocess.run", side_effect=FileNotFoundError("net")):
            assert PrivilegeGate([net_session_elevated(shell)]).is_elevated() is False
