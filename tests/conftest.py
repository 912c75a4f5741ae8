from unittest.mock import patch

import pytest

from tests.fakes import FakeRegistry
from windows_qos_mcp.registry.native import NativeRegistryBackend
from windows_qos_mcp.registry.selector import BackendSelector
from windows_qos_mcp.registry.shell import ShellRegistryBackend


@pytest.fixture
def fake_registry() -> FakeRegistry:
    return FakeRegistry()


@pytest.fixture
def native_backend(fake_registry):
    """NativeRegistryBackend running against the in-memory winreg."""
    with patch("windows_qos_mcp.registry.native.winreg", fake_registry.winreg):
        yield NativeRegistryBackend()


@pytest.fixture
def shell_backend(fake_registry):
    """ShellRegistryBackend whose reg.exe calls hit the in-memory registry."""
    backend = ShellRegistryBackend(timeout=5)
    backend.encoding = "utf-8"
    with patch("subprocess.run", side_effect=fake_registry.run):
        yield backend


@pytest.fixture(params=["native", "shell"])
def registry(request, fake_registry):
    """A BackendSelector over each backend in turn, sharing ``fake_registry``."""
    backend = request.getfixturevalue(f"{request.param}_backend")
    return BackendSelector(backend=backend)
