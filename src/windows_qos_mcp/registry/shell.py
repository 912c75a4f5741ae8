"""Registry backend that drives ``reg.exe`` and parses its text output.

Used when ``winreg`` is unavailable. It must return the same records as
:class:`~windows_qos_mcp.registry.native.NativeRegistryBackend` for the same
registry state, so values go through :func:`codec.decode_text`.

``reg query`` output looks like::

    HKEY_LOCAL_MACHINE\\Software\\Policies\\Microsoft\\Windows\\QoS\\VoipQoS
        Version    REG_SZ    1.0
        Protocol    REG_SZ    UDP

One header line per key, then indented ``name    TYPE    value`` lines.
"""

import logging
import re
import subprocess
import sys
from dataclasses import dataclass, field
from locale import getpreferredencoding

from windows_qos_mcp.errors import BackendError, CommandTimeoutError
from windows_qos_mcp.registry import codec
from windows_qos_mcp.registry.models import (
    POLICY_FIELDS,
    Hive,
    PolicyRecord,
    View,
    policy_key_path,
)

logger = logging.getLogger(__name__)

DEFAULT_REG_TIMEOUT = 30


def console_encoding() -> str:
    """Code page reg.exe writes redirected output in (OEM on Windows)."""
    return "oem" if sys.platform == "win32" else getpreferredencoding()

_HEADER_RE = re.compile(r"^HKEY_[A-Z_]+(\\.*)?$", re.IGNORECASE)
_VALUE_RE = re.compile(r"^\s+(?P<name>.*?)\s{4}(?P<type>REG_[A-Z0-9_]+)(?:\s{4}(?P<value>.*))?$")

_SHORT_HIVE_NAMES = {
    "HKLM": "HKEY_LOCAL_MACHINE",
    "HKCU": "HKEY_CURRENT_USER",
}


@dataclass
class RegKeyBlock:
    path: str
    # value name -> (type tag, raw text)
    values: dict[str, tuple[str, str]] = field(default_factory=dict)


def parse_reg_query(stdout: str) -> list[RegKeyBlock]:
    """Group ``reg query`` output into one block per key header."""
    blocks: list[RegKeyBlock] = []
    current: RegKeyBlock | None = None
    for line in stdout.splitlines():
        line = line.rstrip("\r")
        if not line.strip():
            continue
        if _HEADER_RE.match(line.strip()) and not line[0].isspace():
            current = RegKeyBlock(path=line.strip())
            blocks.append(current)
            continue
        if current is None:
            continue
        m = _VALUE_RE.match(line)
        if m:
            current.values[m.group("name").strip()] = (m.group("type"), m.group("value") or "")
    return blocks


def _normalize_path(path: str) -> str:
    """Lower-cased long-form path for comparisons (``HKLM\\x`` == ``HKEY_LOCAL_MACHINE\\X``)."""
    head, _, rest = path.strip().strip("\\").partition("\\")
    head = _SHORT_HIVE_NAMES.get(head.upper(), head.upper())
    return f"{head}\\{rest}".lower() if rest else head.lower()


class ShellRegistryBackend:
    """QoS rule access through the ``reg`` command-line tool."""

    name = "shell"

    def __init__(self, timeout: int = DEFAULT_REG_TIMEOUT) -> None:
        self.timeout = timeout
        self.encoding = console_encoding()

    def _run(self, *args: str) -> subprocess.CompletedProcess:
        argv = ["reg", *args]
        try:
            result = subprocess.run(argv, capture_output=True, timeout=self.timeout)
        except subprocess.TimeoutExpired as e:
            raise CommandTimeoutError(
                f"'{' '.join(argv[:3])}' timed out after {self.timeout}s"
            ) from e
        except OSError as e:
            raise BackendError(f"Cannot run reg.exe: {e}") from e
        stdout, stderr = result.stdout, result.stderr
        if isinstance(stdout, bytes):
            stdout = stdout.decode(self.encoding, errors="ignore")
        if isinstance(stderr, bytes):
            stderr = stderr.decode(self.encoding, errors="ignore")
        result.stdout, result.stderr = stdout or "", stderr or ""
        return result

    def _query(self, key: str, view: View) -> subprocess.CompletedProcess:
        return self._run("query", key, f"/reg:{view.value}")

    def list_rule_names(self, hive: Hive, view: View) -> list[str]:
        root = policy_key_path(hive)
        result = self._query(root, view)
        if result.returncode != 0:
            return []
        root_norm = _normalize_path(root)
        names = []
        for block in parse_reg_query(result.stdout):
            parent, _, leaf = block.path.rpartition("\\")
            if leaf and _normalize_path(parent) == root_norm:
                names.append(leaf)
        return names

    def read_rule(self, hive: Hive, view: View, rule_name: str) -> PolicyRecord | None:
        key = policy_key_path(hive, rule_name)
        result = self._query(key, view)
        if result.returncode != 0:
            return None
        key_norm = _normalize_path(key)
        block = next(
            (b for b in parse_reg_query(result.stdout) if _normalize_path(b.path) == key_norm),
            None,
        )
        found = {name.lower(): typed for name, typed in (block.values.items() if block else [])}
        values = {}
        for attr, value_name in POLICY_FIELDS.items():
            type_tag, text = found.get(value_name.lower(), (codec.REG_SZ, ""))
            values[attr] = codec.decode_text(type_tag, text)
        return PolicyRecord(rule_name=rule_name, hive=hive, view=view, **values)

    def write_field(self, hive: Hive, view: View, rule_name: str, field: str, value) -> None:
        encoded = codec.encode(field, value)
        key = policy_key_path(hive, rule_name)
        view_flag = f"/reg:{view.value}"
        result = self._run("add", key, "/f", view_flag)
        if result.returncode == 0:
            result = self._run(
                "add",
                key,
                "/v",
                encoded.name,
                "/t",
                encoded.reg_type,
                "/d",
                encoded.data,
                "/f",
                view_flag,
            )
        if result.returncode != 0:
            raise BackendError(
                f'reg add "{encoded.name}" for rule {rule_name} failed: '
                f"{result.stderr.strip() or result.stdout.strip() or result.returncode}"
            )

    def delete_rule(self, hive: Hive, view: View, rule_name: str) -> bool:
        key = policy_key_path(hive, rule_name)
        result = self._run("delete", key, "/f", f"/reg:{view.value}")
        if result.returncode == 0:
            logger.info("Deleted QoS rule %s (%s, %s-bit) via reg.exe", rule_name, hive, view)
            return True
        # reg.exe error text is localized; re-query to tell "absent" from "denied"
        if self._query(key, view).returncode != 0:
            return False
        raise BackendError(
            f"reg delete for rule {rule_name} failed: "
            f"{result.stderr.strip() or result.stdout.strip() or result.returncode}"
        )

    def probe_write_access(self) -> bool:
        """``net session`` succeeds only in an elevated session."""
        result = subprocess.run(["net", "session"], capture_output=True, timeout=self.timeout)
        return result.returncode == 0
