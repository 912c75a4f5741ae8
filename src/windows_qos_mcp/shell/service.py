"""PowerShell and process execution for the NetQos cmdlets.

Scripts are written to a temporary ``.ps1`` file and run with ``-File`` so
multi-line cmdlet sequences keep their quoting intact. The file is removed
afterwards on every path; a failed removal is logged, never raised.
"""

import base64
import logging
import os
import subprocess
import tempfile
from dataclasses import dataclass
from locale import getpreferredencoding

from windows_qos_mcp.errors import BackendError, CommandTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_POWERSHELL_TIMEOUT = 60


@dataclass
class CommandResult:
    ok: bool
    stdout: str
    stderr: str
    returncode: int


class ShellService:
    """PowerShell script execution with a fixed timeout and no retries."""

    def __init__(self, timeout: int = DEFAULT_POWERSHELL_TIMEOUT) -> None:
        self.timeout = timeout
        self.encoding = getpreferredencoding()

    @staticmethod
    def ps_quote(value: str) -> str:
        """Wrap a value in a PowerShell single-quoted string literal.

        Single-quoted strings in PowerShell are truly literal -- they do NOT
        expand variables ($env:X), subexpressions ($(...)), or escape sequences.
        The only character that needs escaping is the single quote itself,
        which is doubled ('').
        """
        return "'" + str(value).replace("'", "''") + "'"

    def _decode(self, data) -> str:
        if isinstance(data, bytes):
            return data.decode(self.encoding, errors="ignore")
        return data or ""

    def _run(self, argv: list[str], timeout: int | None) -> CommandResult:
        timeout = timeout or self.timeout
        try:
            result = subprocess.run(
                argv,
                capture_output=True,
                timeout=timeout,
                cwd=os.path.expanduser(path="~"),
                env=os.environ.copy(),
            )
        except subprocess.TimeoutExpired as e:
            raise CommandTimeoutError(f"{argv[0]} timed out after {timeout}s") from e
        except OSError as e:
            raise BackendError(f"Command execution failed: {type(e).__name__}: {e}") from e
        return CommandResult(
            ok=result.returncode == 0,
            stdout=self._decode(result.stdout),
            stderr=self._decode(result.stderr),
            returncode=result.returncode,
        )

    def execute(self, command: str, timeout: int | None = None) -> CommandResult:
        """Run a single PowerShell command passed as ``-EncodedCommand``."""
        encoded = base64.b64encode(command.encode("utf-16le")).decode("ascii")
        return self._run(
            [
                "powershell",
                "-NoProfile",
                "-OutputFormat",
                "Text",
                "-EncodedCommand",
                encoded,
            ],
            timeout,
        )

    def run_script(self, script: str, timeout: int | None = None) -> CommandResult:
        """Write *script* to a temporary .ps1 file, run it, then delete the file."""
        fd, path = tempfile.mkstemp(prefix="qos_", suffix=".ps1")
        try:
            with os.fdopen(fd, "w", encoding="utf-8-sig") as f:
                f.write(script)
            return self._run(
                [
                    "powershell.exe",
                    "-NoProfile",
                    "-ExecutionPolicy",
                    "Bypass",
                    "-File",
                    path,
                ],
                timeout,
            )
        finally:
            try:
                os.unlink(path)
            except OSError as e:
                logger.debug("Could not remove temporary script %s: %s", path, e)

    def run(self, argv: list[str], timeout: int | None = None) -> CommandResult:
        """Run a plain executable; its exit status is the signal."""
        return self._run(argv, timeout)

    def launch(self, argv: list[str]) -> None:
        """Start a GUI tool without waiting for it or reading its output."""
        try:
            subprocess.Popen(argv, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
        except OSError as e:
            raise BackendError(f"Cannot launch {argv[0]}: {e}") from e
