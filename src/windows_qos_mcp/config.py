"""Runtime settings read from the environment (and a ``.env`` file)."""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from windows_qos_mcp.registry.shell import DEFAULT_REG_TIMEOUT
from windows_qos_mcp.shell.service import DEFAULT_POWERSHELL_TIMEOUT

logger = logging.getLogger(__name__)

ENV_PREFIX = "WINDOWS_QOS_MCP_"
BACKEND_CHOICES = ("auto", "native", "shell")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(ENV_PREFIX + name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("%s%s=%r is not an integer, using %d", ENV_PREFIX, name, raw, default)
        return default
    if value <= 0:
        logger.warning("%s%s must be positive, using %d", ENV_PREFIX, name, default)
        return default
    return value


@dataclass
class Settings:
    backend: str = "auto"
    reg_timeout: int = DEFAULT_REG_TIMEOUT
    powershell_timeout: int = DEFAULT_POWERSHELL_TIMEOUT
    audit_log: str = field(default="")

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        backend = os.environ.get(ENV_PREFIX + "BACKEND", "auto").strip().lower() or "auto"
        if backend not in BACKEND_CHOICES:
            logger.warning(
                "%sBACKEND=%r is not one of %s, using auto", ENV_PREFIX, backend, BACKEND_CHOICES
            )
            backend = "auto"
        return cls(
            backend=backend,
            reg_timeout=_env_int("REG_TIMEOUT", DEFAULT_REG_TIMEOUT),
            powershell_timeout=_env_int("POWERSHELL_TIMEOUT", DEFAULT_POWERSHELL_TIMEOUT),
            audit_log=os.environ.get(ENV_PREFIX + "AUDIT_LOG", "").strip(),
        )
