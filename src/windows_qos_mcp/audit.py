"""Tool-call audit trail.

When ``WINDOWS_QOS_MCP_AUDIT_LOG`` points at a file, every tool invocation
is appended as ``OK|ERR<TAB>tool<TAB>duration`` through a dedicated logger
that does not propagate to the console handlers.
"""

import asyncio
import logging
import time
from functools import wraps
from pathlib import Path
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

AUDIT_LOGGER_NAME = "windows_qos_mcp.audit"

T = TypeVar("T")

_audit_logger: logging.Logger | None = None


def configure_audit_log(path: str) -> logging.Logger | None:
    """Attach a file handler to the audit logger. Empty *path* disables auditing."""
    global _audit_logger
    audit = logging.getLogger(AUDIT_LOGGER_NAME)
    for handler in list(audit.handlers):
        audit.removeHandler(handler)
        handler.close()
    if not path:
        _audit_logger = None
        return None
    audit.setLevel(logging.INFO)
    audit.propagate = False
    try:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(path, encoding="utf-8")
        fh.setFormatter(logging.Formatter("%(asctime)s\t%(message)s", datefmt="%Y-%m-%dT%H:%M:%S"))
        audit.addHandler(fh)
        logger.info("Audit logging enabled: %s", path)
    except Exception as e:
        logger.warning("Failed to set up audit log at %s: %s", path, e)
        _audit_logger = None
        return None
    _audit_logger = audit
    return audit


def with_audit(tool_name: str):
    """Run a sync tool in a worker thread and record the call in the audit log."""

    def decorator(func: Callable[..., T]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            start = time.time()
            try:
                if asyncio.iscoroutinefunction(func):
                    result = await func(*args, **kwargs)
                else:
                    result = await asyncio.to_thread(func, *args, **kwargs)
            except Exception as error:
                duration_ms = int((time.time() - start) * 1000)
                if _audit_logger:
                    _audit_logger.info(
                        "ERR\t%s\t%dms\t%s", tool_name, duration_ms, type(error).__name__
                    )
                raise
            duration_ms = int((time.time() - start) * 1000)
            if _audit_logger:
                status = "OK"
                if isinstance(result, dict) and result.get("success") is False:
                    status = "FAIL"
                _audit_logger.info("%s\t%s\t%dms", status, tool_name, duration_ms)
            logger.debug("%s finished in %dms", tool_name, duration_ms)
            return result

        return wrapper

    return decorator
