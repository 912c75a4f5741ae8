"""Conversion between registry values and the string-typed policy fields.

The native API hands back ``str``, ``int``, ``bytes`` or ``list`` depending on
the stored type, while ``reg.exe`` prints a textual rendering. Both are
reduced to the same string here so the two backends stay interchangeable.
"""

import logging
import re
from dataclasses import dataclass

from windows_qos_mcp.errors import ValidationError
from windows_qos_mcp.registry.models import POLICY_FIELDS

logger = logging.getLogger(__name__)

REG_SZ = "REG_SZ"

_MULTI_SZ_SEPARATOR = ","
_HEX_RE = re.compile(r"^0x[0-9a-fA-F]+$")


@dataclass(frozen=True)
class EncodedValue:
    name: str
    reg_type: str
    data: str


def to_str_or_empty(value) -> str:
    return "" if value is None else str(value)


def _decode_bytes(raw: bytes) -> str:
    # REG_SZ payloads are UTF-16LE with one or more trailing NULs
    text = bytes(raw).decode("utf-16le")
    return text.rstrip("\x00")


def decode(raw) -> str:
    """Reduce any registry value representation to a string. Never raises."""
    try:
        if raw is None:
            return ""
        if isinstance(raw, str):
            return raw
        if isinstance(raw, (bytes, bytearray, memoryview)):
            return _decode_bytes(raw)
        if isinstance(raw, bool):
            return str(int(raw))
        if isinstance(raw, int):
            return str(raw)
        if isinstance(raw, (list, tuple)):
            return _MULTI_SZ_SEPARATOR.join(decode(item) for item in raw)
        for attr in ("data", "value"):
            if hasattr(raw, attr):
                return decode(getattr(raw, attr))
        return str(raw)
    except Exception:
        logger.debug("Undecodable registry value %r", raw, exc_info=True)
        return ""


def decode_text(type_tag: str, text: str) -> str:
    """Decode the value column of ``reg query`` output. Never raises.

    Produces the same string :func:`decode` returns for the value the native
    API would have read from the same key.
    """
    try:
        tag = (type_tag or "").upper()
        text = text or ""
        if tag in ("REG_DWORD", "REG_QWORD") and _HEX_RE.match(text.strip()):
            return decode(int(text.strip(), 16))
        if tag == "REG_BINARY":
            return decode(bytes.fromhex(text.strip()))
        if tag == "REG_MULTI_SZ":
            return decode([item for item in text.split("\\0") if item])
        return decode(text)
    except Exception:
        logger.debug("Undecodable reg.exe value %s %r", type_tag, text, exc_info=True)
        return ""


def encode(field: str, value) -> EncodedValue:
    """Registry write arguments for a policy field; always REG_SZ.

    ``field`` may be a record attribute (``dscp_value``) or the registry
    value name (``DSCP Value``).
    """
    if field in POLICY_FIELDS:
        name = POLICY_FIELDS[field]
    elif field in POLICY_FIELDS.values():
        name = field
    else:
        raise ValidationError(f"Unknown QoS policy field: {field}")
    return EncodedValue(name=name, reg_type=REG_SZ, data=to_str_or_empty(value))
