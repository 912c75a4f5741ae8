"""Shared helper functions for MCP tool handlers."""


def _optional_str(value) -> str | None:
    """Normalise an MCP parameter to the registry's string form.

    MCP clients may send numeric fields (DSCP, ports, prefix lengths) as JSON
    numbers; the policy schema stores everything as strings. ``None`` stays
    ``None`` so the field is treated as not supplied.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
