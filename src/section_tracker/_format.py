"""Human-readable byte formatting.

Design by Contract:
- precision MUST be non-negative (ValueError otherwise)
- negative byte counts keep their sign (memory/bandwidth deltas can shrink)
"""

from collections.abc import Mapping
from typing import Any

from beartype import beartype

_UNITS = ("B", "KB", "MB", "GB", "TB", "PB", "EB", "ZB", "YB")


@beartype
def format_bytes(value: int | float, precision: int = 2) -> str:
    """Format a byte count using 1024-based units.

    Args:
        value: Number of bytes (may be negative for deltas)
        precision: Decimal places to round to

    Returns:
        String such as "18 MB" or "1.46 GB". Trailing zeros are dropped.

    Example:
        >>> format_bytes(1536)
        '1.5 KB'
    """
    if precision < 0:
        raise ValueError(f"Precision must be non-negative: {precision}")

    sign = "-" if value < 0 else ""
    magnitude = abs(value)

    power = 0
    while power < len(_UNITS) - 1 and magnitude >= 1024 ** (power + 1):
        power += 1

    scaled = round(magnitude / 1024**power, precision)
    if scaled == int(scaled):
        number = str(int(scaled))
    else:
        number = f"{scaled:.{precision}f}".rstrip("0").rstrip(".")

    return f"{sign}{number} {_UNITS[power]}"


@beartype
def format_bytes_map(mapping: Mapping[str, Any], precision: int = 2) -> dict[str, Any]:
    """Apply ``format_bytes`` recursively to every numeric value of a mapping.

    Nested mappings are formatted recursively, non-numeric values are copied.
    """
    result: dict[str, Any] = {}
    for key, value in mapping.items():
        if isinstance(value, Mapping):
            result[key] = format_bytes_map(value, precision)
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            result[key] = format_bytes(value, precision)
        else:
            result[key] = value
    return result
