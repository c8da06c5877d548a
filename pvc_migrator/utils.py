"""Utility functions for PVC Migrator.

Quantity parsing, tag sanitizing and duration formatting shared by the
gateways, the task runner and the reports.
"""

import math
import re
from decimal import Decimal, InvalidOperation

GIB = 1024**3

_BINARY_SUFFIXES = {
    "Ki": 1024,
    "Mi": 1024**2,
    "Gi": 1024**3,
    "Ti": 1024**4,
    "Pi": 1024**5,
    "Ei": 1024**6,
}

_DECIMAL_SUFFIXES = {
    "m": Decimal("0.001"),
    "k": 10**3,
    "M": 10**6,
    "G": 10**9,
    "T": 10**12,
    "P": 10**15,
    "E": 10**18,
}

_QUANTITY_RE = re.compile(r"^\s*([+-]?[0-9.]+(?:[eE][+-]?[0-9]+)?)\s*([A-Za-z]{0,2})\s*$")
_TAG_UNSAFE_RE = re.compile(r"[^a-zA-Z0-9\s_.:/=+\-@]")


def parse_quantity(quantity: str) -> Decimal:
    """Parse a Kubernetes resource quantity ("50Gi", "500Mi", "1.5G", "1024") into bytes.

    Raises:
        ValueError: If the quantity cannot be parsed
    """
    match = _QUANTITY_RE.match(quantity or "")
    if not match:
        raise ValueError(f"invalid quantity: {quantity!r}")

    number, suffix = match.groups()
    try:
        value = Decimal(number)
    except InvalidOperation as e:
        raise ValueError(f"invalid quantity: {quantity!r}") from e

    if not suffix:
        return value
    if suffix in _BINARY_SUFFIXES:
        multiplier = _BINARY_SUFFIXES[suffix]
    elif suffix in _DECIMAL_SUFFIXES:
        multiplier = _DECIMAL_SUFFIXES[suffix]
    else:
        raise ValueError(f"invalid quantity suffix {suffix!r} in {quantity!r}")

    try:
        return value * multiplier
    except ArithmeticError as e:
        raise ValueError(f"quantity out of range: {quantity!r}") from e


def capacity_to_gib(quantity: str) -> int:
    """Size in whole GiB for a new cloud volume: rounded up, never below 1.

    >>> capacity_to_gib("500Mi")
    1
    >>> capacity_to_gib("50Gi")
    50
    """
    size_bytes = parse_quantity(quantity)
    try:
        return max(1, math.ceil(size_bytes / GIB))
    except (ArithmeticError, ValueError) as e:
        raise ValueError(f"quantity out of range: {quantity!r}") from e


def sanitize_tag(value: str) -> str:
    """Replace characters AWS does not accept in tag values with "_"."""
    return _TAG_UNSAFE_RE.sub("_", value)


def format_duration(seconds: float | None) -> str:
    """Format elapsed seconds as 1h2m3s / 2m3s / 3s."""
    if seconds is None:
        return ""
    total = int(round(seconds))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}h{minutes}m{secs}s"
    if minutes:
        return f"{minutes}m{secs}s"
    return f"{secs}s"


def truncate(value: str, max_len: int) -> str:
    """Truncate with a trailing ellipsis."""
    if len(value) <= max_len:
        return value
    return value[: max_len - 3] + "..."
