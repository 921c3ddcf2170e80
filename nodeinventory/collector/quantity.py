"""Kubernetes resource quantity parsing.

Handles the serialized forms the API server produces for node capacity
and allocatable fields: plain and decimal numbers, exponent notation,
decimal SI suffixes (n, u, m, k, M, G, T, P, E) and binary suffixes
(Ki .. Ei).
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation

from nodeinventory.collector.errors import QuantityError

_BINARY_SUFFIXES: dict[str, Decimal] = {
    "Ki": Decimal(2) ** 10,
    "Mi": Decimal(2) ** 20,
    "Gi": Decimal(2) ** 30,
    "Ti": Decimal(2) ** 40,
    "Pi": Decimal(2) ** 50,
    "Ei": Decimal(2) ** 60,
}

_DECIMAL_SUFFIXES: dict[str, Decimal] = {
    "n": Decimal("1e-9"),
    "u": Decimal("1e-6"),
    "m": Decimal("1e-3"),
    "": Decimal(1),
    "k": Decimal("1e3"),
    "M": Decimal("1e6"),
    "G": Decimal("1e9"),
    "T": Decimal("1e12"),
    "P": Decimal("1e15"),
    "E": Decimal("1e18"),
}

_RE_QUANTITY = re.compile(r"^([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)([a-zA-Z]{0,2})$")

_NANO = Decimal("1e9")


def parse_quantity(raw: str | int | float) -> Decimal:
    """Parse a quantity such as ``"250m"``, ``"16Gi"`` or ``4`` into a Decimal.

    Raises:
        QuantityError: if *raw* is not a valid quantity.
    """
    if isinstance(raw, bool):
        raise QuantityError(f"Invalid quantity: {raw!r}")
    if isinstance(raw, int | float):
        return Decimal(str(raw))

    text = str(raw).strip()
    match = _RE_QUANTITY.match(text)
    if match is None:
        raise QuantityError(f"Invalid quantity: {raw!r}")
    number, suffix = match.groups()

    if suffix in _BINARY_SUFFIXES:
        multiplier = _BINARY_SUFFIXES[suffix]
    elif suffix in _DECIMAL_SUFFIXES:
        multiplier = _DECIMAL_SUFFIXES[suffix]
    else:
        raise QuantityError(f"Unknown quantity suffix {suffix!r} in {raw!r}")

    try:
        return Decimal(number) * multiplier
    except InvalidOperation as exc:
        raise QuantityError(f"Invalid quantity: {raw!r}") from exc


def cpu_nanocores(raw: str | int | float) -> float:
    """Convert a cpu quantity (cores) to nanocores."""
    return float(parse_quantity(raw) * _NANO)


def memory_bytes(raw: str | int | float) -> float:
    return float(parse_quantity(raw))


def plain_count(raw: str | int | float) -> float:
    return float(parse_quantity(raw))
