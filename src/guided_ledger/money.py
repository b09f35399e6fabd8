"""Decimal helpers shared by the ledger, tax and payroll code."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

CENT = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")

# Monetary rounding tolerance. Never tighten to exact equality, never loosen.
EPSILON = CENT


def to_decimal(value: Any, default: Decimal | None = None) -> Decimal:
    """Convert ints, floats, strings and Decimals into a Decimal.

    Floats go through ``str`` so ``0.1`` becomes ``Decimal("0.1")``.
    """
    if value is None:
        if default is None:
            raise ValueError("Amount is required")
        return default
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Invalid amount: {value!r}")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Invalid amount: {value!r}") from exc


def round2(value: Decimal) -> Decimal:
    """Round half-up to whole cents."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)
