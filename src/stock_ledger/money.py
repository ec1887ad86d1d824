"""Money and quantity primitives.

Every monetary value in the ledger is a :class:`~decimal.Decimal`. Amounts are
stored with two decimal places using half-up rounding, which matches how the
shop floor rounds prices and totals by hand.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

from .constants import RoundingMode


Number = Union[Decimal, int, float, str]

CENT = Decimal("0.01")
UNIT = Decimal("1")
ZERO = Decimal("0.00")
CURRENCY_SYMBOL = "₹"


def to_decimal(value: Number) -> Decimal:
    """Convert ``value`` into a finite :class:`Decimal`.

    Floats go through ``str`` first so ``9.99`` stays ``Decimal("9.99")``
    rather than its binary expansion.

    Raises:
        ValueError: If the value is a boolean, cannot be parsed, or is not
            finite.
    """

    if isinstance(value, bool):
        raise ValueError(f"Not a number: {value!r}")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, TypeError) as exc:
            raise ValueError(f"Not a number: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Not a finite number: {value!r}")
    return result


def round2(value: Number) -> Decimal:
    """Round ``value`` to two decimal places, halves away from zero.

    Raises:
        ValueError: If the value is not a number or has too many digits to
            carry two decimal places.
    """

    number = to_decimal(value)
    try:
        return number.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValueError(f"Amount out of range: {value!r}") from exc


def apply_rounding(value: Decimal, mode: Union[RoundingMode, str]) -> Decimal:
    """Apply a cash rounding mode to ``value``.

    ``nearest1`` rounds to a whole currency unit and ``nearest2`` to the
    nearest multiple of two units. ``none`` returns the value unchanged.
    """

    mode = RoundingMode(mode)
    try:
        if mode is RoundingMode.NEAREST_1:
            return value.quantize(UNIT, rounding=ROUND_HALF_UP)
        if mode is RoundingMode.NEAREST_2:
            return (value / 2).quantize(UNIT, rounding=ROUND_HALF_UP) * 2
    except InvalidOperation as exc:
        raise ValueError(f"Amount out of range: {value!r}") from exc
    return value


def _group_indian(digits: str) -> str:
    # 1234567 -> 12,34,567
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups + [tail])


def format_currency(value: Number, symbol: str = CURRENCY_SYMBOL) -> str:
    """Format an amount for display, e.g. ``format_currency(123456.5)`` gives
    ``"₹1,23,456.50"``."""

    amount = round2(value)
    sign = "-" if amount < 0 else ""
    whole, _, fraction = f"{abs(amount):.2f}".partition(".")
    return f"{sign}{symbol}{_group_indian(whole)}.{fraction}"
