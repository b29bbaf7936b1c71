"""
Monetary normalization — turns caller-supplied amounts into exact money.

Callers may send an amount either as text ("2.50") or as a JSON number
(2.5). Both are normalized to a Decimal with exactly two fractional digits,
and storage uses integer cents. No float arithmetic is ever performed on a
money value.

Accepted text grammar:
    ^(?:0|[1-9]\\d*)(?:\\.\\d{1,2})?$

  - "0", "7", "12.5", "12.50" are valid
  - "007", "-1", "1.234", "1e3", "" are not

Numbers:
  Floats are converted through their shortest repr, so the JSON number
  1.005 becomes Decimal("1.005") rather than the binary approximation
  1.00499999999999989... Numbers may carry more than two fractional digits;
  they are rounded.

Limits:
  A single deposit may not exceed MAXIMUM_AMOUNT (one billion dollars).
  Balances are BIGINT cents and are capped at MAX_BALANCE_CENTS, the
  largest signed 64-bit integer; the funding engine enforces the cap in
  the same statement that applies the increment.

Rounding rule:
  ROUND_HALF_UP — an exact half cent rounds away from zero, so 1.005
  becomes 1.01. This is applied consistently everywhere amounts are
  normalized.
"""

import math
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from app.exceptions import AmountTooSmallError, InvalidAmountError

CENT = Decimal("0.01")
MINIMUM_AMOUNT = CENT
MAXIMUM_AMOUNT = Decimal("1000000000.00")

MAX_BALANCE_CENTS = 2**63 - 1

_AMOUNT_PATTERN = re.compile(r"^(?:0|[1-9]\d*)(?:\.\d{1,2})?$")


def _to_decimal(value: object) -> Decimal:
    """Convert raw input to a Decimal without rounding. Raises InvalidAmountError."""
    # bool is a subclass of int, but True is not an amount
    if isinstance(value, bool):
        raise InvalidAmountError()

    if isinstance(value, str):
        text = value.strip()
        if not _AMOUNT_PATTERN.fullmatch(text):
            raise InvalidAmountError()
        return Decimal(text)

    if isinstance(value, int):
        number = Decimal(value)
    elif isinstance(value, float):
        if not math.isfinite(value):
            raise InvalidAmountError()
        number = Decimal(repr(value))
    elif isinstance(value, Decimal):
        number = value
    else:
        raise InvalidAmountError()

    if not number.is_finite() or number < 0:
        raise InvalidAmountError()
    return number


def parse_amount(value: object) -> Decimal:
    """
    Normalize a raw amount to a Decimal with exactly two decimal places.

    Args:
        value: A string, int, float, or Decimal supplied by the caller.

    Returns:
        The amount quantized to cents, e.g. Decimal("1.01").

    Raises:
        InvalidAmountError: If the value is not a finite, non-negative
            number or a string matching the amount grammar, or if it
            exceeds MAXIMUM_AMOUNT.
        AmountTooSmallError: If the rounded amount is below $0.01.
    """
    try:
        amount = _to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        # quantize overflows the context precision for absurdly large values
        raise InvalidAmountError()

    if amount < MINIMUM_AMOUNT:
        raise AmountTooSmallError()
    if amount > MAXIMUM_AMOUNT:
        raise InvalidAmountError("Amount exceeds the per-deposit maximum")
    return amount


def to_cents(amount: Decimal) -> int:
    """Convert a normalized amount to integer cents (exact)."""
    return int(amount.quantize(CENT, rounding=ROUND_HALF_UP) * 100)


def from_cents(cents: int) -> Decimal:
    """Convert integer cents back to a two-place Decimal (exact)."""
    return (Decimal(cents) / 100).quantize(CENT)
