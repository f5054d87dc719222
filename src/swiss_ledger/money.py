"""Exact money arithmetic for ledger amounts.

All amounts are ``Decimal`` values at the currency's minor-unit precision
(two digits for USD/EUR/CHF). Binary floats never take part in arithmetic:
a float handed in by a caller is converted through its string form first.
"""

import logging
from decimal import ROUND_HALF_EVEN, ROUND_HALF_UP, Decimal, InvalidOperation
from fractions import Fraction

from .exceptions import InvalidAmount, SplitMismatch

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
DEFAULT_MINOR_UNIT_DIGITS = 2


def minor_unit(digits: int = DEFAULT_MINOR_UNIT_DIGITS) -> Decimal:
    """Smallest representable amount, e.g. Decimal("0.01") for two digits."""
    return Decimal(1).scaleb(-digits)


def to_amount(value, digits: int = DEFAULT_MINOR_UNIT_DIGITS) -> Decimal:
    """
    Coerce a caller-supplied value to a Decimal amount.

    Accepts Decimal, int, str and float (via ``str``). Rejects booleans,
    NaN, infinities and values finer than the minor unit.

    Raises:
        InvalidAmount: If the value is not a finite amount at minor-unit precision
    """
    if isinstance(value, bool):
        raise InvalidAmount(f"Amount must be numeric, got {value!r}")
    if isinstance(value, float):
        value = str(value)

    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as e:
        raise InvalidAmount(f"Amount must be numeric, got {value!r}") from e

    if not amount.is_finite():
        raise InvalidAmount(f"Amount must be finite, got {amount}")

    try:
        quantized = amount.quantize(minor_unit(digits))
    except InvalidOperation as e:
        raise InvalidAmount(f"Amount {amount} is out of range") from e

    if quantized != amount:
        raise InvalidAmount(
            f"Amount {amount} is finer than the minor unit ({minor_unit(digits)})"
        )
    return quantized


def to_positive_amount(value, digits: int = DEFAULT_MINOR_UNIT_DIGITS) -> Decimal:
    """Coerce to an amount and require it to be strictly positive."""
    amount = to_amount(value, digits)
    if amount <= ZERO:
        raise InvalidAmount(f"Amount must be greater than zero, got {amount}")
    return amount


def to_minor_units(amount: Decimal, digits: int = DEFAULT_MINOR_UNIT_DIGITS) -> int:
    """
    Convert a Decimal amount to integer minor units (cents).
    Uses ROUND_HALF_UP for consistency.
    """
    scaled = amount.scaleb(digits)
    return int(scaled.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(units: int, digits: int = DEFAULT_MINOR_UNIT_DIGITS) -> Decimal:
    """Convert integer minor units back to a Decimal amount."""
    return Decimal(units).scaleb(-digits)


def quantize(value: Decimal, digits: int = DEFAULT_MINOR_UNIT_DIGITS) -> Decimal:
    """
    Round a derived value to the minor unit.

    ROUND_HALF_EVEN is symmetric around zero, so ``quantize(-x) == -quantize(x)``.
    """
    return value.quantize(minor_unit(digits), rounding=ROUND_HALF_EVEN)


def allocate(
    total: Decimal,
    weights: list,
    digits: int = DEFAULT_MINOR_UNIT_DIGITS,
) -> list[Decimal]:
    """
    Distribute ``total`` across ``weights`` so the parts sum exactly to it.

    Largest-remainder method over integer minor units:
    1. Each part gets the floor of its exact proportional share
    2. Leftover units go one each to the largest fractional remainders
    3. Ties are broken by position, so earlier entries win

    Example:
        allocate(Decimal("1.00"), [1, 1, 1]) == [0.34, 0.33, 0.33]

    Raises:
        InvalidAmount: If the total or any weight is negative
        SplitMismatch: If there are no weights or they sum to zero
    """
    if not weights:
        raise SplitMismatch("Cannot allocate an amount among zero parties")

    fractions = [Fraction(Decimal(str(weight))) for weight in weights]
    if any(weight < 0 for weight in fractions):
        raise InvalidAmount("Allocation weights must not be negative")

    weight_total = sum(fractions)
    if weight_total == 0:
        raise SplitMismatch("Allocation weights sum to zero")

    units = to_minor_units(total, digits)
    if units < 0:
        raise InvalidAmount(f"Cannot allocate a negative total ({total})")

    floors = []
    remainders = []
    for weight in fractions:
        share = Fraction(units) * weight / weight_total
        floor = share.numerator // share.denominator
        floors.append(floor)
        remainders.append(share - floor)

    leftover = units - sum(floors)
    order = sorted(range(len(weights)), key=lambda i: (-remainders[i], i))
    for index in order[:leftover]:
        floors[index] += 1

    if leftover:
        logger.debug(
            f"Distributed {leftover} leftover minor units to positions "
            f"{sorted(order[:leftover])}"
        )

    return [from_minor_units(part, digits) for part in floors]


def sign(value: Decimal) -> int:
    """Return -1, 0 or 1."""
    if value > ZERO:
        return 1
    if value < ZERO:
        return -1
    return 0


def is_settled(balance: Decimal, epsilon: Decimal) -> bool:
    """A balance closer to zero than epsilon counts as settled."""
    return abs(balance) < epsilon
