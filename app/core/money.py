"""Money helpers. All amounts are Decimal; floats never enter the ledger."""

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Union

Number = Union[Decimal, int, str, float]

HUNDRED = Decimal("100")
WHOLE_UNIT = Decimal("1")


def to_decimal(val) -> Decimal:
    if val is None:
        return Decimal("0")
    return val if isinstance(val, Decimal) else Decimal(str(val))


def round_amount(amount: Number, quantum: Decimal = WHOLE_UNIT) -> Decimal:
    return to_decimal(amount).quantize(quantum, rounding=ROUND_HALF_UP)


def compute_payable(amount: Number, percent: Number, quantum: Decimal = WHOLE_UNIT) -> Decimal:
    """
    Amount due for one transaction: ``amount * percent / 100`` rounded half-up once.

        compute_payable(150000, 50) -> 75000
        compute_payable(100001, 50) -> 50001
    """
    raw = to_decimal(amount) * to_decimal(percent) / HUNDRED
    return round_amount(raw, quantum)


def sum_amounts(amounts: Iterable[Number]) -> Decimal:
    return sum((to_decimal(a) for a in amounts), Decimal("0"))


def percentage_of(part: Number, whole: Number) -> Decimal:
    """Full-precision percentage of ``part`` in ``whole``, capped at 100; 0 when ``whole`` is 0."""
    whole_d = to_decimal(whole)
    if whole_d <= 0:
        return Decimal("0")
    return min(HUNDRED, to_decimal(part) / whole_d * HUNDRED)
