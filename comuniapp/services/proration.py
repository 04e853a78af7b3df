from __future__ import annotations

import enum
from dataclasses import dataclass
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal
from typing import Any, Iterable, List, Sequence

from ..constants import DEFAULT_UNIT_COEFFICIENT, MONEY_QUANTUM
from ..core.errors import ConflictError, InvalidStateError

DecimalT = Decimal

CENT = Decimal(MONEY_QUANTUM)


class ProrateMethod(str, enum.Enum):
    EQUAL = "EQUAL"
    COEFFICIENT = "COEFFICIENT"


class RemainderPolicy(str, enum.Enum):
    # Each share is rounded on its own; the sum may drift from the total.
    IGNORE = "IGNORE"
    # Shares are floored and leftover cents go to the largest fractional parts.
    LARGEST_REMAINDER = "LARGEST_REMAINDER"


def _as_decimal(value: Any) -> DecimalT:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value: Any) -> DecimalT:
    # ROUND_HALF_UP on Decimal rounds half away from zero.
    return _as_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def total_of(amounts: Iterable[Any]) -> DecimalT:
    total = Decimal("0")
    for amount in amounts:
        total += _as_decimal(amount)
    return round_money(total)


@dataclass(frozen=True)
class UnitWeight:
    unit_id: int
    coefficient: DecimalT = Decimal(DEFAULT_UNIT_COEFFICIENT)


@dataclass(frozen=True)
class ProratedShare:
    unit_id: int
    amount: DecimalT


def _exact_shares(method: ProrateMethod, total: DecimalT, units: Sequence[UnitWeight]) -> List[DecimalT]:
    if method == ProrateMethod.EQUAL:
        per_unit = total / Decimal(len(units))
        return [per_unit for _ in units]

    coefficients = [_as_decimal(unit.coefficient) for unit in units]
    coefficient_sum = sum(coefficients, Decimal("0"))
    if coefficient_sum == 0:
        raise ConflictError("Total coefficient of active units is zero, cannot prorate by coefficient")
    return [total * (coefficient / coefficient_sum) for coefficient in coefficients]


def _largest_remainder(total: DecimalT, exact: List[DecimalT]) -> List[DecimalT]:
    floored = [value.quantize(CENT, rounding=ROUND_DOWN) for value in exact]
    leftover_cents = int(((round_money(total) - sum(floored, Decimal("0"))) / CENT).to_integral_value())
    order = sorted(range(len(exact)), key=lambda index: (-(exact[index] - floored[index]), index))
    for index in order[: max(leftover_cents, 0)]:
        floored[index] += CENT
    return floored


def recompute(
    method: ProrateMethod | str,
    total_amount: Any,
    units: Sequence[UnitWeight],
    remainder_policy: RemainderPolicy | str = RemainderPolicy.IGNORE,
) -> List[ProratedShare]:
    """Split ``total_amount`` across ``units``, one share per unit in input order."""
    method = ProrateMethod(method)
    remainder_policy = RemainderPolicy(remainder_policy)
    if not units:
        raise InvalidStateError("No active units found in the community to prorate")

    total = _as_decimal(total_amount)
    exact = _exact_shares(method, total, units)
    if remainder_policy == RemainderPolicy.LARGEST_REMAINDER:
        rounded = _largest_remainder(total, exact)
    else:
        rounded = [round_money(value) for value in exact]

    return [ProratedShare(unit_id=unit.unit_id, amount=amount) for unit, amount in zip(units, rounded)]


def rounding_drift(total_amount: Any, shares: Iterable[ProratedShare]) -> DecimalT:
    return sum((share.amount for share in shares), Decimal("0")) - _as_decimal(total_amount)
