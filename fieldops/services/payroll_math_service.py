from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from fieldops.errors import InvalidTransitionError, ValidationError
from fieldops.models import AdjustmentType, PaymentStatus, PaymentType

ZERO = Decimal('0')
CENT = Decimal('0.01')

ALLOWED_PAYMENT_TRANSITIONS = {
    PaymentStatus.CALCULATED: {PaymentStatus.APPROVED, PaymentStatus.PAID},
    PaymentStatus.APPROVED: {PaymentStatus.PAID},
    PaymentStatus.PAID: set(),
}


@dataclass(frozen=True)
class BaseAmount:
    payment_type: PaymentType
    lines_completed: int
    per_line_rate: Decimal | None
    amount: Decimal


@dataclass(frozen=True)
class AdjustmentInput:
    type: AdjustmentType
    amount: Decimal


@dataclass(frozen=True)
class PaymentTotals:
    base_amount: Decimal
    bonus_amount: Decimal
    deduction_amount: Decimal
    net_amount: Decimal


@dataclass(frozen=True)
class StatutoryRates:
    epf_enabled: bool = True
    epf_percentage: Decimal = Decimal('8.00')
    etf_enabled: bool = True
    etf_percentage: Decimal = Decimal('3.00')
    tax_enabled: bool = False
    tax_percentage: Decimal = Decimal('0.00')


@dataclass(frozen=True)
class StatutoryFigures:
    epf: Decimal
    etf: Decimal
    tax: Decimal


def money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def derive_base_amount(
    payment_type: PaymentType,
    *,
    lines_completed: int,
    per_line_rate: Decimal | None,
    monthly_rate: Decimal | None,
    default_per_line_rate: Decimal,
) -> BaseAmount:
    if lines_completed < 0:
        raise ValidationError('Lines completed cannot be negative', fields=['lines_completed'])
    if payment_type == PaymentType.PER_LINE:
        # An unset or zero rate falls back to the configured default.
        rate = per_line_rate or default_per_line_rate
        return BaseAmount(
            payment_type=payment_type,
            lines_completed=lines_completed,
            per_line_rate=rate,
            amount=money(rate * lines_completed),
        )
    return BaseAmount(
        payment_type=payment_type,
        lines_completed=lines_completed,
        per_line_rate=None,
        amount=money(monthly_rate or ZERO),
    )


def compute_totals(base_amount: Decimal, adjustments: Iterable[AdjustmentInput]) -> PaymentTotals:
    """``net = base + sum(bonuses) - sum(deductions)``, always rebuilt from the full adjustment list."""
    bonus = ZERO
    deduction = ZERO
    for adjustment in adjustments:
        if adjustment.type == AdjustmentType.BONUS:
            bonus += adjustment.amount
        else:
            deduction += adjustment.amount
    return PaymentTotals(
        base_amount=base_amount,
        bonus_amount=money(bonus),
        deduction_amount=money(deduction),
        net_amount=money(base_amount + bonus - deduction),
    )


def statutory_figures(base_amount: Decimal, rates: StatutoryRates) -> StatutoryFigures:
    def _pct(enabled: bool, percentage: Decimal) -> Decimal:
        if not enabled:
            return money(ZERO)
        return money(base_amount * percentage / Decimal('100'))

    return StatutoryFigures(
        epf=_pct(rates.epf_enabled, rates.epf_percentage),
        etf=_pct(rates.etf_enabled, rates.etf_percentage),
        tax=_pct(rates.tax_enabled, rates.tax_percentage),
    )


def validate_percentage(value: Decimal, field: str) -> Decimal:
    if value is None or value < 0 or value > 100:
        raise ValidationError(f'{field} must be between 0 and 100', fields=[field])
    return value


def validate_transition(current: PaymentStatus, target: PaymentStatus) -> None:
    if target not in ALLOWED_PAYMENT_TRANSITIONS[current]:
        raise InvalidTransitionError(
            f'Cannot move payment from {current.value} to {target.value}', fields=['status']
        )


def slip_number(year: int, month: int, worker_id: int) -> str:
    return f'PAY-{year}{month:02d}-{str(worker_id)[-4:].rjust(4, "0")}'
