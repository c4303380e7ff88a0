from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from fieldops.auth import Principal, Role, ensure_authorized
from fieldops.config import settings
from fieldops.errors import InvalidTransitionError, NotFoundError, ValidationError
from fieldops.models import (
    AdjustmentCategory,
    AdjustmentType,
    LineDetails,
    LineStatus,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
    PayrollAdjustment,
    PayrollPeriod,
    PayrollSettings,
    PayrollStatus,
    WorkAssignment,
    Worker,
    WorkerPayment,
    WorkerStatus,
)
from fieldops.services.audit_service import log_audit
from fieldops.services.notification_service import notify_payment_paid
from fieldops.services.payroll_math_service import (
    AdjustmentInput,
    StatutoryRates,
    compute_totals,
    derive_base_amount,
    slip_number,
    statutory_figures,
    validate_percentage,
    validate_transition,
)

logger = logging.getLogger(__name__)

ZERO = Decimal('0')


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


# Settings


def get_or_create_settings(db: Session) -> PayrollSettings:
    row = db.execute(select(PayrollSettings).order_by(PayrollSettings.id.asc()).limit(1)).scalar_one_or_none()
    if row is None:
        row = PayrollSettings(
            epf_enabled=True,
            epf_percentage=Decimal('8.00'),
            etf_enabled=True,
            etf_percentage=Decimal('3.00'),
            tax_enabled=False,
            tax_percentage=Decimal('0.00'),
        )
        db.add(row)
        db.flush()
        logger.info('Payroll settings initialised with defaults')
    return row


def statutory_rates(row: PayrollSettings) -> StatutoryRates:
    return StatutoryRates(
        epf_enabled=row.epf_enabled,
        epf_percentage=row.epf_percentage,
        etf_enabled=row.etf_enabled,
        etf_percentage=row.etf_percentage,
        tax_enabled=row.tax_enabled,
        tax_percentage=row.tax_percentage,
    )


def update_settings(db: Session, *, actor: Principal, changes: dict, ip: str | None = None) -> PayrollSettings:
    ensure_authorized(actor, Role.ADMIN)
    row = get_or_create_settings(db)
    allowed = {'epf_enabled', 'epf_percentage', 'etf_enabled', 'etf_percentage', 'tax_enabled', 'tax_percentage'}
    unknown = sorted(set(changes) - allowed)
    if unknown:
        raise ValidationError(f'Unknown setting(s): {", ".join(unknown)}', fields=unknown)
    for key, value in changes.items():
        if value is None:
            continue
        if key.endswith('_percentage'):
            value = validate_percentage(value, key)
        setattr(row, key, value)
    row.updated_at = _now()
    db.flush()
    log_audit(
        db,
        actor_principal_id=actor.id,
        action='payroll.settings.update',
        entity_type='payroll_settings',
        entity_id=row.id,
        ip=ip,
        metadata=changes,
    )
    return row


# Periods


def _get_period(db: Session, period_id: int, *, lock: bool = False) -> PayrollPeriod:
    stmt = select(PayrollPeriod).where(PayrollPeriod.id == period_id)
    if lock:
        stmt = stmt.with_for_update()
    period = db.execute(stmt).scalar_one_or_none()
    if period is None:
        raise NotFoundError('Payroll period', period_id)
    return period


def period_payload(period: PayrollPeriod) -> dict:
    return {
        'id': period.id,
        'name': period.name,
        'month': period.month,
        'year': period.year,
        'start_date': period.start_date,
        'end_date': period.end_date,
        'status': period.status.value,
        'total_amount': period.total_amount,
        'paid_date': period.paid_date,
        'created_by_id': period.created_by_id,
    }


def create_period(
    db: Session,
    *,
    actor: Principal,
    name: str,
    month: int,
    year: int,
    start_date: date,
    end_date: date,
    ip: str | None = None,
) -> PayrollPeriod:
    ensure_authorized(actor, Role.ADMIN)
    missing = [
        field
        for field, value in (
            ('name', (name or '').strip()),
            ('month', month),
            ('year', year),
            ('start_date', start_date),
            ('end_date', end_date),
        )
        if not value
    ]
    if missing:
        raise ValidationError(f'Missing required field(s): {", ".join(missing)}', fields=missing)
    if not 1 <= month <= 12:
        raise ValidationError('Month must be between 1 and 12', fields=['month'])
    if end_date < start_date:
        raise ValidationError('End date cannot be before start date', fields=['start_date', 'end_date'])
    exists = db.execute(
        select(PayrollPeriod.id).where(PayrollPeriod.month == month, PayrollPeriod.year == year)
    ).first()
    if exists:
        raise ValidationError(f'Payroll period for {month}/{year} already exists', fields=['month', 'year'])

    period = PayrollPeriod(
        name=name.strip(),
        month=month,
        year=year,
        start_date=start_date,
        end_date=end_date,
        status=PayrollStatus.DRAFT,
        total_amount=ZERO,
        created_by_id=actor.id,
    )
    db.add(period)
    db.flush()
    log_audit(
        db,
        actor_principal_id=actor.id,
        action='payroll.period.create',
        entity_type='payroll_period',
        entity_id=period.id,
        ip=ip,
        metadata={'month': month, 'year': year},
    )
    return period


def list_periods(db: Session, *, status: PayrollStatus | None = None, year: int | None = None) -> list[dict]:
    stmt = select(PayrollPeriod)
    if status is not None:
        stmt = stmt.where(PayrollPeriod.status == status)
    if year is not None:
        stmt = stmt.where(PayrollPeriod.year == year)
    periods = db.execute(stmt.order_by(PayrollPeriod.year.desc(), PayrollPeriod.month.desc())).scalars().all()
    return [period_payload(period) for period in periods]


def get_period(db: Session, period_id: int) -> dict:
    period = _get_period(db, period_id)
    payload = period_payload(period)
    payload['payments'] = list_payments(db, period_id=period.id)
    return payload


def delete_period(db: Session, period_id: int, *, actor: Principal, ip: str | None = None) -> None:
    ensure_authorized(actor, Role.ADMIN)
    period = _get_period(db, period_id, lock=True)
    if period.status == PayrollStatus.PAID:
        raise InvalidTransitionError('Cannot delete a paid payroll period', fields=['status'])
    payment_ids = select(WorkerPayment.id).where(WorkerPayment.payroll_period_id == period.id)
    db.execute(delete(PayrollAdjustment).where(PayrollAdjustment.worker_payment_id.in_(payment_ids)))
    db.execute(delete(WorkerPayment).where(WorkerPayment.payroll_period_id == period.id))
    db.delete(period)
    db.flush()
    log_audit(
        db,
        actor_principal_id=actor.id,
        action='payroll.period.delete',
        entity_type='payroll_period',
        entity_id=period_id,
        ip=ip,
        metadata={'month': period.month, 'year': period.year},
    )


def _refresh_period_total(db: Session, period_id: int) -> Decimal:
    total = db.execute(
        select(func.coalesce(func.sum(WorkerPayment.net_amount), 0)).where(WorkerPayment.payroll_period_id == period_id)
    ).scalar_one()
    total = Decimal(str(total))
    db.execute(
        update(PayrollPeriod)
        .where(PayrollPeriod.id == period_id)
        .values(total_amount=total, updated_at=_now())
        .execution_options(synchronize_session='fetch')
    )
    return total


def _lines_completed(db: Session, worker_id: int, start_date: date, end_date: date) -> int:
    return db.execute(
        select(func.count(WorkAssignment.id))
        .join(LineDetails, LineDetails.id == WorkAssignment.line_id)
        .where(
            WorkAssignment.worker_id == worker_id,
            WorkAssignment.assigned_date >= start_date,
            WorkAssignment.assigned_date <= end_date,
            LineDetails.status == LineStatus.COMPLETED,
        )
    ).scalar_one()


def _adjustment_inputs(db: Session, payment_id: int) -> list[AdjustmentInput]:
    rows = db.execute(
        select(PayrollAdjustment.type, PayrollAdjustment.amount).where(PayrollAdjustment.worker_payment_id == payment_id)
    ).all()
    return [AdjustmentInput(type=row_type, amount=amount) for row_type, amount in rows]


def _recompute_payment(db: Session, payment: WorkerPayment) -> None:
    db.flush()
    totals = compute_totals(payment.base_amount, _adjustment_inputs(db, payment.id))
    payment.bonus_amount = totals.bonus_amount
    payment.deduction_amount = totals.deduction_amount
    payment.net_amount = totals.net_amount
    payment.updated_at = _now()
    db.flush()


def calculate_period(db: Session, period_id: int, *, actor: Principal, ip: str | None = None) -> list[WorkerPayment]:
    """Derive every active worker's base pay and move the period to processing.

    A processing period can be recalculated as often as needed, e.g. after a
    line is completed or re-dated. Re-running keeps existing adjustments; only
    the base amount and the derived totals are rewritten. Payments already
    settled individually are left alone.
    """
    ensure_authorized(actor, Role.MODERATOR)
    period = _get_period(db, period_id, lock=True)
    if period.status not in (PayrollStatus.DRAFT, PayrollStatus.PROCESSING):
        raise InvalidTransitionError('Can only calculate draft or processing payroll periods', fields=['status'])

    workers = db.execute(
        select(Worker).where(Worker.status == WorkerStatus.ACTIVE).order_by(Worker.id.asc())
    ).scalars().all()
    existing = {
        payment.worker_id: payment
        for payment in db.execute(
            select(WorkerPayment).where(WorkerPayment.payroll_period_id == period.id).with_for_update()
        ).scalars()
    }

    payments: list[WorkerPayment] = []
    for worker in workers:
        base = derive_base_amount(
            worker.payment_type,
            lines_completed=_lines_completed(db, worker.id, period.start_date, period.end_date),
            per_line_rate=worker.per_line_rate,
            monthly_rate=worker.monthly_rate,
            default_per_line_rate=settings.default_per_line_rate,
        )
        payment = existing.get(worker.id)
        if payment is not None and payment.status == PaymentStatus.PAID:
            payments.append(payment)
            continue
        if payment is None:
            payment = WorkerPayment(
                payroll_period_id=period.id,
                worker_id=worker.id,
                status=PaymentStatus.CALCULATED,
                created_by_id=actor.id,
            )
            db.add(payment)
        payment.payment_type = base.payment_type
        payment.lines_completed = base.lines_completed
        payment.per_line_rate = base.per_line_rate
        payment.base_amount = base.amount
        _recompute_payment(db, payment)
        payments.append(payment)

    total = _refresh_period_total(db, period.id)
    period.status = PayrollStatus.PROCESSING
    db.flush()
    log_audit(
        db,
        actor_principal_id=actor.id,
        action='payroll.period.calculate',
        entity_type='payroll_period',
        entity_id=period.id,
        ip=ip,
        metadata={'payments': len(payments), 'total_amount': total},
    )
    logger.info('Payroll period %s calculated: %s payments, total %s', period.id, len(payments), total)
    return payments


def approve_period(db: Session, period_id: int, *, actor: Principal, ip: str | None = None) -> PayrollPeriod:
    ensure_authorized(actor, Role.MODERATOR)
    period = _get_period(db, period_id, lock=True)
    if period.status != PayrollStatus.PROCESSING:
        raise InvalidTransitionError('Can only approve processing payroll periods', fields=['status'])
    count = db.execute(
        select(func.count(WorkerPayment.id)).where(WorkerPayment.payroll_period_id == period.id)
    ).scalar_one()
    if count == 0:
        raise ValidationError('Cannot approve a payroll period with no payments')
    db.execute(
        update(WorkerPayment)
        .where(WorkerPayment.payroll_period_id == period.id, WorkerPayment.status == PaymentStatus.CALCULATED)
        .values(status=PaymentStatus.APPROVED, updated_at=_now())
        .execution_options(synchronize_session='fetch')
    )
    period.status = PayrollStatus.APPROVED
    db.flush()
    log_audit(
        db,
        actor_principal_id=actor.id,
        action='payroll.period.approve',
        entity_type='payroll_period',
        entity_id=period.id,
        ip=ip,
    )
    return period


def reopen_period(db: Session, period_id: int, *, actor: Principal, ip: str | None = None) -> PayrollPeriod:
    """Send a processing or approved period back to draft so it can be corrected."""
    ensure_authorized(actor, Role.ADMIN)
    period = _get_period(db, period_id, lock=True)
    if period.status not in (PayrollStatus.PROCESSING, PayrollStatus.APPROVED):
        raise InvalidTransitionError('Can only reopen processing or approved payroll periods', fields=['status'])
    previous = period.status
    db.execute(
        update(WorkerPayment)
        .where(WorkerPayment.payroll_period_id == period.id, WorkerPayment.status == PaymentStatus.APPROVED)
        .values(status=PaymentStatus.CALCULATED, updated_at=_now())
        .execution_options(synchronize_session='fetch')
    )
    period.status = PayrollStatus.DRAFT
    db.flush()
    log_audit(
        db,
        actor_principal_id=actor.id,
        action='payroll.period.reopen',
        entity_type='payroll_period',
        entity_id=period.id,
        ip=ip,
        metadata={'from_status': previous.value},
    )
    logger.info('Payroll period %s reopened from %s', period.id, previous.value)
    return period


def mark_period_paid(
    db: Session,
    period_id: int,
    *,
    actor: Principal,
    paid_date: date | None = None,
    ip: str | None = None,
) -> PayrollPeriod:
    ensure_authorized(actor, Role.MODERATOR)
    period = _get_period(db, period_id, lock=True)
    if period.status != PayrollStatus.APPROVED:
        raise InvalidTransitionError('Can only mark approved payroll periods as paid', fields=['status'])
    paid_at = (
        datetime(paid_date.year, paid_date.month, paid_date.day, tzinfo=timezone.utc) if paid_date else _now()
    )
    db.execute(
        update(WorkerPayment)
        .where(WorkerPayment.payroll_period_id == period.id, WorkerPayment.status == PaymentStatus.APPROVED)
        .values(status=PaymentStatus.PAID, paid_at=paid_at, updated_at=_now())
        .execution_options(synchronize_session='fetch')
    )
    period.status = PayrollStatus.PAID
    period.paid_date = paid_at.date()
    db.flush()
    log_audit(
        db,
        actor_principal_id=actor.id,
        action='payroll.period.pay',
        entity_type='payroll_period',
        entity_id=period.id,
        ip=ip,
        metadata={'paid_date': period.paid_date},
    )
    return period


# Payments


def _get_payment(db: Session, payment_id: int, *, lock: bool = False) -> WorkerPayment:
    stmt = select(WorkerPayment).where(WorkerPayment.id == payment_id)
    if lock:
        stmt = stmt.with_for_update()
    payment = db.execute(stmt).scalar_one_or_none()
    if payment is None:
        raise NotFoundError('Payment', payment_id)
    return payment


def _adjustment_payload(adjustment: PayrollAdjustment) -> dict:
    return {
        'id': adjustment.id,
        'worker_payment_id': adjustment.worker_payment_id,
        'type': adjustment.type.value,
        'category': adjustment.category.value,
        'description': adjustment.description,
        'amount': adjustment.amount,
        'created_at': adjustment.created_at,
    }


def payment_payload(db: Session, payment: WorkerPayment) -> dict:
    adjustments = db.execute(
        select(PayrollAdjustment)
        .where(PayrollAdjustment.worker_payment_id == payment.id)
        .order_by(PayrollAdjustment.id.asc())
    ).scalars()
    return {
        'id': payment.id,
        'payroll_period_id': payment.payroll_period_id,
        'worker_id': payment.worker_id,
        'worker_name': payment.worker.full_name,
        'payment_type': payment.payment_type.value,
        'lines_completed': payment.lines_completed,
        'per_line_rate': payment.per_line_rate,
        'base_amount': payment.base_amount,
        'bonus_amount': payment.bonus_amount,
        'deduction_amount': payment.deduction_amount,
        'net_amount': payment.net_amount,
        'status': payment.status.value,
        'paid_at': payment.paid_at,
        'payment_method': payment.payment_method.value if payment.payment_method else None,
        'payment_ref': payment.payment_ref,
        'notes': payment.notes,
        'adjustments': [_adjustment_payload(adjustment) for adjustment in adjustments],
    }


def list_payments(
    db: Session,
    *,
    period_id: int | None = None,
    worker_id: int | None = None,
    status: PaymentStatus | None = None,
) -> list[dict]:
    stmt = select(WorkerPayment)
    if period_id is not None:
        stmt = stmt.where(WorkerPayment.payroll_period_id == period_id)
    if worker_id is not None:
        stmt = stmt.where(WorkerPayment.worker_id == worker_id)
    if status is not None:
        stmt = stmt.where(WorkerPayment.status == status)
    payments = db.execute(stmt.order_by(WorkerPayment.id.asc())).scalars().all()
    return [payment_payload(db, payment) for payment in payments]


def get_payment(db: Session, payment_id: int) -> dict:
    return payment_payload(db, _get_payment(db, payment_id))


def update_payment_status(
    db: Session,
    payment_id: int,
    *,
    actor: Principal,
    status: PaymentStatus,
    payment_method: PaymentMethod | None = None,
    payment_ref: str | None = None,
    notes: str | None = None,
    ip: str | None = None,
) -> WorkerPayment:
    ensure_authorized(actor, Role.MODERATOR)
    payment = _get_payment(db, payment_id, lock=True)
    previous = payment.status
    validate_transition(previous, status)
    payment.status = status
    if status == PaymentStatus.PAID:
        payment.paid_at = _now()
        if payment_method is not None:
            payment.payment_method = payment_method
        if payment_ref:
            payment.payment_ref = payment_ref.strip()
    if notes is not None:
        payment.notes = notes
    payment.updated_at = _now()
    db.flush()
    if status == PaymentStatus.PAID:
        notify_payment_paid(db, payment)
    log_audit(
        db,
        actor_principal_id=actor.id,
        action='payroll.payment.status',
        entity_type='worker_payment',
        entity_id=payment.id,
        ip=ip,
        metadata={'from': previous, 'to': status, 'payment_method': payment_method},
    )
    return payment


# Adjustments


def add_adjustment(
    db: Session,
    *,
    actor: Principal,
    worker_payment_id: int,
    type: AdjustmentType,
    category: AdjustmentCategory,
    description: str,
    amount: Decimal,
    ip: str | None = None,
) -> PayrollAdjustment:
    ensure_authorized(actor, Role.MODERATOR)
    missing = [
        field
        for field, value in (
            ('worker_payment_id', worker_payment_id),
            ('type', type),
            ('category', category),
            ('description', (description or '').strip()),
            ('amount', amount),
        )
        if value is None or value == ''
    ]
    if missing:
        raise ValidationError(f'Missing required field(s): {", ".join(missing)}', fields=missing)
    if amount <= 0:
        raise ValidationError('Amount must be greater than zero', fields=['amount'])

    payment = _get_payment(db, worker_payment_id, lock=True)
    if payment.status == PaymentStatus.PAID:
        raise InvalidTransitionError('Cannot adjust a paid payment', fields=['worker_payment_id'])

    adjustment = PayrollAdjustment(
        worker_payment_id=payment.id,
        type=type,
        category=category,
        description=description.strip(),
        amount=amount,
        created_by_id=actor.id,
    )
    db.add(adjustment)
    _recompute_payment(db, payment)
    _refresh_period_total(db, payment.payroll_period_id)
    log_audit(
        db,
        actor_principal_id=actor.id,
        action='payroll.adjustment.create',
        entity_type='worker_payment',
        entity_id=payment.id,
        ip=ip,
        metadata={'adjustment_id': adjustment.id, 'type': type, 'category': category, 'amount': amount},
    )
    return adjustment


def delete_adjustment(db: Session, adjustment_id: int, *, actor: Principal, ip: str | None = None) -> WorkerPayment:
    ensure_authorized(actor, Role.MODERATOR)
    adjustment = db.get(PayrollAdjustment, adjustment_id)
    if adjustment is None:
        raise NotFoundError('Adjustment', adjustment_id)
    payment = _get_payment(db, adjustment.worker_payment_id, lock=True)
    if payment.status == PaymentStatus.PAID:
        raise InvalidTransitionError('Cannot adjust a paid payment', fields=['worker_payment_id'])
    amount = adjustment.amount
    db.delete(adjustment)
    _recompute_payment(db, payment)
    _refresh_period_total(db, payment.payroll_period_id)
    log_audit(
        db,
        actor_principal_id=actor.id,
        action='payroll.adjustment.delete',
        entity_type='worker_payment',
        entity_id=payment.id,
        ip=ip,
        metadata={'adjustment_id': adjustment_id, 'amount': amount},
    )
    return payment


# Reports


def salary_slip(db: Session, payment_id: int, *, rates: StatutoryRates | None = None) -> dict:
    payment = _get_payment(db, payment_id)
    period = payment.payroll_period
    worker = payment.worker
    if rates is None:
        rates = statutory_rates(get_or_create_settings(db))
    payload = payment_payload(db, payment)
    figures = statutory_figures(payment.base_amount, rates)
    bank_details = None
    if worker.bank_name:
        bank_details = {
            'bank_name': worker.bank_name,
            'branch': worker.bank_branch,
            'account_number': worker.account_number,
            'account_name': worker.account_name,
        }
    return {
        'slip_number': slip_number(period.year, period.month, worker.id),
        'period_name': period.name,
        'month': period.month,
        'year': period.year,
        'generated_at': _now(),
        'worker': {'id': worker.id, 'full_name': worker.full_name, 'employee_no': worker.employee_no},
        'payment': payload,
        'bonuses': [a for a in payload['adjustments'] if a['type'] == AdjustmentType.BONUS.value],
        'deductions': [a for a in payload['adjustments'] if a['type'] == AdjustmentType.DEDUCTION.value],
        'statutory': {
            'epf': figures.epf,
            'etf': figures.etf,
            'tax': figures.tax,
            'epf_percentage': rates.epf_percentage if rates.epf_enabled else None,
            'etf_percentage': rates.etf_percentage if rates.etf_enabled else None,
            'tax_percentage': rates.tax_percentage if rates.tax_enabled else None,
        },
        'bank_details': bank_details,
    }


def payroll_summary(db: Session) -> dict:
    counts = dict(
        db.execute(select(PayrollPeriod.status, func.count(PayrollPeriod.id)).group_by(PayrollPeriod.status)).all()
    )
    paid_total = db.execute(
        select(func.coalesce(func.sum(PayrollPeriod.total_amount), 0)).where(PayrollPeriod.status == PayrollStatus.PAID)
    ).scalar_one()
    current = db.execute(
        select(PayrollPeriod)
        .where(PayrollPeriod.status != PayrollStatus.PAID)
        .order_by(PayrollPeriod.year.desc(), PayrollPeriod.month.desc())
        .limit(1)
    ).scalar_one_or_none()
    return {
        'total_periods': sum(counts.values()),
        'draft_periods': counts.get(PayrollStatus.DRAFT, 0),
        'processing_periods': counts.get(PayrollStatus.PROCESSING, 0),
        'approved_periods': counts.get(PayrollStatus.APPROVED, 0),
        'paid_periods': counts.get(PayrollStatus.PAID, 0),
        'total_paid_amount': Decimal(str(paid_total)),
        'current_period': period_payload(current) if current else None,
    }


def worker_payment_history(db: Session, worker_id: int) -> dict:
    worker = db.get(Worker, worker_id)
    if worker is None:
        raise NotFoundError('Worker', worker_id)
    payments = db.execute(
        select(WorkerPayment).where(WorkerPayment.worker_id == worker_id).order_by(WorkerPayment.created_at.desc())
    ).scalars().all()
    paid = [payment for payment in payments if payment.status == PaymentStatus.PAID and payment.paid_at]
    return {
        'worker_id': worker.id,
        'worker_name': worker.full_name,
        'total_payments': len(payments),
        'total_earnings': sum((p.net_amount for p in payments), ZERO),
        'total_bonuses': sum((p.bonus_amount for p in payments), ZERO),
        'total_deductions': sum((p.deduction_amount for p in payments), ZERO),
        'lines_completed': sum(p.lines_completed for p in payments),
        'last_payment_date': max((p.paid_at for p in paid), default=None),
    }


# Workers


def create_worker(
    db: Session,
    *,
    actor: Principal,
    full_name: str,
    payment_type: PaymentType = PaymentType.PER_LINE,
    employee_no: str | None = None,
    per_line_rate: Decimal | None = None,
    monthly_rate: Decimal | None = None,
    bank_name: str | None = None,
    bank_branch: str | None = None,
    account_number: str | None = None,
    account_name: str | None = None,
    ip: str | None = None,
) -> Worker:
    ensure_authorized(actor, Role.MODERATOR)
    name = (full_name or '').strip()
    if not name:
        raise ValidationError('Worker name is required', fields=['full_name'])
    for field, value in (('per_line_rate', per_line_rate), ('monthly_rate', monthly_rate)):
        if value is not None and value < 0:
            raise ValidationError(f'{field} cannot be negative', fields=[field])
    if payment_type == PaymentType.FIXED_MONTHLY and monthly_rate is None:
        raise ValidationError('Monthly rate is required for fixed monthly workers', fields=['monthly_rate'])
    if employee_no and db.execute(select(Worker.id).where(Worker.employee_no == employee_no)).first():
        raise ValidationError(f'Employee number {employee_no} already exists', fields=['employee_no'])

    worker = Worker(
        full_name=name,
        employee_no=employee_no or None,
        status=WorkerStatus.ACTIVE,
        payment_type=payment_type,
        per_line_rate=per_line_rate,
        monthly_rate=monthly_rate,
        bank_name=bank_name,
        bank_branch=bank_branch,
        account_number=account_number,
        account_name=account_name,
    )
    db.add(worker)
    db.flush()
    log_audit(
        db,
        actor_principal_id=actor.id,
        action='worker.create',
        entity_type='worker',
        entity_id=worker.id,
        ip=ip,
        metadata={'full_name': name, 'payment_type': payment_type},
    )
    return worker


def list_workers(db: Session, *, status: WorkerStatus | None = None) -> list[dict]:
    stmt = select(Worker)
    if status is not None:
        stmt = stmt.where(Worker.status == status)
    workers = db.execute(stmt.order_by(Worker.full_name.asc())).scalars().all()
    return [
        {
            'id': worker.id,
            'full_name': worker.full_name,
            'employee_no': worker.employee_no,
            'status': worker.status.value,
            'payment_type': worker.payment_type.value,
            'per_line_rate': worker.per_line_rate,
            'monthly_rate': worker.monthly_rate,
        }
        for worker in workers
    ]
