from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from fieldops.auth import Principal, Role, get_current_principal, require_role
from fieldops.db import get_db
from fieldops.dependencies import get_client_ip
from fieldops.models import PaymentStatus, PayrollStatus, WorkerStatus
from fieldops.schemas import (
    AdjustmentCreate,
    PaymentStatusUpdate,
    PayrollSettingsUpdate,
    PeriodAction,
    PeriodCreate,
    WorkerCreate,
)
from fieldops.services import payroll_service

router = APIRouter(prefix='/payroll', tags=['payroll'])
moderator_access = require_role(Role.MODERATOR)
admin_access = require_role(Role.ADMIN)


def _settings_payload(row) -> dict:
    return {
        'epf_enabled': row.epf_enabled,
        'epf_percentage': row.epf_percentage,
        'etf_enabled': row.etf_enabled,
        'etf_percentage': row.etf_percentage,
        'tax_enabled': row.tax_enabled,
        'tax_percentage': row.tax_percentage,
        'updated_at': row.updated_at,
    }


@router.get('/settings')
def get_settings(_: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    row = payroll_service.get_or_create_settings(db)
    db.commit()
    return {'data': _settings_payload(row)}


@router.put('/settings')
def update_settings(
    payload: PayrollSettingsUpdate,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    row = payroll_service.update_settings(
        db, actor=principal, changes=payload.model_dump(exclude_unset=True), ip=get_client_ip(request)
    )
    db.commit()
    return {'data': _settings_payload(row)}


@router.get('/summary')
def summary(_: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    return {'data': payroll_service.payroll_summary(db)}


@router.get('/workers')
def list_workers(
    status: WorkerStatus | None = None,
    _: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return {'data': payroll_service.list_workers(db, status=status)}


@router.post('/workers', status_code=201)
def create_worker(
    payload: WorkerCreate,
    request: Request,
    principal: Principal = Depends(moderator_access),
    db: Session = Depends(get_db),
):
    worker = payroll_service.create_worker(db, actor=principal, ip=get_client_ip(request), **payload.model_dump())
    db.commit()
    return {'data': {'id': worker.id, 'full_name': worker.full_name}}


@router.get('/workers/{worker_id}/history')
def worker_history(worker_id: int, _: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    return {'data': payroll_service.worker_payment_history(db, worker_id)}


@router.get('/periods')
def list_periods(
    status: PayrollStatus | None = None,
    year: int | None = None,
    _: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return {'data': payroll_service.list_periods(db, status=status, year=year)}


@router.post('/periods', status_code=201)
def create_period(
    payload: PeriodCreate,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    period = payroll_service.create_period(db, actor=principal, ip=get_client_ip(request), **payload.model_dump())
    db.commit()
    return {'data': payroll_service.period_payload(period)}


@router.get('/periods/{period_id}')
def get_period(period_id: int, _: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    return {'data': payroll_service.get_period(db, period_id)}


@router.post('/periods/{period_id}')
def period_action(
    period_id: int,
    payload: PeriodAction,
    request: Request,
    principal: Principal = Depends(moderator_access),
    db: Session = Depends(get_db),
):
    ip = get_client_ip(request)
    if payload.action == 'calculate':
        payroll_service.calculate_period(db, period_id, actor=principal, ip=ip)
    elif payload.action == 'approve':
        payroll_service.approve_period(db, period_id, actor=principal, ip=ip)
    elif payload.action == 'reopen':
        payroll_service.reopen_period(db, period_id, actor=principal, ip=ip)
    else:
        payroll_service.mark_period_paid(db, period_id, actor=principal, paid_date=payload.paid_date, ip=ip)
    db.commit()
    return {'data': payroll_service.get_period(db, period_id)}


@router.delete('/periods/{period_id}')
def delete_period(
    period_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    payroll_service.delete_period(db, period_id, actor=principal, ip=get_client_ip(request))
    db.commit()
    return {'success': True}


@router.get('/payments')
def list_payments(
    period_id: int | None = None,
    worker_id: int | None = None,
    status: PaymentStatus | None = None,
    _: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return {'data': payroll_service.list_payments(db, period_id=period_id, worker_id=worker_id, status=status)}


@router.get('/payments/{payment_id}')
def get_payment(payment_id: int, _: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    return {'data': payroll_service.get_payment(db, payment_id)}


@router.patch('/payments/{payment_id}')
def update_payment_status(
    payment_id: int,
    payload: PaymentStatusUpdate,
    request: Request,
    principal: Principal = Depends(moderator_access),
    db: Session = Depends(get_db),
):
    payroll_service.update_payment_status(
        db, payment_id, actor=principal, ip=get_client_ip(request), **payload.model_dump()
    )
    db.commit()
    return {'data': payroll_service.get_payment(db, payment_id)}


@router.get('/payments/{payment_id}/slip')
def salary_slip(payment_id: int, _: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    rates = payroll_service.statutory_rates(payroll_service.get_or_create_settings(db))
    slip = payroll_service.salary_slip(db, payment_id, rates=rates)
    db.commit()
    return {'data': slip}


@router.post('/adjustments', status_code=201)
def add_adjustment(
    payload: AdjustmentCreate,
    request: Request,
    principal: Principal = Depends(moderator_access),
    db: Session = Depends(get_db),
):
    adjustment = payroll_service.add_adjustment(db, actor=principal, ip=get_client_ip(request), **payload.model_dump())
    db.commit()
    return {'data': payroll_service.get_payment(db, adjustment.worker_payment_id)}


@router.delete('/adjustments/{adjustment_id}')
def delete_adjustment(
    adjustment_id: int,
    request: Request,
    principal: Principal = Depends(moderator_access),
    db: Session = Depends(get_db),
):
    payment = payroll_service.delete_adjustment(db, adjustment_id, actor=principal, ip=get_client_ip(request))
    db.commit()
    return {'data': payroll_service.get_payment(db, payment.id)}
