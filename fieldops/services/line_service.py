from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.orm import Session

from fieldops.auth import Principal, Role, ensure_authorized
from fieldops.errors import MissingReferenceError, NotFoundError, ValidationError
from fieldops.models import (
    MATERIAL_COUNTER_FIELDS,
    DrumTracking,
    DrumUsage,
    LineDetails,
    LineStatus,
    WorkAssignment,
    Worker,
)
from fieldops.services import drum_service
from fieldops.services.audit_service import log_audit
from fieldops.services.cable_math_service import coerce_reading, total_cable
from fieldops.services.drum_math_service import rewind_wastage

logger = logging.getLogger(__name__)

ZERO = Decimal('0')

_TEXT_FIELDS = ('name', 'telephone_no', 'address', 'dp')
_READING_FIELDS = ('cable_start', 'cable_middle', 'cable_end')


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _get_line(db: Session, line_id: int) -> LineDetails:
    line = db.get(LineDetails, line_id)
    if line is None:
        raise NotFoundError('Line', line_id)
    return line


def _materials(values: dict | None) -> dict[str, int]:
    counters: dict[str, int] = {}
    for key, raw in (values or {}).items():
        if key not in MATERIAL_COUNTER_FIELDS:
            raise ValidationError(f'Unknown material counter: {key}', fields=[key])
        try:
            count = int(raw or 0)
        except (TypeError, ValueError) as exc:
            raise ValidationError(f'{key} must be a whole number', fields=[key]) from exc
        if count < 0:
            raise ValidationError(f'{key} cannot be negative', fields=[key])
        counters[key] = count
    return counters


def _assign_workers(db: Session, line: LineDetails, worker_ids: list[int]) -> None:
    unique_ids = sorted(set(worker_ids))
    found = set(db.execute(select(Worker.id).where(Worker.id.in_(unique_ids))).scalars()) if unique_ids else set()
    missing = [worker_id for worker_id in unique_ids if worker_id not in found]
    if missing:
        raise MissingReferenceError('worker', missing)
    db.execute(delete(WorkAssignment).where(WorkAssignment.line_id == line.id))
    for worker_id in unique_ids:
        db.add(WorkAssignment(worker_id=worker_id, line_id=line.id, assigned_date=line.line_date))


def _draw_from_drum(db: Session, actor: Principal, line: LineDetails, drum: DrumTracking, ip: str | None) -> DrumUsage | None:
    if line.total_cable <= 0:
        return None
    extra = rewind_wastage(drum_service.last_end_point(db, drum.id), line.cable_start)
    if extra > 0:
        logger.info('Line %s starts %s behind the last end point on drum %s', line.id, extra, drum.drum_number)
    usage, _ = drum_service.record_usage(
        db,
        actor=actor,
        drum_id=drum.id,
        quantity_used=line.total_cable,
        usage_date=line.line_date,
        line_details_id=line.id,
        cable_start_point=line.cable_start,
        cable_end_point=line.cable_end,
        wastage_calculated=(line.wastage or ZERO) + extra,
        ip=ip,
    )
    line.drum_number = drum.drum_number
    return usage


def _release_usages(db: Session, line_id: int) -> list[int]:
    """Remove the line's drum usages and refresh every drum they touched."""
    usages = db.execute(select(DrumUsage).where(DrumUsage.line_details_id == line_id)).scalars().all()
    drum_ids = sorted({usage.drum_id for usage in usages})
    for usage in usages:
        db.delete(usage)
    db.flush()
    for drum_id in drum_ids:
        drum = db.execute(select(DrumTracking).where(DrumTracking.id == drum_id).with_for_update()).scalar_one()
        drum_service.sync_drum_projection(db, drum)
    return drum_ids


def create_line(
    db: Session,
    *,
    actor: Principal,
    name: str,
    telephone_no: str,
    line_date: date,
    address: str | None = None,
    dp: str | None = None,
    status: LineStatus = LineStatus.PENDING,
    task_id: int | None = None,
    cable_start=None,
    cable_middle=None,
    cable_end=None,
    wastage=None,
    drum_number: str | None = None,
    completed_date: date | None = None,
    materials: dict | None = None,
    worker_ids: list[int] | None = None,
    ip: str | None = None,
) -> LineDetails:
    """Record a line installation and, when a drum is named, draw its cable from that drum.

    ``total_cable`` is always derived from the readings; the line row, its
    drum usage and the drum's refreshed projection land in one transaction.
    """
    ensure_authorized(actor, Role.MODERATOR)
    if not (name or '').strip():
        raise ValidationError('Customer name is required', fields=['name'])
    if not (telephone_no or '').strip():
        raise ValidationError('Telephone number is required', fields=['telephone_no'])
    counters = _materials(materials)
    waste = coerce_reading(wastage)
    if waste < 0:
        raise ValidationError('Wastage cannot be negative', fields=['wastage'])
    drum = drum_service.get_drum_by_number(db, drum_number, lock=True) if (drum_number or '').strip() else None

    line = LineDetails(
        name=name.strip(),
        telephone_no=telephone_no.strip(),
        address=address,
        dp=dp,
        line_date=line_date,
        status=status,
        task_id=task_id,
        cable_start=coerce_reading(cable_start),
        cable_middle=coerce_reading(cable_middle),
        cable_end=coerce_reading(cable_end),
        total_cable=total_cable(cable_start, cable_middle, cable_end),
        wastage=waste,
        completed_date=completed_date or (line_date if status == LineStatus.COMPLETED else None),
        **counters,
    )
    db.add(line)
    db.flush()
    if worker_ids:
        _assign_workers(db, line, worker_ids)
    if drum is not None:
        _draw_from_drum(db, actor, line, drum, ip)
    db.flush()
    log_audit(
        db,
        actor_principal_id=actor.id,
        action='line.create',
        entity_type='line',
        entity_id=line.id,
        ip=ip,
        metadata={'telephone_no': line.telephone_no, 'total_cable': line.total_cable, 'drum_number': line.drum_number},
    )
    return line


def update_line(
    db: Session,
    line_id: int,
    *,
    actor: Principal,
    changes: dict,
    worker_ids: list[int] | None = None,
    ip: str | None = None,
) -> LineDetails:
    """Apply field changes. New readings or a new drum redo the line's drum usage."""
    ensure_authorized(actor, Role.MODERATOR)
    line = _get_line(db, line_id)
    changes = dict(changes)
    counters = _materials({key: changes.pop(key) for key in list(changes) if key in MATERIAL_COUNTER_FIELDS})

    for key in _TEXT_FIELDS:
        if key in changes:
            value = changes.pop(key)
            if key in ('name', 'telephone_no') and not (value or '').strip():
                raise ValidationError(f'{key} is required', fields=[key])
            setattr(line, key, value.strip() if isinstance(value, str) else value)
    redated = 'line_date' in changes and changes['line_date'] != line.line_date
    for key in ('line_date', 'status', 'task_id', 'completed_date'):
        if key in changes:
            value = changes.pop(key)
            if value is None and key in ('line_date', 'status'):
                raise ValidationError(f'{key} is required', fields=[key])
            setattr(line, key, value)
    if line.status == LineStatus.COMPLETED and line.completed_date is None:
        line.completed_date = line.line_date

    readings_changed = False
    for key in _READING_FIELDS:
        if key in changes:
            setattr(line, key, coerce_reading(changes.pop(key)))
            readings_changed = True
    if 'wastage' in changes:
        waste = coerce_reading(changes.pop('wastage'))
        if waste < 0:
            raise ValidationError('Wastage cannot be negative', fields=['wastage'])
        line.wastage = waste
        readings_changed = True
    line.total_cable = total_cable(line.cable_start, line.cable_middle, line.cable_end)

    drum_changed = 'drum_number' in changes
    new_drum_number = (changes.pop('drum_number', None) or '').strip() or None
    if changes:
        raise ValidationError(f'Unknown field(s): {", ".join(sorted(changes))}', fields=sorted(changes))
    for key, value in counters.items():
        setattr(line, key, value)

    if drum_changed or (readings_changed and line.drum_number):
        target = new_drum_number if drum_changed else line.drum_number
        _release_usages(db, line.id)
        line.drum_number = None
        if target:
            drum = drum_service.get_drum_by_number(db, target, lock=True)
            _draw_from_drum(db, actor, line, drum, ip)
    if worker_ids is not None:
        _assign_workers(db, line, worker_ids)
    elif redated:
        # Payroll counts a line in the period of its assignment date.
        db.execute(
            update(WorkAssignment)
            .where(WorkAssignment.line_id == line.id)
            .values(assigned_date=line.line_date)
            .execution_options(synchronize_session='fetch')
        )
    if redated:
        db.execute(
            update(DrumUsage)
            .where(DrumUsage.line_details_id == line.id)
            .values(usage_date=line.line_date)
            .execution_options(synchronize_session='fetch')
        )
    line.updated_at = _now()
    db.flush()
    log_audit(
        db,
        actor_principal_id=actor.id,
        action='line.update',
        entity_type='line',
        entity_id=line.id,
        ip=ip,
        metadata={'total_cable': line.total_cable, 'drum_number': line.drum_number, 'status': line.status},
    )
    return line


def delete_line(db: Session, line_id: int, *, actor: Principal, ip: str | None = None) -> None:
    """Delete a line together with its drum usages and assignments; affected drums are re-projected."""
    ensure_authorized(actor, Role.MODERATOR)
    line = _get_line(db, line_id)
    drum_ids = _release_usages(db, line.id)
    db.execute(delete(WorkAssignment).where(WorkAssignment.line_id == line.id))
    db.delete(line)
    db.flush()
    log_audit(
        db,
        actor_principal_id=actor.id,
        action='line.delete',
        entity_type='line',
        entity_id=line_id,
        ip=ip,
        metadata={'drums_reconciled': drum_ids},
    )


def line_payload(db: Session, line: LineDetails) -> dict:
    worker_ids = db.execute(
        select(WorkAssignment.worker_id).where(WorkAssignment.line_id == line.id).order_by(WorkAssignment.worker_id)
    ).scalars().all()
    payload = {
        'id': line.id,
        'name': line.name,
        'telephone_no': line.telephone_no,
        'address': line.address,
        'dp': line.dp,
        'date': line.line_date,
        'status': line.status.value,
        'task_id': line.task_id,
        'cable_start': line.cable_start,
        'cable_middle': line.cable_middle,
        'cable_end': line.cable_end,
        'total_cable': line.total_cable,
        'wastage': line.wastage,
        'drum_number': line.drum_number,
        'completed_date': line.completed_date,
        'worker_ids': list(worker_ids),
    }
    payload['materials'] = {key: getattr(line, key) for key in MATERIAL_COUNTER_FIELDS}
    return payload


def get_line(db: Session, line_id: int) -> dict:
    return line_payload(db, _get_line(db, line_id))


def list_lines(
    db: Session,
    *,
    status: LineStatus | None = None,
    search: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    page: int = 1,
    page_size: int = 50,
) -> dict:
    page = max(page, 1)
    page_size = min(max(page_size, 1), 200)
    stmt = select(LineDetails)
    if status is not None:
        stmt = stmt.where(LineDetails.status == status)
    if start_date is not None:
        stmt = stmt.where(LineDetails.line_date >= start_date)
    if end_date is not None:
        stmt = stmt.where(LineDetails.line_date <= end_date)
    term = (search or '').strip()
    if term:
        stmt = stmt.where(
            or_(
                LineDetails.telephone_no.ilike(f'%{term}%'),
                LineDetails.name.ilike(f'%{term}%'),
                LineDetails.dp.ilike(f'%{term}%'),
            )
        )
    total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
    lines = db.execute(
        stmt.order_by(LineDetails.line_date.desc(), LineDetails.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    ).scalars().all()
    return {
        'items': [line_payload(db, line) for line in lines],
        'total': total,
        'page': page,
        'page_size': page_size,
    }
