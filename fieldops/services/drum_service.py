from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import Session

from fieldops.auth import Principal, Role, ensure_authorized
from fieldops.errors import NotFoundError, ValidationError
from fieldops.models import DrumStatus, DrumTracking, DrumUsage, InventoryItem, LineDetails, WastageMethod
from fieldops.services.audit_service import log_audit
from fieldops.services.drum_math_service import (
    DrumProjection,
    SegmentReport,
    UsageInput,
    analyze_segments,
    project_drum,
    validate_manual_override,
)

logger = logging.getLogger(__name__)

ZERO = Decimal('0')


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _usage_inputs(db: Session, drum_id: int) -> list[UsageInput]:
    rows = db.execute(
        select(DrumUsage).where(DrumUsage.drum_id == drum_id).order_by(DrumUsage.usage_date.asc(), DrumUsage.id.asc())
    ).scalars()
    return [
        UsageInput(
            quantity_used=row.quantity_used,
            wastage_calculated=row.wastage_calculated or ZERO,
            cable_start_point=row.cable_start_point,
            cable_end_point=row.cable_end_point,
            usage_id=row.id,
            usage_date=row.usage_date,
        )
        for row in rows
    ]


def _get_drum(db: Session, drum_id: int, *, lock: bool = False) -> DrumTracking:
    stmt = select(DrumTracking).where(DrumTracking.id == drum_id)
    if lock:
        stmt = stmt.with_for_update()
    drum = db.execute(stmt).scalar_one_or_none()
    if not drum:
        raise NotFoundError('Drum', drum_id)
    return drum


def get_drum_by_number(db: Session, drum_number: str, *, lock: bool = False) -> DrumTracking:
    stmt = select(DrumTracking).where(DrumTracking.drum_number == drum_number.strip())
    if lock:
        stmt = stmt.with_for_update()
    drum = db.execute(stmt).scalar_one_or_none()
    if not drum:
        raise NotFoundError('Drum', drum_number)
    return drum


def project(db: Session, drum: DrumTracking) -> DrumProjection:
    return project_drum(
        drum.initial_quantity,
        _usage_inputs(db, drum.id),
        method=drum.wastage_calculation_method,
        manual_override=drum.manual_wastage_override,
        stored_status=drum.status,
    )


def sync_drum_projection(db: Session, drum: DrumTracking) -> DrumProjection:
    """Rewrite the cached quantity/status columns from the usage history."""
    db.flush()
    projection = project(db, drum)
    drum.current_quantity = projection.current_quantity
    drum.status = projection.status
    drum.updated_at = _now()
    db.flush()
    return projection


def _drum_payload(drum: DrumTracking, projection: DrumProjection) -> dict:
    return {
        'id': drum.id,
        'drum_number': drum.drum_number,
        'item_id': drum.item_id,
        'item_name': drum.item.name if drum.item else None,
        'initial_quantity': drum.initial_quantity,
        'current_quantity': projection.current_quantity,
        'total_used': projection.total_used,
        'overdrawn': projection.overdrawn,
        'wastage': projection.wastage,
        'gap_wastage': projection.gap_wastage,
        'recorded_wastage': projection.recorded_wastage,
        'wastage_calculation_method': projection.wastage_method.value,
        'manual_wastage_override': drum.manual_wastage_override,
        'status': projection.status.value,
        'received_date': drum.received_date,
        'updated_at': drum.updated_at,
    }


def list_drums(
    db: Session,
    *,
    status: DrumStatus | None = None,
    search: str | None = None,
    page: int = 1,
    page_size: int = 50,
) -> dict:
    page = max(page, 1)
    page_size = min(max(page_size, 1), 200)
    stmt = select(DrumTracking)
    if status is not None:
        stmt = stmt.where(DrumTracking.status == status)
    term = (search or '').strip()
    if term:
        stmt = stmt.outerjoin(InventoryItem, InventoryItem.id == DrumTracking.item_id).where(
            or_(DrumTracking.drum_number.ilike(f'%{term}%'), InventoryItem.name.ilike(f'%{term}%'))
        )
    total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
    drums = db.execute(
        stmt.order_by(DrumTracking.created_at.desc(), DrumTracking.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    ).scalars().all()
    return {
        'items': [_drum_payload(drum, project(db, drum)) for drum in drums],
        'total': total,
        'page': page,
        'page_size': page_size,
    }


def get_drum(db: Session, drum_id: int) -> dict:
    drum = _get_drum(db, drum_id)
    rows = db.execute(
        select(DrumUsage, LineDetails)
        .outerjoin(LineDetails, LineDetails.id == DrumUsage.line_details_id)
        .where(DrumUsage.drum_id == drum_id)
        .order_by(DrumUsage.usage_date.asc(), DrumUsage.id.asc())
    ).all()
    payload = _drum_payload(drum, project(db, drum))
    payload['usages'] = [
        {
            'id': usage.id,
            'quantity_used': usage.quantity_used,
            'usage_date': usage.usage_date,
            'cable_start_point': usage.cable_start_point,
            'cable_end_point': usage.cable_end_point,
            'wastage_calculated': usage.wastage_calculated,
            'line_details_id': usage.line_details_id,
            'telephone_no': line.telephone_no if line else None,
            'customer_name': line.name if line else None,
            'dp': line.dp if line else None,
        }
        for usage, line in rows
    ]
    return payload


def _ensure_unique_number(db: Session, drum_number: str, *, exclude_id: int | None = None) -> None:
    stmt = select(DrumTracking.id).where(DrumTracking.drum_number == drum_number)
    if exclude_id is not None:
        stmt = stmt.where(DrumTracking.id != exclude_id)
    if db.execute(stmt).first():
        raise ValidationError(f'Drum number {drum_number} already exists', fields=['drum_number'])


def create_drum(
    db: Session,
    *,
    actor: Principal,
    drum_number: str,
    initial_quantity: Decimal,
    item_id: int | None = None,
    received_date: date | None = None,
    ip: str | None = None,
) -> DrumTracking:
    ensure_authorized(actor, Role.MODERATOR)
    number = (drum_number or '').strip()
    if not number:
        raise ValidationError('Drum number is required', fields=['drum_number'])
    if initial_quantity is None or initial_quantity <= 0:
        raise ValidationError('Initial quantity must be greater than zero', fields=['initial_quantity'])
    if item_id is not None and db.get(InventoryItem, item_id) is None:
        raise NotFoundError('Inventory item', item_id)
    _ensure_unique_number(db, number)

    drum = DrumTracking(
        drum_number=number,
        item_id=item_id,
        initial_quantity=initial_quantity,
        current_quantity=initial_quantity,
        wastage_calculation_method=WastageMethod.AUTOMATIC,
        status=DrumStatus.ACTIVE,
        received_date=received_date,
    )
    db.add(drum)
    db.flush()
    log_audit(
        db,
        actor_principal_id=actor.id,
        action='drum.create',
        entity_type='drum',
        entity_id=drum.id,
        ip=ip,
        metadata={'drum_number': number, 'initial_quantity': initial_quantity},
    )
    return drum


def update_drum(
    db: Session,
    drum_id: int,
    *,
    actor: Principal,
    drum_number: str | None = None,
    initial_quantity: Decimal | None = None,
    received_date: date | None = None,
    retire: bool | None = None,
    ip: str | None = None,
) -> DrumProjection:
    ensure_authorized(actor, Role.MODERATOR)
    drum = _get_drum(db, drum_id, lock=True)
    changes: dict = {}
    if drum_number is not None:
        number = drum_number.strip()
        if not number:
            raise ValidationError('Drum number is required', fields=['drum_number'])
        if number != drum.drum_number:
            _ensure_unique_number(db, number, exclude_id=drum.id)
            changes['drum_number'] = number
    if initial_quantity is not None:
        if initial_quantity <= 0:
            raise ValidationError('Initial quantity must be greater than zero', fields=['initial_quantity'])
        changes['initial_quantity'] = initial_quantity
    if received_date is not None:
        changes['received_date'] = received_date

    for key, value in changes.items():
        setattr(drum, key, value)
    if retire is True:
        drum.status = DrumStatus.RETIRED
        changes['status'] = DrumStatus.RETIRED
    elif retire is False and drum.status == DrumStatus.RETIRED:
        # Unretiring lets the projection decide between active and depleted.
        drum.status = DrumStatus.ACTIVE
        changes['status'] = 'reopened'

    if 'initial_quantity' in changes:
        # The cached quantity must never sit above a lowered initial quantity.
        drum.current_quantity = min(drum.current_quantity, drum.initial_quantity)
    projection = sync_drum_projection(db, drum)
    log_audit(
        db,
        actor_principal_id=actor.id,
        action='drum.update',
        entity_type='drum',
        entity_id=drum.id,
        ip=ip,
        metadata=changes,
    )
    return projection


def delete_drum(db: Session, drum_id: int, *, actor: Principal, ip: str | None = None) -> None:
    ensure_authorized(actor, Role.ADMIN)
    drum = _get_drum(db, drum_id, lock=True)
    removed = db.execute(delete(DrumUsage).where(DrumUsage.drum_id == drum.id)).rowcount
    db.delete(drum)
    db.flush()
    log_audit(
        db,
        actor_principal_id=actor.id,
        action='drum.delete',
        entity_type='drum',
        entity_id=drum_id,
        ip=ip,
        metadata={'drum_number': drum.drum_number, 'usages_removed': removed},
    )
    logger.info('Drum %s deleted with %s usage rows', drum.drum_number, removed)


def record_usage(
    db: Session,
    *,
    actor: Principal,
    drum_id: int,
    quantity_used: Decimal,
    usage_date: date | None = None,
    line_details_id: int | None = None,
    cable_start_point: Decimal | None = None,
    cable_end_point: Decimal | None = None,
    wastage_calculated: Decimal = ZERO,
    ip: str | None = None,
) -> tuple[DrumUsage, DrumProjection]:
    ensure_authorized(actor, Role.MODERATOR)
    if quantity_used is None or quantity_used < 0:
        raise ValidationError('Quantity used cannot be negative', fields=['quantity_used'])
    if wastage_calculated is None or wastage_calculated < 0:
        raise ValidationError('Wastage cannot be negative', fields=['wastage_calculated'])
    drum = _get_drum(db, drum_id, lock=True)
    if drum.status == DrumStatus.RETIRED:
        raise ValidationError(f'Drum {drum.drum_number} is retired', fields=['drum_id'])

    usage = DrumUsage(
        drum_id=drum.id,
        line_details_id=line_details_id,
        quantity_used=quantity_used,
        usage_date=usage_date or _now().date(),
        cable_start_point=cable_start_point,
        cable_end_point=cable_end_point,
        wastage_calculated=wastage_calculated,
    )
    db.add(usage)
    projection = sync_drum_projection(db, drum)
    log_audit(
        db,
        actor_principal_id=actor.id,
        action='drum.usage.create',
        entity_type='drum',
        entity_id=drum.id,
        ip=ip,
        metadata={'usage_id': usage.id, 'quantity_used': quantity_used, 'line_details_id': line_details_id},
    )
    if projection.overdrawn > 0:
        logger.warning('Drum %s overdrawn by %s', drum.drum_number, projection.overdrawn)
    return usage, projection


def last_end_point(db: Session, drum_id: int) -> Decimal | None:
    return db.execute(
        select(DrumUsage.cable_end_point)
        .where(DrumUsage.drum_id == drum_id)
        .order_by(DrumUsage.usage_date.desc(), DrumUsage.id.desc())
        .limit(1)
    ).scalar_one_or_none()


def delete_usage(db: Session, usage_id: int, *, actor: Principal, ip: str | None = None) -> DrumProjection:
    ensure_authorized(actor, Role.MODERATOR)
    usage = db.get(DrumUsage, usage_id)
    if usage is None:
        raise NotFoundError('Drum usage', usage_id)
    drum = _get_drum(db, usage.drum_id, lock=True)
    quantity_used = usage.quantity_used
    db.delete(usage)
    projection = sync_drum_projection(db, drum)
    log_audit(
        db,
        actor_principal_id=actor.id,
        action='drum.usage.delete',
        entity_type='drum',
        entity_id=drum.id,
        ip=ip,
        metadata={'usage_id': usage_id, 'quantity_used': quantity_used},
    )
    return projection


def update_wastage_settings(
    db: Session,
    drum_id: int,
    *,
    actor: Principal,
    method: WastageMethod,
    manual_override: Decimal | None = None,
    ip: str | None = None,
) -> DrumProjection:
    ensure_authorized(actor, Role.MODERATOR)
    drum = _get_drum(db, drum_id, lock=True)
    if method == WastageMethod.MANUAL_OVERRIDE:
        current = project(db, drum)
        drum.manual_wastage_override = validate_manual_override(
            manual_override, drum.initial_quantity, current.total_used
        )
    else:
        drum.manual_wastage_override = None
    drum.wastage_calculation_method = method
    projection = sync_drum_projection(db, drum)
    log_audit(
        db,
        actor_principal_id=actor.id,
        action='drum.wastage_settings',
        entity_type='drum',
        entity_id=drum.id,
        ip=ip,
        metadata={'method': method, 'manual_override': drum.manual_wastage_override},
    )
    return projection


def segment_report(db: Session, drum_id: int) -> SegmentReport:
    drum = _get_drum(db, drum_id)
    return analyze_segments(_usage_inputs(db, drum.id), drum.initial_quantity)
