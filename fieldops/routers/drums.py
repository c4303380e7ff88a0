from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from fieldops.auth import Principal, Role, get_current_principal, require_role
from fieldops.db import get_db
from fieldops.dependencies import get_client_ip
from fieldops.models import DrumStatus
from fieldops.schemas import DrumCreate, DrumUpdate, DrumUsageCreate, WastageSettingsIn
from fieldops.services import drum_service

router = APIRouter(prefix='/drums', tags=['drums'])
moderator_access = require_role(Role.MODERATOR)
admin_access = require_role(Role.ADMIN)


@router.get('')
def list_drums(
    status: DrumStatus | None = None,
    search: str | None = None,
    page: int = 1,
    page_size: int = 50,
    _: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return {'data': drum_service.list_drums(db, status=status, search=search, page=page, page_size=page_size)}


@router.post('', status_code=201)
def create_drum(
    payload: DrumCreate,
    request: Request,
    principal: Principal = Depends(moderator_access),
    db: Session = Depends(get_db),
):
    drum = drum_service.create_drum(db, actor=principal, ip=get_client_ip(request), **payload.model_dump())
    db.commit()
    return {'data': drum_service.get_drum(db, drum.id)}


@router.get('/{drum_id}')
def get_drum(drum_id: int, _: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    return {'data': drum_service.get_drum(db, drum_id)}


@router.patch('/{drum_id}')
def update_drum(
    drum_id: int,
    payload: DrumUpdate,
    request: Request,
    principal: Principal = Depends(moderator_access),
    db: Session = Depends(get_db),
):
    drum_service.update_drum(
        db,
        drum_id,
        actor=principal,
        drum_number=payload.drum_number,
        initial_quantity=payload.initial_quantity,
        received_date=payload.received_date,
        retire=payload.retired,
        ip=get_client_ip(request),
    )
    db.commit()
    return {'data': drum_service.get_drum(db, drum_id)}


@router.delete('/{drum_id}')
def delete_drum(
    drum_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    drum_service.delete_drum(db, drum_id, actor=principal, ip=get_client_ip(request))
    db.commit()
    return {'success': True}


@router.post('/{drum_id}/usage', status_code=201)
def record_usage(
    drum_id: int,
    payload: DrumUsageCreate,
    request: Request,
    principal: Principal = Depends(moderator_access),
    db: Session = Depends(get_db),
):
    usage, projection = drum_service.record_usage(
        db, actor=principal, drum_id=drum_id, ip=get_client_ip(request), **payload.model_dump()
    )
    db.commit()
    return {'data': {'usage_id': usage.id, 'projection': asdict(projection)}}


@router.delete('/usage/{usage_id}')
def delete_usage(
    usage_id: int,
    request: Request,
    principal: Principal = Depends(moderator_access),
    db: Session = Depends(get_db),
):
    projection = drum_service.delete_usage(db, usage_id, actor=principal, ip=get_client_ip(request))
    db.commit()
    return {'data': asdict(projection)}


@router.patch('/{drum_id}/wastage-settings')
def update_wastage_settings(
    drum_id: int,
    payload: WastageSettingsIn,
    request: Request,
    principal: Principal = Depends(moderator_access),
    db: Session = Depends(get_db),
):
    projection = drum_service.update_wastage_settings(
        db,
        drum_id,
        actor=principal,
        method=payload.wastage_calculation_method,
        manual_override=payload.manual_wastage_override,
        ip=get_client_ip(request),
    )
    db.commit()
    return {'data': asdict(projection)}


@router.get('/{drum_id}/segments')
def segments(drum_id: int, _: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    report = drum_service.segment_report(db, drum_id)
    payload = asdict(report)
    payload['used_segments'] = [{**seg, 'length': seg['end'] - seg['start']} for seg in payload['used_segments']]
    payload['gaps'] = [{**gap, 'length': gap['end'] - gap['start']} for gap in payload['gaps']]
    return {'data': payload}
