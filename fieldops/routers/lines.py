from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from fieldops.auth import Principal, Role, get_current_principal, require_role
from fieldops.db import get_db
from fieldops.dependencies import get_client_ip
from fieldops.models import LineStatus
from fieldops.schemas import LineCreate, LineUpdate
from fieldops.services import line_service
from fieldops.services.cable_math_service import total_cable

router = APIRouter(prefix='/lines', tags=['lines'])
moderator_access = require_role(Role.MODERATOR)


@router.get('')
def list_lines(
    status: LineStatus | None = None,
    search: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    page: int = 1,
    page_size: int = 50,
    _: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return {
        'data': line_service.list_lines(
            db,
            status=status,
            search=search,
            start_date=start_date,
            end_date=end_date,
            page=page,
            page_size=page_size,
        )
    }


@router.get('/cable-total')
def cable_total(
    start: str | None = None,
    middle: str | None = None,
    end: str | None = None,
    _: Principal = Depends(get_current_principal),
):
    return {'data': {'total_cable': total_cable(start, middle, end)}}


@router.post('', status_code=201)
def create_line(
    payload: LineCreate,
    request: Request,
    principal: Principal = Depends(moderator_access),
    db: Session = Depends(get_db),
):
    line = line_service.create_line(db, actor=principal, ip=get_client_ip(request), **payload.model_dump())
    db.commit()
    return {'data': line_service.get_line(db, line.id)}


@router.get('/{line_id}')
def get_line(line_id: int, _: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    return {'data': line_service.get_line(db, line_id)}


@router.patch('/{line_id}')
def update_line(
    line_id: int,
    payload: LineUpdate,
    request: Request,
    principal: Principal = Depends(moderator_access),
    db: Session = Depends(get_db),
):
    changes = payload.model_dump(exclude_unset=True)
    worker_ids = changes.pop('worker_ids', None)
    changes.update(changes.pop('materials', None) or {})
    line_service.update_line(
        db, line_id, actor=principal, changes=changes, worker_ids=worker_ids, ip=get_client_ip(request)
    )
    db.commit()
    return {'data': line_service.get_line(db, line_id)}


@router.delete('/{line_id}')
def delete_line(
    line_id: int,
    request: Request,
    principal: Principal = Depends(moderator_access),
    db: Session = Depends(get_db),
):
    line_service.delete_line(db, line_id, actor=principal, ip=get_client_ip(request))
    db.commit()
    return {'success': True}
