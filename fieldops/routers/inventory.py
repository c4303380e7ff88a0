from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from fieldops.auth import Principal, Role, get_current_principal, require_role
from fieldops.db import get_db
from fieldops.dependencies import get_client_ip
from fieldops.schemas import InvoiceCreate, ItemCreate, WasteReport
from fieldops.services import inventory_service
from fieldops.services.inventory_service import InvoiceLine, WasteEntry

router = APIRouter(prefix='/inventory', tags=['inventory'])
moderator_access = require_role(Role.MODERATOR)


@router.get('/items')
def list_items(
    category: str | None = None,
    search: str | None = None,
    low_stock: bool = False,
    _: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return {'data': inventory_service.list_items(db, category=category, search=search, low_stock_only=low_stock)}


@router.post('/items', status_code=201)
def create_item(
    payload: ItemCreate,
    request: Request,
    principal: Principal = Depends(moderator_access),
    db: Session = Depends(get_db),
):
    item = inventory_service.create_item(db, actor=principal, ip=get_client_ip(request), **payload.model_dump())
    db.commit()
    return {'data': inventory_service.get_item(db, item.id)}


@router.get('/items/{item_id}')
def get_item(item_id: int, _: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    return {'data': inventory_service.get_item(db, item_id)}


@router.get('/stats')
def stats(_: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    return {'data': inventory_service.inventory_stats(db)}


@router.get('/invoices')
def list_invoices(
    search: str | None = None,
    _: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return {'data': inventory_service.list_invoices(db, search=search)}


@router.post('/invoices', status_code=201)
def issue_invoice(
    payload: InvoiceCreate,
    request: Request,
    principal: Principal = Depends(moderator_access),
    db: Session = Depends(get_db),
):
    invoice = inventory_service.issue_invoice(
        db,
        actor=principal,
        lines=[InvoiceLine(**line.model_dump()) for line in payload.items],
        invoice_date=payload.invoice_date,
        invoice_number=payload.invoice_number,
        warehouse=payload.warehouse,
        issued_by=payload.issued_by,
        drawn_by=payload.drawn_by,
        ip=get_client_ip(request),
    )
    db.commit()
    return {'data': inventory_service.get_invoice(db, invoice.id)}


@router.get('/invoices/{invoice_id}')
def get_invoice(invoice_id: int, _: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    return {'data': inventory_service.get_invoice(db, invoice_id)}


@router.delete('/invoices/{invoice_id}')
def delete_invoice(
    invoice_id: int,
    request: Request,
    principal: Principal = Depends(moderator_access),
    db: Session = Depends(get_db),
):
    inventory_service.delete_invoice(db, invoice_id, actor=principal, ip=get_client_ip(request))
    db.commit()
    return {'success': True}


@router.get('/waste')
def list_waste(
    item_id: int | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    _: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return {'data': inventory_service.list_waste(db, item_id=item_id, start_date=start_date, end_date=end_date)}


@router.post('/waste', status_code=201)
def report_waste(
    payload: WasteReport,
    request: Request,
    principal: Principal = Depends(moderator_access),
    db: Session = Depends(get_db),
):
    records = inventory_service.report_waste(
        db,
        actor=principal,
        entries=[WasteEntry(**entry.model_dump()) for entry in payload.entries],
        waste_date=payload.waste_date,
        ip=get_client_ip(request),
    )
    db.commit()
    return {'data': {'ids': [record.id for record in records], 'count': len(records)}}


@router.delete('/waste/{waste_id}')
def delete_waste(
    waste_id: int,
    request: Request,
    principal: Principal = Depends(moderator_access),
    db: Session = Depends(get_db),
):
    stock_after = inventory_service.delete_waste(db, waste_id, actor=principal, ip=get_client_ip(request))
    db.commit()
    return {'success': True, 'data': {'current_stock': stock_after}}
