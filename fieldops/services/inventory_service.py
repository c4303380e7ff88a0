from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import case, delete, func, or_, select, update
from sqlalchemy.orm import Session

from fieldops.auth import Principal, Role, ensure_authorized
from fieldops.config import settings
from fieldops.errors import MissingReferenceError, NotFoundError, ValidationError
from fieldops.models import (
    DrumStatus,
    DrumTracking,
    InventoryInvoice,
    InventoryInvoiceItem,
    InventoryItem,
    InvoiceStatus,
    WastageMethod,
    WasteTracking,
)
from fieldops.services.audit_service import log_audit
from fieldops.services.notification_service import notify_low_stock

logger = logging.getLogger(__name__)

ZERO = Decimal('0')


@dataclass(frozen=True)
class InvoiceLine:
    item_id: int
    quantity_issued: Decimal
    quantity_requested: Decimal | None = None
    description: str | None = None
    unit: str | None = None
    drum_number: str | None = None


@dataclass(frozen=True)
class WasteEntry:
    item_id: int
    quantity: Decimal
    waste_reason: str


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def is_drop_wire(item: InventoryItem) -> bool:
    return settings.drop_wire_item_keyword.lower() in (item.name or '').lower()


def _items_by_id(db: Session, item_ids: set[int]) -> dict[int, InventoryItem]:
    if not item_ids:
        return {}
    rows = db.execute(select(InventoryItem).where(InventoryItem.id.in_(item_ids))).scalars()
    return {row.id: row for row in rows}


def _require_items(db: Session, item_ids: list[int]) -> dict[int, InventoryItem]:
    found = _items_by_id(db, set(item_ids))
    missing = sorted({item_id for item_id in item_ids if item_id not in found})
    if missing:
        raise MissingReferenceError('inventory item', missing)
    return found


def increment_stock(db: Session, item_id: int, quantity: Decimal) -> None:
    db.execute(
        update(InventoryItem)
        .where(InventoryItem.id == item_id)
        .values(current_stock=InventoryItem.current_stock + quantity, updated_at=_now())
        .execution_options(synchronize_session='fetch')
    )


def decrement_stock_floored(db: Session, item_id: int, quantity: Decimal) -> None:
    db.execute(
        update(InventoryItem)
        .where(InventoryItem.id == item_id)
        .values(
            current_stock=case(
                (InventoryItem.current_stock > quantity, InventoryItem.current_stock - quantity),
                else_=ZERO,
            ),
            updated_at=_now(),
        )
        .execution_options(synchronize_session='fetch')
    )


def _current_stock(db: Session, item_id: int) -> Decimal:
    return db.execute(select(InventoryItem.current_stock).where(InventoryItem.id == item_id)).scalar_one()


def _item_payload(item: InventoryItem) -> dict:
    return {
        'id': item.id,
        'name': item.name,
        'category': item.category,
        'unit': item.unit,
        'current_stock': item.current_stock,
        'reorder_level': item.reorder_level,
        'serial_no': item.serial_no,
        'drum_size': item.drum_size,
        'low_stock': item.current_stock <= item.reorder_level,
        'updated_at': item.updated_at,
    }


def create_item(
    db: Session,
    *,
    actor: Principal,
    name: str,
    category: str | None = None,
    unit: str = 'pcs',
    current_stock: Decimal = ZERO,
    reorder_level: Decimal = ZERO,
    serial_no: str | None = None,
    drum_size: Decimal | None = None,
    ip: str | None = None,
) -> InventoryItem:
    ensure_authorized(actor, Role.MODERATOR)
    clean_name = (name or '').strip()
    if not clean_name:
        raise ValidationError('Item name is required', fields=['name'])
    if current_stock < 0:
        raise ValidationError('Stock cannot be negative', fields=['current_stock'])
    if reorder_level < 0:
        raise ValidationError('Reorder level cannot be negative', fields=['reorder_level'])

    item = InventoryItem(
        name=clean_name,
        category=(category or '').strip() or None,
        unit=(unit or '').strip() or 'pcs',
        current_stock=current_stock,
        reorder_level=reorder_level,
        serial_no=(serial_no or '').strip() or None,
        drum_size=drum_size,
    )
    db.add(item)
    db.flush()
    log_audit(
        db,
        actor_principal_id=actor.id,
        action='inventory_item.create',
        entity_type='inventory_item',
        entity_id=item.id,
        ip=ip,
        metadata={'name': item.name, 'current_stock': current_stock},
    )
    return item


def get_item(db: Session, item_id: int) -> dict:
    item = db.get(InventoryItem, item_id)
    if item is None:
        raise NotFoundError('Inventory item', item_id)
    return _item_payload(item)


def list_items(
    db: Session,
    *,
    category: str | None = None,
    search: str | None = None,
    low_stock_only: bool = False,
) -> list[dict]:
    stmt = select(InventoryItem)
    if category:
        stmt = stmt.where(InventoryItem.category == category)
    term = (search or '').strip()
    if term:
        stmt = stmt.where(or_(InventoryItem.name.ilike(f'%{term}%'), InventoryItem.serial_no.ilike(f'%{term}%')))
    if low_stock_only:
        stmt = stmt.where(InventoryItem.current_stock <= InventoryItem.reorder_level)
    items = db.execute(stmt.order_by(InventoryItem.name.asc())).scalars().all()
    return [_item_payload(item) for item in items]


def inventory_stats(db: Session) -> dict:
    total_items = db.execute(select(func.count(InventoryItem.id))).scalar_one()
    low_stock = db.execute(
        select(func.count(InventoryItem.id)).where(InventoryItem.current_stock <= InventoryItem.reorder_level)
    ).scalar_one()
    total_waste = db.execute(select(func.coalesce(func.sum(WasteTracking.quantity), 0))).scalar_one()
    active_drums = db.execute(
        select(func.count(DrumTracking.id)).where(DrumTracking.status == DrumStatus.ACTIVE)
    ).scalar_one()
    invoices = db.execute(select(func.count(InventoryInvoice.id))).scalar_one()
    return {
        'total_items': total_items,
        'low_stock_items': low_stock,
        'total_waste_quantity': Decimal(str(total_waste)),
        'active_drums': active_drums,
        'total_invoices': invoices,
    }


def next_invoice_number(db: Session, year: int) -> str:
    prefix = f'INV-{year}-'
    numbers = db.execute(
        select(InventoryInvoice.invoice_number).where(InventoryInvoice.invoice_number.like(f'{prefix}%'))
    ).scalars()
    highest = 0
    for number in numbers:
        suffix = number[len(prefix) :]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return f'{prefix}{highest + 1:04d}'


def _validate_invoice_lines(db: Session, lines: list[InvoiceLine]) -> dict[int, InventoryItem]:
    if not lines:
        raise ValidationError('Invoice needs at least one item', fields=['items'])
    for index, line in enumerate(lines):
        if line.quantity_issued is None or line.quantity_issued < 0:
            raise ValidationError(f'Item {index + 1}: quantity issued cannot be negative', fields=['quantity_issued'])
    items = _require_items(db, [line.item_id for line in lines])

    drum_numbers = [
        line.drum_number.strip()
        for line in lines
        if line.drum_number and line.drum_number.strip() and is_drop_wire(items[line.item_id])
    ]
    if len(drum_numbers) != len(set(drum_numbers)):
        raise ValidationError('Drum numbers must be unique within an invoice', fields=['drum_number'])
    if drum_numbers:
        taken = db.execute(
            select(DrumTracking.drum_number).where(DrumTracking.drum_number.in_(drum_numbers))
        ).scalars().all()
        if taken:
            raise ValidationError(f'Drum number(s) already exist: {", ".join(sorted(taken))}', fields=['drum_number'])
    return items


def issue_invoice(
    db: Session,
    *,
    actor: Principal,
    lines: list[InvoiceLine],
    invoice_date: date | None = None,
    invoice_number: str | None = None,
    warehouse: str | None = None,
    issued_by: str | None = None,
    drawn_by: str | None = None,
    ip: str | None = None,
) -> InventoryInvoice:
    """Create an invoice, add the issued quantities to stock and open drums for drop wire cable.

    Every referenced item is checked before anything is written; a single
    unknown item id aborts the whole invoice.
    """
    ensure_authorized(actor, Role.MODERATOR)
    items = _validate_invoice_lines(db, lines)
    invoice_date = invoice_date or _now().date()
    number = (invoice_number or '').strip() or next_invoice_number(db, invoice_date.year)
    if db.execute(select(InventoryInvoice.id).where(InventoryInvoice.invoice_number == number)).first():
        raise ValidationError(f'Invoice number {number} already exists', fields=['invoice_number'])

    invoice = InventoryInvoice(
        invoice_number=number,
        warehouse=warehouse,
        invoice_date=invoice_date,
        issued_by=issued_by,
        drawn_by=drawn_by,
        total_items=len(lines),
        status=InvoiceStatus.ISSUED,
        created_by_id=actor.id,
    )
    db.add(invoice)
    db.flush()

    drums_created = []
    for line in lines:
        item = items[line.item_id]
        drum_number = (line.drum_number or '').strip() or None
        db.add(
            InventoryInvoiceItem(
                invoice_id=invoice.id,
                item_id=item.id,
                description=line.description or item.name,
                unit=line.unit or item.unit,
                quantity_requested=line.quantity_requested if line.quantity_requested is not None else line.quantity_issued,
                quantity_issued=line.quantity_issued,
                drum_number=drum_number,
            )
        )
        increment_stock(db, item.id, line.quantity_issued)

        if drum_number and is_drop_wire(item) and line.quantity_issued > 0:
            db.add(
                DrumTracking(
                    drum_number=drum_number,
                    item_id=item.id,
                    initial_quantity=line.quantity_issued,
                    current_quantity=line.quantity_issued,
                    wastage_calculation_method=WastageMethod.AUTOMATIC,
                    status=DrumStatus.ACTIVE,
                    received_date=invoice_date,
                )
            )
            drums_created.append(drum_number)
    db.flush()

    log_audit(
        db,
        actor_principal_id=actor.id,
        action='inventory_invoice.issue',
        entity_type='inventory_invoice',
        entity_id=invoice.id,
        ip=ip,
        metadata={
            'invoice_number': number,
            'items': [{'item_id': line.item_id, 'quantity_issued': line.quantity_issued} for line in lines],
            'drums_created': drums_created,
        },
    )
    logger.info('Invoice %s issued with %s items, %s drums', number, len(lines), len(drums_created))
    return invoice


def _invoice_payload(invoice: InventoryInvoice, items: list[tuple[InventoryInvoiceItem, str | None]] | None = None) -> dict:
    payload = {
        'id': invoice.id,
        'invoice_number': invoice.invoice_number,
        'warehouse': invoice.warehouse,
        'date': invoice.invoice_date,
        'issued_by': invoice.issued_by,
        'drawn_by': invoice.drawn_by,
        'total_items': invoice.total_items,
        'status': invoice.status.value,
        'created_at': invoice.created_at,
    }
    if items is not None:
        payload['items'] = [
            {
                'id': row.id,
                'item_id': row.item_id,
                'item_name': item_name,
                'description': row.description,
                'unit': row.unit,
                'quantity_requested': row.quantity_requested,
                'quantity_issued': row.quantity_issued,
                'drum_number': row.drum_number,
            }
            for row, item_name in items
        ]
    return payload


def list_invoices(db: Session, *, search: str | None = None, limit: int = 100) -> list[dict]:
    stmt = select(InventoryInvoice)
    term = (search or '').strip()
    if term:
        stmt = stmt.where(
            or_(
                InventoryInvoice.invoice_number.ilike(f'%{term}%'),
                InventoryInvoice.warehouse.ilike(f'%{term}%'),
            )
        )
    invoices = db.execute(
        stmt.order_by(InventoryInvoice.invoice_date.desc(), InventoryInvoice.id.desc()).limit(limit)
    ).scalars().all()
    return [_invoice_payload(invoice) for invoice in invoices]


def get_invoice(db: Session, invoice_id: int) -> dict:
    invoice = db.get(InventoryInvoice, invoice_id)
    if invoice is None:
        raise NotFoundError('Invoice', invoice_id)
    rows = db.execute(
        select(InventoryInvoiceItem, InventoryItem.name)
        .outerjoin(InventoryItem, InventoryItem.id == InventoryInvoiceItem.item_id)
        .where(InventoryInvoiceItem.invoice_id == invoice_id)
        .order_by(InventoryInvoiceItem.id.asc())
    ).all()
    return _invoice_payload(invoice, [(row, name) for row, name in rows])


def delete_invoice(db: Session, invoice_id: int, *, actor: Principal, ip: str | None = None) -> None:
    """Remove an invoice and its items. Stock added at issuance stays, as do drums it opened."""
    ensure_authorized(actor, Role.MODERATOR)
    invoice = db.get(InventoryInvoice, invoice_id)
    if invoice is None:
        raise NotFoundError('Invoice', invoice_id)
    removed = db.execute(delete(InventoryInvoiceItem).where(InventoryInvoiceItem.invoice_id == invoice_id)).rowcount
    number = invoice.invoice_number
    db.delete(invoice)
    db.flush()
    log_audit(
        db,
        actor_principal_id=actor.id,
        action='inventory_invoice.delete',
        entity_type='inventory_invoice',
        entity_id=invoice_id,
        ip=ip,
        metadata={'invoice_number': number, 'items_removed': removed},
    )


def report_waste(
    db: Session,
    *,
    actor: Principal,
    entries: list[WasteEntry],
    waste_date: date | None = None,
    ip: str | None = None,
) -> list[WasteTracking]:
    ensure_authorized(actor, Role.MODERATOR)
    if not entries:
        raise ValidationError('At least one waste entry is required', fields=['entries'])
    for index, entry in enumerate(entries):
        if entry.quantity is None or entry.quantity <= 0:
            raise ValidationError(f'Entry {index + 1}: quantity must be greater than zero', fields=['quantity'])
        if not (entry.waste_reason or '').strip():
            raise ValidationError(f'Entry {index + 1}: waste reason is required', fields=['waste_reason'])
    items = _require_items(db, [entry.item_id for entry in entries])
    waste_date = waste_date or _now().date()

    records: list[WasteTracking] = []
    for entry in entries:
        record = WasteTracking(
            item_id=entry.item_id,
            quantity=entry.quantity,
            waste_reason=entry.waste_reason.strip(),
            waste_date=waste_date,
            reported_by_id=actor.id,
        )
        db.add(record)
        records.append(record)
        decrement_stock_floored(db, entry.item_id, entry.quantity)
    db.flush()

    for item_id in {entry.item_id for entry in entries}:
        notify_low_stock(db, items[item_id], _current_stock(db, item_id))
    log_audit(
        db,
        actor_principal_id=actor.id,
        action='waste.report',
        entity_type='waste',
        ip=ip,
        metadata={'entries': [{'item_id': e.item_id, 'quantity': e.quantity} for e in entries]},
    )
    return records


def delete_waste(db: Session, waste_id: int, *, actor: Principal, ip: str | None = None) -> Decimal:
    """Delete a waste record and give its quantity back to stock. Returns the stock afterwards."""
    ensure_authorized(actor, Role.MODERATOR)
    record = db.execute(
        select(WasteTracking).where(WasteTracking.id == waste_id).with_for_update()
    ).scalar_one_or_none()
    if record is None:
        raise NotFoundError('Waste record', waste_id)
    item_id = record.item_id
    quantity = record.quantity
    increment_stock(db, item_id, quantity)
    db.delete(record)
    db.flush()
    log_audit(
        db,
        actor_principal_id=actor.id,
        action='waste.delete',
        entity_type='waste',
        entity_id=waste_id,
        ip=ip,
        metadata={'item_id': item_id, 'quantity_restored': quantity},
    )
    return _current_stock(db, item_id)


def list_waste(
    db: Session,
    *,
    item_id: int | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    limit: int = 200,
) -> list[dict]:
    stmt = select(WasteTracking, InventoryItem.name, InventoryItem.unit).join(
        InventoryItem, InventoryItem.id == WasteTracking.item_id
    )
    if item_id is not None:
        stmt = stmt.where(WasteTracking.item_id == item_id)
    if start_date is not None:
        stmt = stmt.where(WasteTracking.waste_date >= start_date)
    if end_date is not None:
        stmt = stmt.where(WasteTracking.waste_date <= end_date)
    rows = db.execute(stmt.order_by(WasteTracking.waste_date.desc(), WasteTracking.id.desc()).limit(limit)).all()
    return [
        {
            'id': record.id,
            'item_id': record.item_id,
            'item_name': name,
            'unit': unit,
            'quantity': record.quantity,
            'waste_reason': record.waste_reason,
            'waste_date': record.waste_date,
            'reported_by_id': record.reported_by_id,
        }
        for record, name, unit in rows
    ]
