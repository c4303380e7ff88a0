from __future__ import annotations

import unittest
from decimal import Decimal

from sqlalchemy import func, select

from db_support import LedgerTestCase, add_item
from fieldops.errors import ForbiddenError, MissingReferenceError, ValidationError
from fieldops.models import (
    DrumStatus,
    DrumTracking,
    InventoryInvoice,
    InventoryInvoiceItem,
    InventoryItem,
    Notification,
    WasteTracking,
)
from fieldops.services import inventory_service
from fieldops.services.inventory_service import InvoiceLine, WasteEntry


class InventoryStockLedgerTests(LedgerTestCase):
    def _stock(self, item_id: int) -> Decimal:
        return self.db.execute(select(InventoryItem.current_stock).where(InventoryItem.id == item_id)).scalar_one()

    def _count(self, model) -> int:
        return self.db.execute(select(func.count()).select_from(model)).scalar_one()

    def test_invoice_adds_issued_quantity_to_stock(self) -> None:
        clips = add_item(self.db, 'C-Clip', '10')
        hooks = add_item(self.db, 'L-Hook', '0')

        invoice = inventory_service.issue_invoice(
            self.db,
            actor=self.moderator,
            invoice_date=self.today(),
            lines=[
                InvoiceLine(item_id=clips.id, quantity_issued=Decimal('25')),
                InvoiceLine(item_id=hooks.id, quantity_issued=Decimal('4'), quantity_requested=Decimal('5')),
            ],
        )
        self.db.commit()

        self.assertEqual(invoice.invoice_number, 'INV-2024-0001')
        self.assertEqual(invoice.total_items, 2)
        self.assertEqual(self._stock(clips.id), Decimal('35'))
        self.assertEqual(self._stock(hooks.id), Decimal('4'))
        self.assertEqual(self._count(InventoryInvoiceItem), 2)

    def test_invoice_numbers_increase_within_a_year(self) -> None:
        item = add_item(self.db, 'Casing', '0')
        for _ in range(2):
            inventory_service.issue_invoice(
                self.db,
                actor=self.moderator,
                invoice_date=self.today(),
                lines=[InvoiceLine(item_id=item.id, quantity_issued=Decimal('1'))],
            )
        self.assertEqual(inventory_service.next_invoice_number(self.db, 2024), 'INV-2024-0003')
        self.assertEqual(inventory_service.next_invoice_number(self.db, 2025), 'INV-2025-0001')

    def test_drop_wire_line_with_drum_number_opens_a_drum(self) -> None:
        cable = add_item(self.db, 'Drop Wire Cable', '0', unit='m')

        inventory_service.issue_invoice(
            self.db,
            actor=self.moderator,
            invoice_date=self.today(),
            lines=[InvoiceLine(item_id=cable.id, quantity_issued=Decimal('1000'), drum_number='DR-001')],
        )

        drum = self.db.execute(select(DrumTracking).where(DrumTracking.drum_number == 'DR-001')).scalar_one()
        self.assertEqual(drum.initial_quantity, Decimal('1000'))
        self.assertEqual(drum.current_quantity, Decimal('1000'))
        self.assertEqual(drum.status, DrumStatus.ACTIVE)
        self.assertEqual(drum.received_date, self.today())
        self.assertEqual(self._stock(cable.id), Decimal('1000'))

    def test_drum_number_on_other_items_is_ignored(self) -> None:
        clips = add_item(self.db, 'C-Clip', '0')
        inventory_service.issue_invoice(
            self.db,
            actor=self.moderator,
            lines=[InvoiceLine(item_id=clips.id, quantity_issued=Decimal('3'), drum_number='DR-X')],
        )
        self.assertEqual(self._count(DrumTracking), 0)

    def test_missing_item_aborts_the_whole_invoice(self) -> None:
        first = add_item(self.db, 'Retainer', '10')
        third = add_item(self.db, 'Drop Wire Cable', '0', unit='m')
        self.db.commit()

        with self.assertRaises(MissingReferenceError) as ctx:
            inventory_service.issue_invoice(
                self.db,
                actor=self.moderator,
                lines=[
                    InvoiceLine(item_id=first.id, quantity_issued=Decimal('5')),
                    InvoiceLine(item_id=9999, quantity_issued=Decimal('5')),
                    InvoiceLine(item_id=third.id, quantity_issued=Decimal('500'), drum_number='DR-9'),
                ],
            )
        self.db.rollback()

        self.assertEqual(ctx.exception.missing_ids, [9999])
        self.assertEqual(self._count(InventoryInvoice), 0)
        self.assertEqual(self._count(InventoryInvoiceItem), 0)
        self.assertEqual(self._count(DrumTracking), 0)
        self.assertEqual(self._stock(first.id), Decimal('10'))
        self.assertEqual(self._stock(third.id), Decimal('0'))

    def test_existing_drum_number_is_rejected(self) -> None:
        cable = add_item(self.db, 'Drop wire cable 2C', '0', unit='m')
        line = InvoiceLine(item_id=cable.id, quantity_issued=Decimal('100'), drum_number='DR-1')
        inventory_service.issue_invoice(self.db, actor=self.moderator, lines=[line])

        with self.assertRaises(ValidationError):
            inventory_service.issue_invoice(self.db, actor=self.moderator, lines=[line])

    def test_invoice_delete_keeps_stock(self) -> None:
        item = add_item(self.db, 'Pole', '2')
        invoice = inventory_service.issue_invoice(
            self.db, actor=self.moderator, lines=[InvoiceLine(item_id=item.id, quantity_issued=Decimal('8'))]
        )

        inventory_service.delete_invoice(self.db, invoice.id, actor=self.moderator)
        self.db.commit()

        self.assertEqual(self._count(InventoryInvoice), 0)
        self.assertEqual(self._count(InventoryInvoiceItem), 0)
        self.assertEqual(self._stock(item.id), Decimal('10'))

    def test_waste_floors_stock_at_zero(self) -> None:
        item = add_item(self.db, 'FAC', '5')

        inventory_service.report_waste(
            self.db,
            actor=self.moderator,
            entries=[WasteEntry(item_id=item.id, quantity=Decimal('8'), waste_reason='Damaged')],
        )

        self.assertEqual(self._stock(item.id), Decimal('0'))

    def test_waste_delete_restores_stock(self) -> None:
        item = add_item(self.db, 'Tag Tie', '50')
        [record] = inventory_service.report_waste(
            self.db,
            actor=self.moderator,
            entries=[WasteEntry(item_id=item.id, quantity=Decimal('12'), waste_reason='Cut short')],
        )
        self.assertEqual(self._stock(item.id), Decimal('38'))

        stock_after = inventory_service.delete_waste(self.db, record.id, actor=self.moderator)

        self.assertEqual(stock_after, Decimal('50'))
        self.assertEqual(self._count(WasteTracking), 0)

    def test_waste_delete_after_floor_adds_back_full_quantity(self) -> None:
        item = add_item(self.db, 'U-Clip', '5')
        [record] = inventory_service.report_waste(
            self.db,
            actor=self.moderator,
            entries=[WasteEntry(item_id=item.id, quantity=Decimal('8'), waste_reason='Lost')],
        )

        self.assertEqual(inventory_service.delete_waste(self.db, record.id, actor=self.moderator), Decimal('8'))

    def test_waste_batch_validates_before_writing(self) -> None:
        item = add_item(self.db, 'Conduit', '20')
        self.db.commit()

        with self.assertRaises(MissingReferenceError):
            inventory_service.report_waste(
                self.db,
                actor=self.moderator,
                entries=[
                    WasteEntry(item_id=item.id, quantity=Decimal('5'), waste_reason='Bent'),
                    WasteEntry(item_id=4242, quantity=Decimal('1'), waste_reason='Bent'),
                ],
            )
        self.db.rollback()

        self.assertEqual(self._stock(item.id), Decimal('20'))
        self.assertEqual(self._count(WasteTracking), 0)

    def test_waste_below_reorder_level_raises_notification(self) -> None:
        item = add_item(self.db, 'S-Rosette', '12', reorder_level='10')

        inventory_service.report_waste(
            self.db,
            actor=self.moderator,
            entries=[WasteEntry(item_id=item.id, quantity=Decimal('3'), waste_reason='Cracked')],
        )

        self.assertEqual(self._count(Notification), 1)

    def test_user_role_cannot_report_waste(self) -> None:
        item = add_item(self.db, 'Nut Bolt', '10')

        with self.assertRaises(ForbiddenError):
            inventory_service.report_waste(
                self.db,
                actor=self.user,
                entries=[WasteEntry(item_id=item.id, quantity=Decimal('1'), waste_reason='x')],
            )

        self.assertEqual(self._count(WasteTracking), 0)
        self.assertEqual(self._stock(item.id), Decimal('10'))

    def test_stats(self) -> None:
        add_item(self.db, 'A', '1', reorder_level='5')
        add_item(self.db, 'B', '10', reorder_level='5')

        stats = inventory_service.inventory_stats(self.db)

        self.assertEqual(stats['total_items'], 2)
        self.assertEqual(stats['low_stock_items'], 1)
        self.assertEqual(stats['active_drums'], 0)


if __name__ == '__main__':
    unittest.main()
