from __future__ import annotations

import unittest
from datetime import date
from decimal import Decimal

from sqlalchemy import func, select

from db_support import LedgerTestCase, add_worker
from fieldops.errors import ForbiddenError, InvalidTransitionError, ValidationError
from fieldops.models import (
    AdjustmentCategory,
    AdjustmentType,
    LineDetails,
    LineStatus,
    Notification,
    PaymentStatus,
    PaymentType,
    PayrollAdjustment,
    PayrollStatus,
    WorkerPayment,
)
from fieldops.services import line_service, payroll_service


class PayrollServiceTests(LedgerTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.salaried = add_worker(
            self.db, 'Nimal', payment_type=PaymentType.FIXED_MONTHLY, monthly_rate='10000'
        )
        self.installer = add_worker(self.db, 'Sunil', per_line_rate='650')
        self.period = payroll_service.create_period(
            self.db,
            actor=self.admin,
            name='March 2024',
            month=3,
            year=2024,
            start_date=date(2024, 3, 1),
            end_date=date(2024, 3, 31),
        )
        self.db.commit()

    def _payment_for(self, worker) -> WorkerPayment:
        return self.db.execute(
            select(WorkerPayment).where(
                WorkerPayment.payroll_period_id == self.period.id, WorkerPayment.worker_id == worker.id
            )
        ).scalar_one()

    def _adjust(self, payment, kind: AdjustmentType, amount: str, actor=None):
        return payroll_service.add_adjustment(
            self.db,
            actor=actor or self.moderator,
            worker_payment_id=payment.id,
            type=kind,
            category=AdjustmentCategory.OTHER,
            description=f'{kind.value} {amount}',
            amount=Decimal(amount),
        )

    def _completed_line(self, line_date: date, status: LineStatus = LineStatus.COMPLETED) -> None:
        line_service.create_line(
            self.db,
            actor=self.moderator,
            name='Customer',
            telephone_no='0771234567',
            line_date=line_date,
            status=status,
            worker_ids=[self.installer.id],
        )

    def test_per_line_pay_counts_completed_lines_in_period(self) -> None:
        self._completed_line(date(2024, 3, 2))
        self._completed_line(date(2024, 3, 30))
        self._completed_line(date(2024, 3, 10), status=LineStatus.PENDING)
        self._completed_line(date(2024, 4, 1))

        payroll_service.calculate_period(self.db, self.period.id, actor=self.moderator)

        payment = self._payment_for(self.installer)
        self.assertEqual(payment.lines_completed, 2)
        self.assertEqual(payment.base_amount, Decimal('1300.00'))
        self.assertEqual(self._payment_for(self.salaried).base_amount, Decimal('10000.00'))
        self.assertEqual(self.period.status, PayrollStatus.PROCESSING)
        self.assertEqual(self.period.total_amount, Decimal('11300.00'))

    def test_adjustments_drive_net_amount(self) -> None:
        payroll_service.calculate_period(self.db, self.period.id, actor=self.moderator)
        payment = self._payment_for(self.salaried)

        self._adjust(payment, AdjustmentType.BONUS, '500')
        deduction = self._adjust(payment, AdjustmentType.DEDUCTION, '200')

        self.assertEqual(payment.bonus_amount, Decimal('500.00'))
        self.assertEqual(payment.deduction_amount, Decimal('200.00'))
        self.assertEqual(payment.net_amount, Decimal('10300.00'))
        self.assertEqual(self.period.total_amount, Decimal('10300.00'))

        payroll_service.delete_adjustment(self.db, deduction.id, actor=self.moderator)

        self.assertEqual(payment.deduction_amount, Decimal('0.00'))
        self.assertEqual(payment.net_amount, Decimal('10500.00'))

    def test_recalculation_keeps_adjustments(self) -> None:
        payroll_service.calculate_period(self.db, self.period.id, actor=self.moderator)
        payment = self._payment_for(self.salaried)
        self._adjust(payment, AdjustmentType.BONUS, '250')
        self._completed_line(date(2024, 3, 20))

        payroll_service.calculate_period(self.db, self.period.id, actor=self.moderator)

        self.assertEqual(self._payment_for(self.salaried).net_amount, Decimal('10250.00'))
        self.assertEqual(self._payment_for(self.installer).lines_completed, 1)
        self.assertEqual(self.period.status, PayrollStatus.PROCESSING)
        self.assertEqual(self.period.total_amount, Decimal('10900.00'))
        self.assertEqual(self.db.execute(select(func.count()).select_from(WorkerPayment)).scalar_one(), 2)

    def test_user_role_cannot_add_adjustment(self) -> None:
        payroll_service.calculate_period(self.db, self.period.id, actor=self.moderator)
        payment = self._payment_for(self.salaried)
        self.db.commit()

        with self.assertRaises(ForbiddenError):
            self._adjust(payment, AdjustmentType.BONUS, '500', actor=self.user)

        self.assertEqual(self.db.execute(select(func.count()).select_from(PayrollAdjustment)).scalar_one(), 0)
        self.assertEqual(payment.net_amount, Decimal('10000.00'))

    def test_user_role_cannot_touch_periods(self) -> None:
        with self.assertRaises(ForbiddenError):
            payroll_service.calculate_period(self.db, self.period.id, actor=self.user)
        with self.assertRaises(ForbiddenError):
            payroll_service.create_period(
                self.db,
                actor=self.moderator,
                name='April 2024',
                month=4,
                year=2024,
                start_date=date(2024, 4, 1),
                end_date=date(2024, 4, 30),
            )
        self.assertEqual(self.period.status, PayrollStatus.DRAFT)

    def test_non_positive_adjustment_is_rejected(self) -> None:
        payroll_service.calculate_period(self.db, self.period.id, actor=self.moderator)
        with self.assertRaises(ValidationError):
            self._adjust(self._payment_for(self.salaried), AdjustmentType.BONUS, '0')

    def test_period_lifecycle(self) -> None:
        with self.assertRaises(InvalidTransitionError):
            payroll_service.approve_period(self.db, self.period.id, actor=self.moderator)

        payroll_service.calculate_period(self.db, self.period.id, actor=self.moderator)
        payroll_service.approve_period(self.db, self.period.id, actor=self.moderator)
        with self.assertRaises(InvalidTransitionError):
            payroll_service.calculate_period(self.db, self.period.id, actor=self.moderator)
        self.assertEqual(self._payment_for(self.salaried).status, PaymentStatus.APPROVED)

        payroll_service.mark_period_paid(self.db, self.period.id, actor=self.moderator, paid_date=date(2024, 4, 5))
        payment = self._payment_for(self.salaried)
        self.assertEqual(self.period.status, PayrollStatus.PAID)
        self.assertEqual(self.period.paid_date, date(2024, 4, 5))
        self.assertEqual(payment.status, PaymentStatus.PAID)

        with self.assertRaises(InvalidTransitionError):
            self._adjust(payment, AdjustmentType.BONUS, '10')
        with self.assertRaises(InvalidTransitionError):
            payroll_service.delete_period(self.db, self.period.id, actor=self.admin)

    def test_reopened_period_picks_up_corrections(self) -> None:
        self._completed_line(date(2024, 3, 5))
        payroll_service.calculate_period(self.db, self.period.id, actor=self.moderator)
        payroll_service.approve_period(self.db, self.period.id, actor=self.moderator)
        self._completed_line(date(2024, 3, 28))

        with self.assertRaises(ForbiddenError):
            payroll_service.reopen_period(self.db, self.period.id, actor=self.moderator)
        payroll_service.reopen_period(self.db, self.period.id, actor=self.admin)

        self.assertEqual(self.period.status, PayrollStatus.DRAFT)
        self.assertEqual(self._payment_for(self.installer).status, PaymentStatus.CALCULATED)

        payroll_service.calculate_period(self.db, self.period.id, actor=self.moderator)

        payment = self._payment_for(self.installer)
        self.assertEqual(payment.lines_completed, 2)
        self.assertEqual(payment.base_amount, Decimal('1300.00'))
        self.assertEqual(self.period.status, PayrollStatus.PROCESSING)

    def test_draft_and_paid_periods_cannot_be_reopened(self) -> None:
        with self.assertRaises(InvalidTransitionError):
            payroll_service.reopen_period(self.db, self.period.id, actor=self.admin)

        payroll_service.calculate_period(self.db, self.period.id, actor=self.moderator)
        payroll_service.approve_period(self.db, self.period.id, actor=self.moderator)
        payroll_service.mark_period_paid(self.db, self.period.id, actor=self.moderator)

        with self.assertRaises(InvalidTransitionError):
            payroll_service.reopen_period(self.db, self.period.id, actor=self.admin)

    def test_settled_payment_survives_recalculation(self) -> None:
        payroll_service.calculate_period(self.db, self.period.id, actor=self.moderator)
        payment = self._payment_for(self.installer)
        payroll_service.update_payment_status(self.db, payment.id, actor=self.moderator, status=PaymentStatus.PAID)
        self._completed_line(date(2024, 3, 12))

        payroll_service.calculate_period(self.db, self.period.id, actor=self.moderator)

        self.assertEqual(payment.lines_completed, 0)
        self.assertEqual(payment.base_amount, Decimal('0.00'))
        self.assertEqual(payment.status, PaymentStatus.PAID)

    def test_redated_line_is_paid_in_its_new_period(self) -> None:
        self._completed_line(date(2024, 3, 10))
        line_id = self.db.execute(select(LineDetails.id)).scalar_one()

        line_service.update_line(
            self.db, line_id, actor=self.moderator, changes={'line_date': date(2024, 4, 2)}
        )
        payroll_service.calculate_period(self.db, self.period.id, actor=self.moderator)

        self.assertEqual(self._payment_for(self.installer).lines_completed, 0)

        april = payroll_service.create_period(
            self.db,
            actor=self.admin,
            name='April 2024',
            month=4,
            year=2024,
            start_date=date(2024, 4, 1),
            end_date=date(2024, 4, 30),
        )
        payroll_service.calculate_period(self.db, april.id, actor=self.moderator)

        moved = self.db.execute(
            select(WorkerPayment).where(
                WorkerPayment.payroll_period_id == april.id, WorkerPayment.worker_id == self.installer.id
            )
        ).scalar_one()
        self.assertEqual(moved.lines_completed, 1)

    def test_payment_status_transitions(self) -> None:
        payroll_service.calculate_period(self.db, self.period.id, actor=self.moderator)
        payment = self._payment_for(self.salaried)

        payroll_service.update_payment_status(
            self.db, payment.id, actor=self.moderator, status=PaymentStatus.PAID, payment_ref=' TX-1 '
        )

        self.assertEqual(payment.status, PaymentStatus.PAID)
        self.assertEqual(payment.payment_ref, 'TX-1')
        self.assertIsNotNone(payment.paid_at)
        self.assertEqual(self.db.execute(select(func.count()).select_from(Notification)).scalar_one(), 1)
        with self.assertRaises(InvalidTransitionError):
            payroll_service.update_payment_status(
                self.db, payment.id, actor=self.moderator, status=PaymentStatus.CALCULATED
            )

    def test_duplicate_period_is_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            payroll_service.create_period(
                self.db,
                actor=self.admin,
                name='Again',
                month=3,
                year=2024,
                start_date=date(2024, 3, 1),
                end_date=date(2024, 3, 31),
            )

    def test_delete_period_removes_payments_and_adjustments(self) -> None:
        payroll_service.calculate_period(self.db, self.period.id, actor=self.moderator)
        self._adjust(self._payment_for(self.salaried), AdjustmentType.BONUS, '100')

        payroll_service.delete_period(self.db, self.period.id, actor=self.admin)

        self.assertEqual(self.db.execute(select(func.count()).select_from(WorkerPayment)).scalar_one(), 0)
        self.assertEqual(self.db.execute(select(func.count()).select_from(PayrollAdjustment)).scalar_one(), 0)

    def test_salary_slip(self) -> None:
        payroll_service.calculate_period(self.db, self.period.id, actor=self.moderator)
        payment = self._payment_for(self.salaried)
        self._adjust(payment, AdjustmentType.BONUS, '500')

        slip = payroll_service.salary_slip(self.db, payment.id)

        self.assertEqual(slip['slip_number'], f'PAY-202403-{self.salaried.id:04d}')
        self.assertEqual(slip['statutory']['epf'], Decimal('800.00'))
        self.assertEqual(slip['statutory']['etf'], Decimal('300.00'))
        self.assertEqual(len(slip['bonuses']), 1)
        self.assertEqual(slip['deductions'], [])
        self.assertIsNone(slip['bank_details'])

    def test_settings_changes_are_admin_only_and_bounded(self) -> None:
        with self.assertRaises(ForbiddenError):
            payroll_service.update_settings(self.db, actor=self.moderator, changes={'tax_enabled': True})
        with self.assertRaises(ValidationError):
            payroll_service.update_settings(self.db, actor=self.admin, changes={'tax_percentage': Decimal('150')})

        row = payroll_service.update_settings(
            self.db, actor=self.admin, changes={'tax_enabled': True, 'tax_percentage': Decimal('10')}
        )
        payroll_service.calculate_period(self.db, self.period.id, actor=self.moderator)
        slip = payroll_service.salary_slip(
            self.db, self._payment_for(self.salaried).id, rates=payroll_service.statutory_rates(row)
        )

        self.assertEqual(slip['statutory']['tax'], Decimal('1000.00'))
        self.assertEqual(slip['statutory']['tax_percentage'], Decimal('10'))

    def test_summary_and_history(self) -> None:
        payroll_service.calculate_period(self.db, self.period.id, actor=self.moderator)

        summary = payroll_service.payroll_summary(self.db)
        history = payroll_service.worker_payment_history(self.db, self.salaried.id)

        self.assertEqual(summary['processing_periods'], 1)
        self.assertEqual(summary['current_period']['id'], self.period.id)
        self.assertEqual(history['total_payments'], 1)
        self.assertEqual(history['total_earnings'], Decimal('10000.00'))
        self.assertIsNone(history['last_payment_date'])


if __name__ == '__main__':
    unittest.main()
