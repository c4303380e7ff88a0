from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from fieldops.models import (
    AdjustmentCategory,
    AdjustmentType,
    LineStatus,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
    WastageMethod,
)


class CamelModel(BaseModel):
    # Bodies arrive in either snake_case or camelCase.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LoginIn(CamelModel):
    username: str
    password: str


# Inventory


class ItemCreate(CamelModel):
    name: str
    category: str | None = None
    unit: str = 'pcs'
    current_stock: Decimal = Decimal('0')
    reorder_level: Decimal = Decimal('0')
    serial_no: str | None = None
    drum_size: Decimal | None = None


class InvoiceItemIn(CamelModel):
    item_id: int
    quantity_issued: Decimal
    quantity_requested: Decimal | None = None
    description: str | None = None
    unit: str | None = None
    drum_number: str | None = None


class InvoiceCreate(CamelModel):
    invoice_number: str | None = None
    invoice_date: date | None = Field(default=None, alias='date')
    warehouse: str | None = None
    issued_by: str | None = None
    drawn_by: str | None = None
    items: list[InvoiceItemIn]


class WasteEntryIn(CamelModel):
    item_id: int
    quantity: Decimal
    waste_reason: str


class WasteReport(CamelModel):
    entries: list[WasteEntryIn]
    waste_date: date | None = None


# Drums


class DrumCreate(CamelModel):
    drum_number: str
    initial_quantity: Decimal
    item_id: int | None = None
    received_date: date | None = None


class DrumUpdate(CamelModel):
    drum_number: str | None = None
    initial_quantity: Decimal | None = None
    received_date: date | None = None
    retired: bool | None = None


class DrumUsageCreate(CamelModel):
    quantity_used: Decimal
    usage_date: date | None = None
    line_details_id: int | None = None
    cable_start_point: Decimal | None = None
    cable_end_point: Decimal | None = None
    wastage_calculated: Decimal = Decimal('0')


class WastageSettingsIn(CamelModel):
    wastage_calculation_method: WastageMethod
    manual_wastage_override: Decimal | None = None


# Lines

Reading = Decimal | str | None


class LineCreate(CamelModel):
    name: str
    telephone_no: str
    line_date: date = Field(alias='date')
    address: str | None = None
    dp: str | None = None
    status: LineStatus = LineStatus.PENDING
    task_id: int | None = None
    cable_start: Reading = None
    cable_middle: Reading = None
    cable_end: Reading = None
    wastage: Reading = None
    drum_number: str | None = None
    completed_date: date | None = None
    materials: dict[str, int] = Field(default_factory=dict)
    worker_ids: list[int] = Field(default_factory=list)


class LineUpdate(CamelModel):
    name: str | None = None
    telephone_no: str | None = None
    line_date: date | None = Field(default=None, alias='date')
    address: str | None = None
    dp: str | None = None
    status: LineStatus | None = None
    task_id: int | None = None
    cable_start: Reading = None
    cable_middle: Reading = None
    cable_end: Reading = None
    wastage: Reading = None
    drum_number: str | None = None
    completed_date: date | None = None
    materials: dict[str, int] | None = None
    worker_ids: list[int] | None = None


# Payroll


class WorkerCreate(CamelModel):
    full_name: str
    employee_no: str | None = None
    payment_type: PaymentType = PaymentType.PER_LINE
    per_line_rate: Decimal | None = None
    monthly_rate: Decimal | None = None
    bank_name: str | None = None
    bank_branch: str | None = None
    account_number: str | None = None
    account_name: str | None = None


class PayrollSettingsUpdate(CamelModel):
    epf_enabled: bool | None = None
    epf_percentage: Decimal | None = None
    etf_enabled: bool | None = None
    etf_percentage: Decimal | None = None
    tax_enabled: bool | None = None
    tax_percentage: Decimal | None = None


class PeriodCreate(CamelModel):
    name: str
    month: int
    year: int
    start_date: date
    end_date: date


class PeriodAction(CamelModel):
    action: Literal['calculate', 'approve', 'reopen', 'pay']
    paid_date: date | None = None


class AdjustmentCreate(CamelModel):
    worker_payment_id: int
    type: AdjustmentType
    category: AdjustmentCategory
    description: str
    amount: Decimal


class PaymentStatusUpdate(CamelModel):
    status: PaymentStatus
    payment_method: PaymentMethod | None = None
    payment_ref: str | None = None
    notes: str | None = None
