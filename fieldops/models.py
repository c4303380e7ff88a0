from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# SQLite only autoincrements INTEGER primary keys.
IdType = BigInteger().with_variant(Integer(), 'sqlite')
Money = Numeric(12, 2)


class Base(DeclarativeBase):
    pass


def _enum(enum_cls: type[Enum], name: str) -> SQLEnum:
    return SQLEnum(enum_cls, name=name, values_callable=lambda members: [m.value for m in members])


class PrincipalRole(str, Enum):
    USER = 'user'
    MODERATOR = 'moderator'
    ADMIN = 'admin'


class LineStatus(str, Enum):
    PENDING = 'pending'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'


class WastageMethod(str, Enum):
    AUTOMATIC = 'automatic'
    MANUAL_OVERRIDE = 'manual_override'


class DrumStatus(str, Enum):
    ACTIVE = 'active'
    DEPLETED = 'depleted'
    RETIRED = 'retired'


class InvoiceStatus(str, Enum):
    DRAFT = 'draft'
    ISSUED = 'issued'


class WorkerStatus(str, Enum):
    ACTIVE = 'active'
    INACTIVE = 'inactive'


class PaymentType(str, Enum):
    PER_LINE = 'per_line'
    FIXED_MONTHLY = 'fixed_monthly'


PAYMENT_TYPE_ENUM = _enum(PaymentType, 'payment_type')


class PayrollStatus(str, Enum):
    DRAFT = 'draft'
    PROCESSING = 'processing'
    APPROVED = 'approved'
    PAID = 'paid'


class PaymentStatus(str, Enum):
    CALCULATED = 'calculated'
    APPROVED = 'approved'
    PAID = 'paid'


class PaymentMethod(str, Enum):
    BANK_TRANSFER = 'bank_transfer'
    CASH = 'cash'
    CHEQUE = 'cheque'


class AdjustmentType(str, Enum):
    BONUS = 'bonus'
    DEDUCTION = 'deduction'


class AdjustmentCategory(str, Enum):
    PERFORMANCE_BONUS = 'performance_bonus'
    ATTENDANCE_BONUS = 'attendance_bonus'
    OVERTIME = 'overtime'
    TAX = 'tax'
    EPF = 'epf'
    ETF = 'etf'
    ADVANCE = 'advance'
    FINE = 'fine'
    OTHER = 'other'


class Principal(Base):
    __tablename__ = 'principals'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    username: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)
    full_name: Mapped[str | None] = mapped_column(Text)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[PrincipalRole] = mapped_column(
        _enum(PrincipalRole, 'principal_role'), nullable=False, default=PrincipalRole.USER
    )
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class WebSession(Base):
    __tablename__ = 'web_sessions'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    session_token: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    principal_id: Mapped[int] = mapped_column(IdType, ForeignKey('principals.id', ondelete='CASCADE'), nullable=False)
    ip: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    last_seen_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class AuditLog(Base):
    __tablename__ = 'audit_logs'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    actor_principal_id: Mapped[int | None] = mapped_column(IdType, ForeignKey('principals.id', ondelete='SET NULL'))
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_type: Mapped[str | None] = mapped_column(String(64))
    entity_id: Mapped[int | None] = mapped_column(IdType)
    ip: Mapped[str | None] = mapped_column(String(64))
    meta: Mapped[dict] = mapped_column('metadata', JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Notification(Base):
    __tablename__ = 'notifications'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    recipient_principal_id: Mapped[int | None] = mapped_column(IdType, ForeignKey('principals.id', ondelete='CASCADE'))
    title: Mapped[str] = mapped_column(Text, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False, default='info')
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class InventoryItem(Base):
    __tablename__ = 'inventory_items'
    __table_args__ = (CheckConstraint('current_stock >= 0', name='ck_inventory_items_stock_non_negative'),)

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str | None] = mapped_column(String(64))
    unit: Mapped[str] = mapped_column(String(16), nullable=False, default='pcs')
    current_stock: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0'))
    reorder_level: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0'))
    serial_no: Mapped[str | None] = mapped_column(String(64))
    drum_size: Mapped[Decimal | None] = mapped_column(Money)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class DrumTracking(Base):
    __tablename__ = 'drum_tracking'
    __table_args__ = (
        CheckConstraint('current_quantity <= initial_quantity', name='ck_drum_tracking_quantity_bound'),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    drum_number: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    item_id: Mapped[int | None] = mapped_column(IdType, ForeignKey('inventory_items.id', ondelete='SET NULL'))
    initial_quantity: Mapped[Decimal] = mapped_column(Money, nullable=False)
    current_quantity: Mapped[Decimal] = mapped_column(Money, nullable=False)
    wastage_calculation_method: Mapped[WastageMethod] = mapped_column(
        _enum(WastageMethod, 'wastage_method'), nullable=False, default=WastageMethod.AUTOMATIC
    )
    manual_wastage_override: Mapped[Decimal | None] = mapped_column(Money)
    status: Mapped[DrumStatus] = mapped_column(_enum(DrumStatus, 'drum_status'), nullable=False, default=DrumStatus.ACTIVE)
    received_date: Mapped[date | None] = mapped_column(Date)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    item: Mapped[InventoryItem | None] = relationship()


class LineDetails(Base):
    __tablename__ = 'line_details'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    telephone_no: Mapped[str] = mapped_column(String(32), nullable=False)
    address: Mapped[str | None] = mapped_column(Text)
    dp: Mapped[str | None] = mapped_column(String(64))
    line_date: Mapped[date] = mapped_column('date', Date, nullable=False)
    status: Mapped[LineStatus] = mapped_column(_enum(LineStatus, 'line_status'), nullable=False, default=LineStatus.PENDING)
    task_id: Mapped[int | None] = mapped_column(IdType)
    cable_start: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0'))
    cable_middle: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0'))
    cable_end: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0'))
    total_cable: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0'))
    wastage: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0'))
    drum_number: Mapped[str | None] = mapped_column(String(64))
    completed_date: Mapped[date | None] = mapped_column(Date)

    retainers: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    l_hook: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    top_bolt: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    c_hook: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    fiber_rosette: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    internal_wire: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    s_rosette: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    fac: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    casing: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    c_tie: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    c_clip: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    conduit: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tag_tie: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pole: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pole_67: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    u_clip: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    nut_bolt: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


MATERIAL_COUNTER_FIELDS = (
    'retainers',
    'l_hook',
    'top_bolt',
    'c_hook',
    'fiber_rosette',
    'internal_wire',
    's_rosette',
    'fac',
    'casing',
    'c_tie',
    'c_clip',
    'conduit',
    'tag_tie',
    'pole',
    'pole_67',
    'u_clip',
    'nut_bolt',
)


class DrumUsage(Base):
    __tablename__ = 'drum_usage'
    __table_args__ = (CheckConstraint('quantity_used >= 0', name='ck_drum_usage_quantity_non_negative'),)

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    drum_id: Mapped[int] = mapped_column(IdType, ForeignKey('drum_tracking.id', ondelete='CASCADE'), nullable=False)
    line_details_id: Mapped[int | None] = mapped_column(IdType, ForeignKey('line_details.id', ondelete='SET NULL'))
    quantity_used: Mapped[Decimal] = mapped_column(Money, nullable=False)
    usage_date: Mapped[date] = mapped_column(Date, nullable=False)
    cable_start_point: Mapped[Decimal | None] = mapped_column(Money)
    cable_end_point: Mapped[Decimal | None] = mapped_column(Money)
    wastage_calculated: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0'))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class InventoryInvoice(Base):
    __tablename__ = 'inventory_invoices'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    invoice_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    warehouse: Mapped[str | None] = mapped_column(Text)
    invoice_date: Mapped[date] = mapped_column('date', Date, nullable=False)
    issued_by: Mapped[str | None] = mapped_column(Text)
    drawn_by: Mapped[str | None] = mapped_column(Text)
    total_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[InvoiceStatus] = mapped_column(
        _enum(InvoiceStatus, 'invoice_status'), nullable=False, default=InvoiceStatus.ISSUED
    )
    created_by_id: Mapped[int | None] = mapped_column(IdType, ForeignKey('principals.id', ondelete='SET NULL'))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class InventoryInvoiceItem(Base):
    __tablename__ = 'inventory_invoice_items'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    invoice_id: Mapped[int] = mapped_column(
        IdType, ForeignKey('inventory_invoices.id', ondelete='CASCADE'), nullable=False, index=True
    )
    item_id: Mapped[int] = mapped_column(IdType, ForeignKey('inventory_items.id'), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    unit: Mapped[str | None] = mapped_column(String(16))
    quantity_requested: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0'))
    quantity_issued: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0'))
    drum_number: Mapped[str | None] = mapped_column(String(64))


class WasteTracking(Base):
    __tablename__ = 'waste_tracking'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    item_id: Mapped[int] = mapped_column(IdType, ForeignKey('inventory_items.id'), nullable=False, index=True)
    quantity: Mapped[Decimal] = mapped_column(Money, nullable=False)
    waste_reason: Mapped[str] = mapped_column(Text, nullable=False)
    waste_date: Mapped[date] = mapped_column(Date, nullable=False)
    reported_by_id: Mapped[int | None] = mapped_column(IdType, ForeignKey('principals.id', ondelete='SET NULL'))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Worker(Base):
    __tablename__ = 'workers'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    full_name: Mapped[str] = mapped_column(Text, nullable=False)
    employee_no: Mapped[str | None] = mapped_column(String(32), unique=True)
    status: Mapped[WorkerStatus] = mapped_column(
        _enum(WorkerStatus, 'worker_status'), nullable=False, default=WorkerStatus.ACTIVE
    )
    payment_type: Mapped[PaymentType] = mapped_column(
        PAYMENT_TYPE_ENUM, nullable=False, default=PaymentType.PER_LINE
    )
    per_line_rate: Mapped[Decimal | None] = mapped_column(Money)
    monthly_rate: Mapped[Decimal | None] = mapped_column(Money)
    bank_name: Mapped[str | None] = mapped_column(Text)
    bank_branch: Mapped[str | None] = mapped_column(Text)
    account_number: Mapped[str | None] = mapped_column(String(64))
    account_name: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class WorkAssignment(Base):
    __tablename__ = 'work_assignments'
    __table_args__ = (UniqueConstraint('worker_id', 'line_id', name='uq_work_assignments_worker_line'),)

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    worker_id: Mapped[int] = mapped_column(IdType, ForeignKey('workers.id', ondelete='CASCADE'), nullable=False)
    line_id: Mapped[int] = mapped_column(IdType, ForeignKey('line_details.id', ondelete='CASCADE'), nullable=False)
    assigned_date: Mapped[date] = mapped_column(Date, nullable=False)


class PayrollSettings(Base):
    __tablename__ = 'payroll_settings'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    epf_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    epf_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal('8.00'))
    etf_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    etf_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal('3.00'))
    tax_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    tax_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal('0.00'))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class PayrollPeriod(Base):
    __tablename__ = 'payroll_periods'
    __table_args__ = (
        UniqueConstraint('month', 'year', name='uq_payroll_periods_month_year'),
        CheckConstraint('month BETWEEN 1 AND 12', name='ck_payroll_periods_month'),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[PayrollStatus] = mapped_column(
        _enum(PayrollStatus, 'payroll_status'), nullable=False, default=PayrollStatus.DRAFT
    )
    total_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0'))
    paid_date: Mapped[date | None] = mapped_column(Date)
    created_by_id: Mapped[int | None] = mapped_column(IdType, ForeignKey('principals.id', ondelete='SET NULL'))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class WorkerPayment(Base):
    __tablename__ = 'worker_payments'
    __table_args__ = (UniqueConstraint('payroll_period_id', 'worker_id', name='uq_worker_payments_period_worker'),)

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    payroll_period_id: Mapped[int] = mapped_column(
        IdType, ForeignKey('payroll_periods.id', ondelete='CASCADE'), nullable=False, index=True
    )
    worker_id: Mapped[int] = mapped_column(IdType, ForeignKey('workers.id'), nullable=False)
    payment_type: Mapped[PaymentType] = mapped_column(PAYMENT_TYPE_ENUM, nullable=False)
    lines_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    per_line_rate: Mapped[Decimal | None] = mapped_column(Money)
    base_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0'))
    bonus_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0'))
    deduction_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0'))
    net_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0'))
    status: Mapped[PaymentStatus] = mapped_column(
        _enum(PaymentStatus, 'payment_status'), nullable=False, default=PaymentStatus.CALCULATED
    )
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    payment_method: Mapped[PaymentMethod | None] = mapped_column(_enum(PaymentMethod, 'payment_method'))
    payment_ref: Mapped[str | None] = mapped_column(String(64))
    notes: Mapped[str | None] = mapped_column(Text)
    created_by_id: Mapped[int | None] = mapped_column(IdType, ForeignKey('principals.id', ondelete='SET NULL'))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    worker: Mapped[Worker] = relationship()
    payroll_period: Mapped[PayrollPeriod] = relationship()


class PayrollAdjustment(Base):
    __tablename__ = 'payroll_adjustments'
    __table_args__ = (CheckConstraint('amount > 0', name='ck_payroll_adjustments_amount_positive'),)

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    worker_payment_id: Mapped[int] = mapped_column(
        IdType, ForeignKey('worker_payments.id', ondelete='CASCADE'), nullable=False, index=True
    )
    type: Mapped[AdjustmentType] = mapped_column(_enum(AdjustmentType, 'adjustment_type'), nullable=False)
    category: Mapped[AdjustmentCategory] = mapped_column(_enum(AdjustmentCategory, 'adjustment_category'), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    created_by_id: Mapped[int | None] = mapped_column(IdType, ForeignKey('principals.id', ondelete='SET NULL'))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
