from __future__ import annotations

import os
import unittest
from datetime import date
from decimal import Decimal

os.environ.setdefault('DATABASE_URL', 'sqlite://')

from sqlalchemy.orm import Session, sessionmaker  # noqa: E402

from fieldops.auth import Principal, Role  # noqa: E402
from fieldops.db import build_engine  # noqa: E402
from fieldops.models import (  # noqa: E402
    Base,
    InventoryItem,
    PaymentType,
    PrincipalRole,
    Worker,
    WorkerStatus,
)
from fieldops.models import Principal as PrincipalModel  # noqa: E402


def make_session_factory() -> sessionmaker:
    engine = build_engine('sqlite://')
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=True, expire_on_commit=False)


def add_principal(db: Session, username: str, role: Role, *, password_hash: str = 'x') -> Principal:
    row = PrincipalModel(username=username, password_hash=password_hash, role=PrincipalRole(role.value), active=True)
    db.add(row)
    db.flush()
    return Principal(id=row.id, username=username, role=role, active=True)


def add_item(db: Session, name: str, stock: str = '0', *, reorder_level: str = '0', unit: str = 'pcs') -> InventoryItem:
    item = InventoryItem(name=name, unit=unit, current_stock=Decimal(stock), reorder_level=Decimal(reorder_level))
    db.add(item)
    db.flush()
    return item


def add_worker(
    db: Session,
    name: str,
    *,
    payment_type: PaymentType = PaymentType.PER_LINE,
    per_line_rate: str | None = None,
    monthly_rate: str | None = None,
) -> Worker:
    worker = Worker(
        full_name=name,
        status=WorkerStatus.ACTIVE,
        payment_type=payment_type,
        per_line_rate=Decimal(per_line_rate) if per_line_rate is not None else None,
        monthly_rate=Decimal(monthly_rate) if monthly_rate is not None else None,
    )
    db.add(worker)
    db.flush()
    return worker


class LedgerTestCase(unittest.TestCase):
    """Fresh in-memory database per test with one principal of each role."""

    def setUp(self) -> None:
        self.SessionFactory = make_session_factory()
        self.db = self.SessionFactory()
        self.admin = add_principal(self.db, 'admin', Role.ADMIN)
        self.moderator = add_principal(self.db, 'moderator', Role.MODERATOR)
        self.user = add_principal(self.db, 'viewer', Role.USER)
        self.db.commit()

    def tearDown(self) -> None:
        self.db.close()
        self.SessionFactory.kw['bind'].dispose()

    def today(self) -> date:
        return date(2024, 3, 15)
