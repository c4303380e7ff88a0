from datetime import date
from decimal import Decimal

from sqlalchemy import select

from fieldops.db import SessionLocal, engine
from fieldops.models import (
    Base,
    InventoryItem,
    PaymentType,
    Principal,
    PrincipalRole,
    Worker,
    WorkerStatus,
)
from fieldops.security.passwords import hash_password
from fieldops.services.payroll_service import get_or_create_settings

DEMO_ITEMS = [
    ('Drop Wire Cable', 'cable', 'm', Decimal('0'), Decimal('500')),
    ('Retainer', 'hardware', 'pcs', Decimal('200'), Decimal('50')),
    ('L-Hook', 'hardware', 'pcs', Decimal('150'), Decimal('40')),
    ('Fiber Rosette', 'fiber', 'pcs', Decimal('80'), Decimal('20')),
    ('C-Tie', 'hardware', 'pcs', Decimal('500'), Decimal('100')),
]

DEMO_ACCOUNTS = [
    ('admin', 'adminpass', PrincipalRole.ADMIN),
    ('moderator', 'moderatorpass', PrincipalRole.MODERATOR),
    ('viewer', 'viewerpass', PrincipalRole.USER),
]


def seed() -> None:
    Base.metadata.create_all(engine)
    with SessionLocal() as db:
        for username, password, role in DEMO_ACCOUNTS:
            existing = db.execute(select(Principal).where(Principal.username == username)).scalar_one_or_none()
            if not existing:
                db.add(Principal(username=username, password_hash=hash_password(password), role=role, active=True))

        for name, category, unit, stock, reorder_level in DEMO_ITEMS:
            existing = db.execute(select(InventoryItem).where(InventoryItem.name == name)).scalar_one_or_none()
            if not existing:
                db.add(
                    InventoryItem(
                        name=name,
                        category=category,
                        unit=unit,
                        current_stock=stock,
                        reorder_level=reorder_level,
                        drum_size=Decimal('1000') if unit == 'm' else None,
                    )
                )

        if not db.execute(select(Worker.id).limit(1)).first():
            db.add(
                Worker(
                    full_name='Demo Installer',
                    employee_no='EMP-0001',
                    status=WorkerStatus.ACTIVE,
                    payment_type=PaymentType.PER_LINE,
                    per_line_rate=Decimal('650'),
                )
            )
            db.add(
                Worker(
                    full_name='Demo Supervisor',
                    employee_no='EMP-0002',
                    status=WorkerStatus.ACTIVE,
                    payment_type=PaymentType.FIXED_MONTHLY,
                    monthly_rate=Decimal('85000'),
                )
            )

        get_or_create_settings(db)
        db.commit()


if __name__ == '__main__':
    seed()
    print(f'Seed data inserted/verified on {date.today().isoformat()}.')
