from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from fieldops.config import settings
from fieldops.models import InventoryItem, Notification, WorkerPayment

logger = logging.getLogger(__name__)


def create_notification(
    db: Session,
    *,
    title: str,
    message: str,
    category: str = 'info',
    recipient_principal_id: int | None = None,
) -> None:
    db.add(
        Notification(
            recipient_principal_id=recipient_principal_id,
            title=title,
            message=message,
            category=category,
        )
    )
    logger.info('Notification queued: %s', title)


def notify_low_stock(db: Session, item: InventoryItem, stock_after) -> None:
    if not settings.low_stock_notifications:
        return
    if stock_after > item.reorder_level:
        return
    create_notification(
        db,
        title='Low stock',
        message=f'{item.name} is at {stock_after} {item.unit} (reorder level {item.reorder_level})',
        category='warning',
    )


def notify_payment_paid(db: Session, payment: WorkerPayment) -> None:
    create_notification(
        db,
        title='Payment recorded',
        message=f'Payment #{payment.id} of {payment.net_amount} marked as paid',
        category='success',
    )
