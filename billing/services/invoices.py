from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from billing.models.sale import Sale


def invoice_prefix(when: datetime) -> str:
    return f"INV{when:%y%m}"


def next_invoice_number(last_invoice: Optional[str], when: datetime) -> str:
    """
    INV<yy><mm><seq4>; the sequence restarts every month.

    >>> next_invoice_number(None, datetime(2024, 1, 5))
    'INV24010001'
    >>> next_invoice_number('INV24010041', datetime(2024, 1, 9))
    'INV24010042'
    """
    prefix = invoice_prefix(when)
    sequence = 1
    if last_invoice and last_invoice.startswith(prefix):
        sequence = int(last_invoice[len(prefix):]) + 1
    return f"{prefix}{sequence:04d}"


def allocate_invoice_number(db: Session, when: datetime) -> str:
    last = (
        db.query(Sale.invoice_number)
        .filter(Sale.invoice_number.like(f"{invoice_prefix(when)}%"))
        .order_by(Sale.invoice_number.desc())
        .first()
    )
    return next_invoice_number(last[0] if last else None, when)
