"""
Turn a synced marketplace order into an internal sale.

All writes (customer, products, item links, sale) happen in one transaction.
The sale's ``marketplace_order_id`` column is unique, so two concurrent
conversions of the same order cannot both commit. Invoice numbers are
allocated from the latest one, so conversions of different orders can clash;
the loser allocates again once.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from billing.core.errors import AlreadyConverted, OrderNotFound
from billing.models.marketplace_config import MarketplaceConfig
from billing.models.marketplace_order import MarketplaceOrder
from billing.models.sale import Sale, SaleItem
from billing.services.catalog import find_or_create_customer, find_or_create_product
from billing.services.invoices import allocate_invoice_number
from billing.services.order_totals import to_money

logger = logging.getLogger(__name__)

INVOICE_ATTEMPTS = 2


def _already_converted(db: Session, order_id: int) -> bool:
    return db.query(Sale.id).filter(Sale.marketplace_order_id == order_id).first() is not None


def _payment_method(db: Session, marketplace: str) -> str:
    config = db.query(MarketplaceConfig).filter(MarketplaceConfig.marketplace == marketplace).first()
    if config and config.default_payment_method:
        return config.default_payment_method
    return "online"


def _invoice_taken(db: Session, invoice_number: Optional[str]) -> bool:
    if not invoice_number:
        return False
    return db.query(Sale.id).filter(Sale.invoice_number == invoice_number).first() is not None


def _build_sale(db: Session, order: MarketplaceOrder) -> Sale:
    """Stage the customer, products, item links and sale without committing."""
    customer = find_or_create_customer(db, order.customer or {}, order.marketplace)

    sale_items = []
    for item in order.items:
        product = find_or_create_product(db, item, order.marketplace)
        item.local_product_id = product.id
        sale_items.append(
            SaleItem(
                product_id=product.id,
                product_name=item.product_name,
                quantity=item.quantity,
                unit_price=item.unit_price,
                line_total=item.total_price,
            )
        )

    total = to_money(order.total_amount)
    paid = total if order.payment_status == "paid" else Decimal("0.00")

    sale = Sale(
        invoice_number=allocate_invoice_number(db, datetime.utcnow()),
        customer_id=customer.id,
        customer_name=customer.name,
        customer_phone=customer.phone,
        subtotal=sum((to_money(i.line_total) for i in sale_items), Decimal("0.00")),
        total_amount=total,
        paid_amount=paid,
        balance_amount=total - paid,
        payment_method=_payment_method(db, order.marketplace),
        payment_status="paid" if order.payment_status == "paid" else "pending",
        status="completed" if order.order_status == "delivered" else "pending",
        sale_date=order.order_date,
        source=order.marketplace,
        marketplace_order_id=order.id,
        external_order_id=order.external_order_id,
        items=sale_items,
    )
    db.add(sale)
    return sale


def convert_to_sale(db: Session, order_id: int) -> Sale:
    order = db.get(MarketplaceOrder, order_id)
    if not order:
        raise OrderNotFound(order_id)

    if _already_converted(db, order.id):
        raise AlreadyConverted(order.id)

    for attempt in range(1, INVOICE_ATTEMPTS + 1):
        invoice_number = None
        try:
            sale = _build_sale(db, order)
            invoice_number = sale.invoice_number
            db.commit()
            break
        except IntegrityError:
            db.rollback()
            if _already_converted(db, order_id):
                raise AlreadyConverted(order_id)
            # another conversion took the same invoice number first
            if attempt < INVOICE_ATTEMPTS and _invoice_taken(db, invoice_number):
                logger.warning("Invoice number %s already taken, allocating again", invoice_number)
                continue
            raise
        except Exception:
            db.rollback()
            raise

    db.refresh(sale)
    logger.info(
        "Converted %s order %s into sale %s",
        sale.source,
        sale.external_order_id,
        sale.invoice_number,
    )
    return sale
