"""
Find-or-create helpers for the customer and product catalogue.

These only add/flush; committing is left to the caller so they can be part
of a larger transaction.
"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from billing.models.customer import Customer
from billing.models.marketplace_order import MarketplaceOrderItem
from billing.models.product import Product

logger = logging.getLogger(__name__)


def normalize_sku(sku: Optional[str]) -> Optional[str]:
    if sku is None:
        return None
    sku = sku.strip().upper()
    return sku or None


def marketplace_sku(source: str, external_product_id: str) -> str:
    return normalize_sku(f"{source}-{external_product_id}")


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def find_or_create_customer(db: Session, snapshot: Dict[str, Any], source: str) -> Customer:
    """
    Match on phone, then on email when the snapshot has no phone.
    """
    phone = snapshot.get("phone")
    email = snapshot.get("email")

    customer = None
    if phone:
        customer = db.query(Customer).filter(Customer.phone == phone).first()
    elif email:
        customer = db.query(Customer).filter(func.lower(Customer.email) == email.lower()).first()

    if customer:
        return customer

    customer = Customer(
        name=snapshot.get("name") or f"{source.title()} Customer",
        phone=phone,
        email=email.lower() if email else None,
        address=snapshot.get("address"),
        source=source,
    )
    db.add(customer)
    db.flush()
    logger.info("Created customer %s from %s order", customer.id, source)
    return customer


def find_product(db: Session, sku: Optional[str], name: Optional[str]) -> Optional[Product]:
    sku = normalize_sku(sku)
    if sku:
        product = db.query(Product).filter(Product.sku == sku).first()
        if product:
            return product
    if name:
        pattern = f"%{_escape_like(name.strip())}%"
        return (
            db.query(Product)
            .filter(Product.is_active.is_(True), Product.name.ilike(pattern, escape="\\"))
            .order_by(Product.id)
            .first()
        )
    return None


def find_or_create_product(db: Session, item: MarketplaceOrderItem, source: str) -> Product:
    if item.local_product_id is not None:
        product = db.get(Product, item.local_product_id)
        if product:
            return product

    # items without a sku are keyed by the one we generate for them on create
    sku = normalize_sku(item.sku) or marketplace_sku(source, item.external_product_id)
    product = find_product(db, sku, item.product_name)
    if product:
        return product

    # stock starts at zero and has to be corrected by hand
    product = Product(
        name=item.product_name,
        sku=sku,
        category="Marketplace",
        selling_price=item.unit_price,
        cost_price=0,
        stock=0,
        source=source,
    )
    db.add(product)
    db.flush()
    logger.warning(
        "Auto-created product %s (sku %s) from %s order with zero stock",
        product.id,
        product.sku,
        source,
    )
    return product
