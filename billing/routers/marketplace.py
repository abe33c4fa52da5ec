# billing/routers/marketplace.py

from datetime import datetime
from math import ceil
from typing import List, Optional

import httpx
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session, selectinload

from billing.core.database import get_db
from billing.core.errors import MarketplaceError, ValidationError, to_http_exception
from billing.core.security import get_current_user, require_role
from billing.models.marketplace_config import MarketplaceConfig
from billing.models.marketplace_order import MarketplaceOrder
from billing.models.user import User
from billing.schemas.marketplace import (
    ORDER_STATUSES,
    LastError,
    MappingSettings,
    MarketplaceAnalytics,
    MarketplaceConfigRead,
    MarketplaceConfigUpdate,
    MarketplaceOrderPage,
    MarketplaceOrderRead,
    Pagination,
    SyncResult,
    SyncSettings,
)
from billing.schemas.sale import SaleConversionResult, SaleRead
from billing.services import marketplace_registry
from billing.services.marketplace_analytics import get_analytics
from billing.services.marketplace_client import get_http_client, parse_datetime
from billing.services.order_sync import sync_orders
from billing.services.sale_conversion import convert_to_sale

router = APIRouter(
    prefix="/marketplace",
    tags=["marketplace"],
    dependencies=[Depends(get_current_user)],
)


def _config_to_read(config: MarketplaceConfig) -> MarketplaceConfigRead:
    last_error = None
    if config.last_error_message or config.last_error_at:
        last_error = LastError(message=config.last_error_message, timestamp=config.last_error_at)

    return MarketplaceConfigRead(
        id=config.id,
        marketplace=config.marketplace,
        is_active=config.is_active,
        credentials=marketplace_registry.mask_credentials(config.credentials),
        sync_settings=SyncSettings(
            auto_sync=config.auto_sync,
            sync_interval_minutes=config.sync_interval_minutes,
            last_sync_at=config.last_sync_at,
            sync_orders_from=config.sync_orders_from,
        ),
        mapping_settings=MappingSettings(
            auto_map_products=config.auto_map_products,
            default_customer_group=config.default_customer_group,
            default_payment_method=config.default_payment_method,
        ),
        status=config.status,
        last_error=last_error,
        created_at=config.created_at,
        updated_at=config.updated_at,
    )


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    return parse_datetime(value) if value else None


# --------------------------------------
# Config
# --------------------------------------
@router.get("/configs", response_model=List[MarketplaceConfigRead])
def list_configs(db: Session = Depends(get_db)):
    configs = db.query(MarketplaceConfig).order_by(MarketplaceConfig.marketplace).all()
    return [_config_to_read(c) for c in configs]


@router.put("/configs/{marketplace}", response_model=MarketplaceConfigRead)
def update_config(
    marketplace: str,
    config_in: MarketplaceConfigUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role("admin")),
):
    try:
        marketplace_registry.ensure_supported(marketplace)

        config = db.query(MarketplaceConfig).filter(MarketplaceConfig.marketplace == marketplace).first()
        if not config:
            config = MarketplaceConfig(marketplace=marketplace, credentials={})
            db.add(config)

        if config_in.credentials is not None:
            # partial update: secrets that are not re-sent are kept
            incoming = marketplace_registry.drop_masked_secrets(config_in.credentials)
            merged = {**(config.credentials or {}), **incoming}
            creds = marketplace_registry.parse_credentials(marketplace, merged)
            config.credentials = creds.model_dump(exclude_none=True)

        if config_in.is_active is not None:
            if config_in.is_active:
                marketplace_registry.parse_credentials(marketplace, config.credentials)
            config.is_active = config_in.is_active
            config.status = "active" if config_in.is_active else "inactive"

        if config_in.status is not None:
            config.status = config_in.status

        # exclude_unset=True: Do not touch fields that were not sent
        if config_in.sync_settings is not None:
            for field, value in config_in.sync_settings.model_dump(exclude_unset=True).items():
                if field == "sync_orders_from":
                    value = _naive_utc(value)
                setattr(config, field, value)

        if config_in.mapping_settings is not None:
            for field, value in config_in.mapping_settings.model_dump(exclude_unset=True).items():
                setattr(config, field, value)
    except MarketplaceError as e:
        db.rollback()
        raise to_http_exception(e)

    db.commit()
    db.refresh(config)
    return _config_to_read(config)


# --------------------------------------
# Sync
# --------------------------------------
@router.post("/sync/{marketplace}", response_model=SyncResult)
async def sync_marketplace_orders(
    marketplace: str,
    from_date: Optional[datetime] = Query(default=None, alias="fromDate"),
    to_date: Optional[datetime] = Query(default=None, alias="toDate"),
    db: Session = Depends(get_db),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    try:
        outcome = await sync_orders(db, marketplace, from_date, to_date, client=client)
    except MarketplaceError as e:
        raise to_http_exception(e)

    return SyncResult(
        orders_processed=outcome.orders_processed,
        orders_failed=outcome.orders_failed,
        orders=[MarketplaceOrderRead.model_validate(o) for o in outcome.orders],
    )


# --------------------------------------
# Orders ("marketplace sales")
# --------------------------------------
@router.get("/sales", response_model=MarketplaceOrderPage)
def list_marketplace_sales(
    marketplace: Optional[str] = None,
    order_status: Optional[str] = Query(default=None, alias="status"),
    from_date: Optional[datetime] = Query(default=None, alias="fromDate"),
    to_date: Optional[datetime] = Query(default=None, alias="toDate"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    try:
        if marketplace:
            marketplace_registry.ensure_supported(marketplace)
        if order_status and order_status not in ORDER_STATUSES:
            raise ValidationError(f"Unknown order status: {order_status}")
    except MarketplaceError as e:
        raise to_http_exception(e)

    query = db.query(MarketplaceOrder)
    if marketplace:
        query = query.filter(MarketplaceOrder.marketplace == marketplace)
    if order_status:
        query = query.filter(MarketplaceOrder.order_status == order_status)
    if from_date:
        query = query.filter(MarketplaceOrder.order_date >= _naive_utc(from_date))
    if to_date:
        query = query.filter(MarketplaceOrder.order_date <= _naive_utc(to_date))

    total = query.count()
    orders = (
        query.options(selectinload(MarketplaceOrder.items))
        .order_by(MarketplaceOrder.order_date.desc(), MarketplaceOrder.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    return MarketplaceOrderPage(
        sales=[MarketplaceOrderRead.model_validate(o) for o in orders],
        total=total,
        pagination=Pagination(page=page, limit=limit, total=total, pages=ceil(total / limit)),
    )


@router.post("/sales/{order_id}/convert", response_model=SaleConversionResult)
def convert_marketplace_sale(order_id: int, db: Session = Depends(get_db)):
    try:
        sale = convert_to_sale(db, order_id)
    except MarketplaceError as e:
        raise to_http_exception(e)
    return SaleConversionResult(sale=SaleRead.model_validate(sale))


# --------------------------------------
# Analytics
# --------------------------------------
@router.get("/analytics", response_model=MarketplaceAnalytics)
def marketplace_analytics(
    from_date: Optional[datetime] = Query(default=None, alias="fromDate"),
    to_date: Optional[datetime] = Query(default=None, alias="toDate"),
    db: Session = Depends(get_db),
):
    from_date, to_date = _naive_utc(from_date), _naive_utc(to_date)
    if from_date and to_date and from_date > to_date:
        raise to_http_exception(ValidationError("fromDate must not be after toDate"))
    return get_analytics(db, from_date, to_date)
