"""
Marketplace identifier -> stored config and adapter.

Nothing here writes to the database.
"""
from typing import Any, Dict, Optional

import httpx
import pydantic
from pydantic import TypeAdapter
from sqlalchemy.orm import Session

from billing.core.errors import ConfigNotFoundOrInactive, UnsupportedMarketplace, ValidationError
from billing.models.marketplace_config import MarketplaceConfig
from billing.schemas.marketplace import MarketplaceCredentials, SECRET_FIELDS
from billing.services.amazon_client import AmazonClient
from billing.services.flipkart_client import FlipkartClient
from billing.services.marketplace_client import DEFAULT_TIMEOUT, OrderAdapter
from billing.services.meesho_client import MeeshoClient

ADAPTERS = {
    "meesho": MeeshoClient,
    "amazon": AmazonClient,
    "flipkart": FlipkartClient,
}

SUPPORTED_MARKETPLACES = tuple(ADAPTERS)

MASK = "****"

_credentials_adapter = TypeAdapter(MarketplaceCredentials)


def ensure_supported(marketplace: str) -> str:
    if marketplace not in ADAPTERS:
        raise UnsupportedMarketplace(marketplace)
    return marketplace


def get_active_config(db: Session, marketplace: str) -> MarketplaceConfig:
    config = (
        db.query(MarketplaceConfig)
        .filter(
            MarketplaceConfig.marketplace == marketplace,
            MarketplaceConfig.is_active.is_(True),
        )
        .first()
    )
    if not config:
        raise ConfigNotFoundOrInactive(marketplace)
    return config


def parse_credentials(marketplace: str, data: Optional[Dict[str, Any]]):
    """Validate a raw credential bag into the marketplace's own variant."""
    ensure_supported(marketplace)
    payload = dict(data or {})
    payload["marketplace"] = marketplace
    try:
        return _credentials_adapter.validate_python(payload)
    except pydantic.ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"][1:]) or "credentials" for err in e.errors())
        raise ValidationError(f"Invalid {marketplace} credentials: {fields}") from e


def get_adapter(
    marketplace: str,
    config: MarketplaceConfig,
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> OrderAdapter:
    adapter_cls = ADAPTERS.get(marketplace)
    if adapter_cls is None:
        raise UnsupportedMarketplace(marketplace)
    credentials = parse_credentials(marketplace, config.credentials)
    return adapter_cls(credentials, client=client, timeout=timeout)


def mask_credentials(credentials: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        key: (MASK if key in SECRET_FIELDS and value else value)
        for key, value in (credentials or {}).items()
    }


def drop_masked_secrets(credentials: Dict[str, Any]) -> Dict[str, Any]:
    """Remove secrets echoed back as the mask so they do not replace stored ones."""
    return {
        key: value
        for key, value in credentials.items()
        if not (key in SECRET_FIELDS and value == MASK)
    }
