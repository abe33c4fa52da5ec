"""
Shared plumbing for marketplace order adapters.

Every adapter exposes the same two coroutines/functions:

- ``fetch_orders(from_date, to_date)`` -> list of raw order payloads
- ``normalize_order(raw)`` -> ``NormalizedOrder``

Adapters do not retry. Transport and HTTP failures surface as
``MarketplaceApiError``; timeouts as ``MarketplaceTimeoutError``.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Protocol

import httpx

from billing.core.config import get_settings
from billing.core.errors import MarketplaceApiError, MarketplaceTimeoutError
from billing.schemas.marketplace import NormalizedOrder

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class OrderAdapter(Protocol):
    marketplace: str
    status_map: Mapping[str, str]

    async def fetch_orders(self, from_date: datetime, to_date: datetime) -> List[Dict[str, Any]]:
        ...

    def normalize_order(self, raw: Dict[str, Any]) -> NormalizedOrder:
        ...


async def marketplace_get(
    marketplace: str,
    url: str,
    token: str,
    params: Optional[dict] = None,
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> Any:
    """
    Bearer-authenticated GET against a marketplace API, returning parsed JSON.
    """
    headers = {
        "Authorization": f"Bearer {token}",
        "Accept": "application/json",
        "Content-Type": "application/json",
    }

    try:
        if client is not None:
            resp = await client.get(url, headers=headers, params=params, timeout=timeout)
        else:
            async with httpx.AsyncClient(timeout=timeout) as own_client:
                resp = await own_client.get(url, headers=headers, params=params)
    except httpx.TimeoutException as e:
        logger.error("%s API timeout after %ss: %s", marketplace, timeout, url)
        raise MarketplaceTimeoutError(marketplace, f"request timed out after {timeout}s") from e
    except httpx.HTTPError as e:
        logger.error("%s API transport error: %s", marketplace, e)
        raise MarketplaceApiError(marketplace, str(e) or type(e).__name__) from e

    if resp.status_code != 200:
        logger.error("%s API returned %s: %s", marketplace, resp.status_code, resp.text[:500])
        raise MarketplaceApiError(marketplace, f"{resp.status_code} {resp.text[:200]}")

    try:
        return resp.json()
    except ValueError as e:
        raise MarketplaceApiError(marketplace, "response is not valid JSON") from e


def map_status(marketplace: str, status_map: Mapping[str, str], raw_status: Optional[str]) -> str:
    """
    Translate a marketplace status into the canonical vocabulary.

    Unknown values fall back to 'pending' and are logged so adapter drift
    shows up in the logs instead of disappearing.
    """
    if raw_status in status_map:
        return status_map[raw_status]
    logger.warning("%s: unmapped order status %r, defaulting to 'pending'", marketplace, raw_status)
    return "pending"


def parse_datetime(value) -> datetime:
    """
    Parse ISO-8601 dates/datetimes from marketplace payloads into naive UTC.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    else:
        raise ValueError(f"Invalid order date: {value!r}")

    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def optional_str(value) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


async def get_http_client():
    """FastAPI dependency: one pooled client per request, closed afterwards."""
    async with httpx.AsyncClient(timeout=get_settings().marketplace_request_timeout) as client:
        yield client
