"""
Error taxonomy for the marketplace subsystem.

Every error carries a machine-readable ``kind`` and the HTTP status the API
boundary answers with. Routers turn them into ``HTTPException`` via
``to_http_exception``.
"""
from fastapi import HTTPException, status


class MarketplaceError(Exception):
    kind = "marketplace_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_detail(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class ConfigNotFoundOrInactive(MarketplaceError):
    kind = "config_not_found_or_inactive"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, marketplace: str):
        super().__init__(f"Marketplace configuration for '{marketplace}' not found or inactive")
        self.marketplace = marketplace


class UnsupportedMarketplace(MarketplaceError):
    kind = "unsupported_marketplace"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, marketplace: str):
        super().__init__(f"Unsupported marketplace: {marketplace}")
        self.marketplace = marketplace


class MarketplaceApiError(MarketplaceError):
    """Transport or auth failure talking to an external marketplace."""

    kind = "marketplace_api_error"
    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, marketplace: str, message: str):
        super().__init__(f"{marketplace} API error: {message}")
        self.marketplace = marketplace


class MarketplaceTimeoutError(MarketplaceApiError):
    kind = "marketplace_timeout"
    status_code = status.HTTP_504_GATEWAY_TIMEOUT


class OrderNotFound(MarketplaceError):
    kind = "order_not_found"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, order_id: int):
        super().__init__(f"Marketplace order {order_id} not found")
        self.order_id = order_id


class AlreadyConverted(MarketplaceError):
    kind = "already_converted"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, order_id: int):
        super().__init__(f"Marketplace order {order_id} already converted to a sale")
        self.order_id = order_id


class ValidationError(MarketplaceError):
    kind = "validation_error"
    status_code = status.HTTP_400_BAD_REQUEST


def to_http_exception(exc: MarketplaceError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.to_detail())
