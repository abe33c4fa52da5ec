from datetime import datetime, timezone

from fastapi import APIRouter

from billing.core.config import get_settings

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    settings = get_settings()
    return {
        "success": True,
        "message": f"{settings.app_name} is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": settings.app_env,
    }
