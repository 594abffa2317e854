from datetime import datetime, timezone

from fastapi import APIRouter

from cache_api.core.config import settings
from cache_api.db.schemas.health import HealthResponse

router = APIRouter(tags=["health"])


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


@router.get("/", response_model=HealthResponse, response_model_exclude_none=True)
async def root():
    return HealthResponse(status="healthy", service=settings.APP_NAME, timestamp=_now())


@router.get("/health", response_model=HealthResponse, response_model_exclude_none=True)
async def health_check():
    return HealthResponse(status="healthy", timestamp=_now())
