from fastapi import APIRouter

from cache_api.api.v1.endpoints.contract import router as contract_router
from cache_api.api.v1.endpoints.health import router as health_router

# Mounted at the root: clients address /contract/... directly
router = APIRouter()
router.include_router(health_router)
router.include_router(contract_router)
