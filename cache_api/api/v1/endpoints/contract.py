from fastapi import APIRouter, Request

from cache_api.core.dependencies import ContractCacheDependency
from cache_api.db.schemas.contract import ContractCallResponse

router = APIRouter(prefix="/contract", tags=["contract"])


@router.get(
    "/{address}/{function}",
    response_model=ContractCallResponse,
    response_model_exclude_unset=True,
)
async def read_contract(
    address: str, function: str, request: Request, cache: ContractCacheDependency
):
    """Serve a view-function result from cache, calling the chain on a miss."""
    call = cache.resolve(address, function, request.query_params)
    return await cache.read(call)


@router.post(
    "/{address}/{function}",
    response_model=ContractCallResponse,
    response_model_exclude_unset=True,
)
async def refresh_contract(
    address: str, function: str, request: Request, cache: ContractCacheDependency
):
    """Call the chain regardless of cache state and overwrite the cached entry."""
    call = cache.resolve(address, function, request.query_params)
    return await cache.refresh(call)
