from typing import Annotated

from fastapi import Depends

from cache_api.core.config import settings
from cache_api.services.contract_cache import ContractCache
from cache_api.services.ethereum import ChainReader, chain_reader
from cache_api.utils.caching import CacheStore, cache_store


def get_cache_store() -> CacheStore:
    return cache_store


def get_chain_reader() -> ChainReader:
    return chain_reader


CacheStoreDependency = Annotated[CacheStore, Depends(get_cache_store)]
ChainReaderDependency = Annotated[ChainReader, Depends(get_chain_reader)]


def get_contract_cache(
    store: CacheStoreDependency, reader: ChainReaderDependency
) -> ContractCache:
    return ContractCache(
        store=store,
        reader=reader,
        chain_id=settings.CHAIN_ID,
        allow_list=settings.contract_allow_list,
    )


ContractCacheDependency = Annotated[ContractCache, Depends(get_contract_cache)]
