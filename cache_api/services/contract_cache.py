"""
Read-through caching of contract view calls.

GET requests are served from the cache while an entry is fresh and fall back
to an expired entry when the chain cannot be reached. POST requests always go
to the chain and overwrite the cache; their failures are never masked.
"""
import time
from dataclasses import dataclass
from typing import Callable, List, Mapping, Optional

from web3 import Web3

from cache_api.core.exceptions.errors import (
    ChainCallError,
    ContractNotAllowedError,
    InvalidAddressError,
    MissingParametersError,
)
from cache_api.db.schemas.cache import CacheRecord
from cache_api.db.schemas.contract import ContractCallResponse
from cache_api.services import policy
from cache_api.services.ethereum import ChainReader
from cache_api.utils.caching import CacheStore
from cache_api.utils.logging import get_logger

logger = get_logger()

STALE_ERROR = "RPC error, returning cached data"


@dataclass(frozen=True)
class ContractCall:
    address: str  # lower-case
    function_name: str
    parameters: List[str]
    key: str
    ttl_seconds: int


class ContractCache:
    def __init__(
        self,
        store: CacheStore,
        reader: ChainReader,
        chain_id: str,
        allow_list: Optional[List[str]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.reader = reader
        self.chain_id = chain_id
        self.allow_list = {a.lower() for a in allow_list or []}
        self.clock = clock

    def resolve(
        self, address: str, function_name: str, query: Mapping[str, str]
    ) -> ContractCall:
        """Validate the request and derive its parameters and cache key."""
        if not address or not Web3.is_address(address):
            raise InvalidAddressError(f"Invalid contract address: {address}")
        address = address.lower()
        if self.allow_list and address not in self.allow_list:
            raise ContractNotAllowedError(f"Contract {address} is not whitelisted")

        function_policy = policy.lookup(function_name)
        parameters = policy.extract_parameters(function_name, query)
        if function_policy.params and not parameters:
            required = ", ".join(p.query_name for p in function_policy.params)
            raise MissingParametersError(f"{function_name} requires: {required}")

        return ContractCall(
            address=address,
            function_name=function_name,
            parameters=parameters,
            key=policy.build_key(self.chain_id, address, function_name, parameters),
            ttl_seconds=function_policy.ttl_seconds,
        )

    async def read(self, call: ContractCall) -> ContractCallResponse:
        context = logger.bind(
            cache_key=call.key,
            contract=call.address,
            function=call.function_name,
            params=call.parameters,
        )
        cached = await self.store.get(call.key)
        if cached is not None and cached.is_fresh(self.clock()):
            context.info("Cache hit")
            return ContractCallResponse(
                result=cached.value, cached=True, cached_at=cached.cached_at
            )

        context.info("Cache miss, calling contract")
        try:
            result = await self.reader.call(
                call.address, call.function_name, call.parameters
            )
        except ChainCallError as e:
            if cached is None:
                context.error(f"Chain call failed with no cached fallback: {e}")
                raise
            context.warning(f"Returning stale cache due to error: {e}")
            return ContractCallResponse(
                result=cached.value,
                cached=True,
                stale=True,
                cached_at=cached.cached_at,
                error=STALE_ERROR,
            )

        await self._store(call, result)
        return ContractCallResponse(result=result, cached=False)

    async def refresh(self, call: ContractCall) -> ContractCallResponse:
        logger.bind(
            cache_key=call.key, contract=call.address, function=call.function_name
        ).info("Refresh request, bypassing cache")
        result = await self.reader.call(
            call.address, call.function_name, call.parameters
        )
        await self._store(call, result)
        logger.bind(cache_key=call.key).info("Cache updated via refresh")
        return ContractCallResponse(result=result, cached=False, updated=True)

    async def _store(self, call: ContractCall, result) -> CacheRecord:
        now = self.clock()
        record = CacheRecord(
            key=call.key,
            value=result,
            expire_at=int(now) + call.ttl_seconds,
            created_at=int(now * 1000),
            contract_address=call.address,
            function_name=call.function_name,
            parameters=call.parameters or None,
        )
        await self.store.set(record)
        return record
