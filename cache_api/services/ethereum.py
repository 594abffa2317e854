import asyncio
from collections.abc import Mapping
from typing import Any, Iterable, List, Optional

import aiohttp
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3

from cache_api.core.config import settings
from cache_api.core.exceptions.errors import (
    ChainCallError,
    ClientError,
    InvalidParameterError,
)
from cache_api.services.policy import FunctionPolicy, MonitoredEvent, lookup
from cache_api.utils.logging import get_logger

logger = get_logger()


def normalize_result(value: Any) -> Any:
    """Make a decoded contract result JSON-safe.

    Integers become decimal strings, byte strings become 0x hex, tuples and
    lists become lists and mappings become dicts, recursively.
    """
    if isinstance(value, bool) or value is None or isinstance(value, (str, float)):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return Web3.to_hex(bytes(value))
    if isinstance(value, Mapping):
        return {str(k): normalize_result(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [normalize_result(v) for v in value]
    return str(value)


def _coerce(abi_type: str, name: str, raw: str) -> Any:
    if abi_type == "address":
        if not Web3.is_address(raw):
            raise InvalidParameterError(f"{name} is not a valid address: {raw}")
        return Web3.to_checksum_address(raw)

    if abi_type.startswith("uint"):
        try:
            number = int(raw, 16) if raw.lower().startswith("0x") else int(raw, 10)
        except ValueError:
            raise InvalidParameterError(f"{name} is not an integer: {raw}") from None
        if number < 0:
            raise InvalidParameterError(f"{name} must not be negative: {raw}")
        return number

    if abi_type.startswith("bytes"):
        try:
            data = Web3.to_bytes(hexstr=raw)
        except (TypeError, ValueError):
            raise InvalidParameterError(f"{name} is not hex data: {raw}") from None
        size = abi_type[len("bytes"):]
        if size and len(data) != int(size):
            raise InvalidParameterError(f"{name} must be {size} bytes: {raw}")
        return data

    return raw


def coerce_arguments(policy: FunctionPolicy, parameters: List[str]) -> List[Any]:
    if len(parameters) != len(policy.params):
        raise InvalidParameterError(
            f"{policy.name} expects {len(policy.params)} parameters, "
            f"got {len(parameters)}"
        )
    return [
        _coerce(p.abi_type, p.query_name, raw)
        for p, raw in zip(policy.params, parameters)
    ]


class ChainReader:
    """Read-only access to contract view functions over JSON-RPC."""

    def __init__(self, rpc_url: str, timeout: float = 5.0):
        self.rpc_url = (rpc_url or "").strip()
        self.timeout = timeout
        self._w3: Optional[AsyncWeb3] = None

    @property
    def w3(self) -> AsyncWeb3:
        if not self.rpc_url:
            raise ChainCallError("RPC endpoint is not configured")
        if self._w3 is None:
            self._w3 = AsyncWeb3(
                AsyncHTTPProvider(
                    self.rpc_url,
                    request_kwargs={
                        "timeout": aiohttp.ClientTimeout(total=self.timeout)
                    },
                )
            )
        return self._w3

    async def close(self) -> None:
        """Release the provider's HTTP session; the next call reconnects."""
        if self._w3 is None:
            return
        w3, self._w3 = self._w3, None
        await w3.provider.disconnect()

    async def _bounded(self, awaitable):
        return await asyncio.wait_for(awaitable, timeout=self.timeout)

    async def call(
        self, contract_address: str, function_name: str, parameters: List[str]
    ) -> Any:
        policy = lookup(function_name)
        args = coerce_arguments(policy, parameters)
        context = logger.bind(
            contract=contract_address, function=function_name, params=parameters
        )

        try:
            contract = self.w3.eth.contract(
                address=Web3.to_checksum_address(contract_address), abi=[policy.abi()]
            )
            context.debug("Calling contract function")
            fn = contract.get_function_by_name(function_name)(*args)
            result = await self._bounded(fn.call())
        except (ClientError, ChainCallError):
            raise
        except asyncio.TimeoutError:
            context.error(f"Contract call timed out after {self.timeout}s")
            raise ChainCallError(
                f"{function_name} timed out after {self.timeout}s"
            ) from None
        except Exception as e:
            context.error(f"Error calling contract function: {e}")
            raise ChainCallError(f"{function_name} call failed") from e

        return normalize_result(result)

    async def get_current_block_height(self) -> int:
        try:
            return int(await self._bounded(self.w3.eth.block_number))
        except ChainCallError:
            raise
        except Exception as e:
            logger.error(f"Error getting block number: {e}")
            raise ChainCallError("eth_blockNumber failed") from e

    async def get_event_logs(
        self,
        contract_address: str,
        events: Iterable[MonitoredEvent],
        from_block: int,
        to_block: int,
    ) -> List[dict]:
        """Raw logs emitted by ``contract_address`` for any of ``events``."""
        topics = [MonitoredEvent(e).topic for e in events]
        try:
            log_filter = {
                "address": Web3.to_checksum_address(contract_address),
                "fromBlock": from_block,
                "toBlock": to_block,
                "topics": [topics],
            }
            logs = await self._bounded(self.w3.eth.get_logs(log_filter))
        except ChainCallError:
            raise
        except Exception as e:
            logger.bind(
                contract=contract_address, from_block=from_block, to_block=to_block
            ).error(f"Error getting contract events: {e}")
            raise ChainCallError("eth_getLogs failed") from e
        return [dict(log) for log in logs]


chain_reader = ChainReader(settings.RPC_ENDPOINT, settings.rpc_timeout_seconds)
