import asyncio

import pytest

from cache_api.core.exceptions.errors import (
    CacheWriteError,
    ChainCallError,
    ContractNotAllowedError,
    InvalidAddressError,
    MissingParametersError,
    UnsupportedFunctionError,
)
from cache_api.services.contract_cache import STALE_ERROR, ContractCache
from cache_api.utils.caching import CacheStore

from conftest import CONTRACT, OTHER_CONTRACT, BrokenSessionFactory


class Clock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def cache(store, reader, clock):
    return ContractCache(store=store, reader=reader, chain_id="1", clock=clock)


async def test_resolve_builds_key_and_parameters(cache):
    mixed_case = CONTRACT.upper().replace("0X", "0x")
    call = cache.resolve(mixed_case, "tokenURI", {"tokenId": "5"})
    assert call.address == CONTRACT
    assert call.parameters == ["5"]
    assert call.key == f"1:{CONTRACT}:tokenURI:5"
    assert call.ttl_seconds == 3600


@pytest.mark.parametrize(
    "address, function, query, error",
    [
        ("0x123", "name", {}, InvalidAddressError),
        ("", "name", {}, InvalidAddressError),
        ("not-an-address", "name", {}, InvalidAddressError),
        (CONTRACT, "allowance", {}, UnsupportedFunctionError),
        (CONTRACT, "tokenURI", {}, MissingParametersError),
        (CONTRACT, "royaltyInfo", {"tokenId": "1"}, MissingParametersError),
    ],
)
async def test_resolve_rejects_bad_requests(cache, address, function, query, error):
    with pytest.raises(error):
        cache.resolve(address, function, query)


async def test_resolve_enforces_allow_list(store, reader):
    allow_list = [CONTRACT.upper().replace("0X", "0x")]
    cache = ContractCache(store, reader, "1", allow_list=allow_list)
    assert cache.resolve(CONTRACT, "name", {}).address == CONTRACT
    with pytest.raises(ContractNotAllowedError):
        cache.resolve(OTHER_CONTRACT, "name", {})


async def test_cold_read_fetches_and_stores(cache, store, reader, clock):
    reader.results["tokenURI"] = "ipfs://token/5"
    call = cache.resolve(CONTRACT, "tokenURI", {"tokenId": "5"})

    response = await cache.read(call)

    assert response.result == "ipfs://token/5"
    assert response.cached is False
    assert reader.calls == [(CONTRACT, "tokenURI", ["5"])]
    record = await store.get(call.key)
    assert record.value == "ipfs://token/5"
    assert record.expire_at == int(clock.now) + 3600
    assert record.created_at == int(clock.now * 1000)
    assert record.contract_address == CONTRACT
    assert record.function_name == "tokenURI"
    assert record.parameters == ["5"]


async def test_repeated_reads_within_ttl_hit_cache(cache, reader, clock):
    call = cache.resolve(CONTRACT, "tokenURI", {"tokenId": "5"})
    first = await cache.read(call)

    for _ in range(3):
        clock.now += 100
        response = await cache.read(call)
        assert response.cached is True
        assert response.result == first.result
        assert response.cached_at is not None
        assert response.stale is None

    assert len(reader.calls) == 1


async def test_read_at_expiry_boundary_refetches(cache, reader, clock):
    call = cache.resolve(CONTRACT, "balanceOf", {"address": OTHER_CONTRACT})
    await cache.read(call)

    clock.now = int(clock.now) + 60 - 0.001
    assert (await cache.read(call)).cached is True

    clock.now = 1_700_000_060
    response = await cache.read(call)
    assert response.cached is False
    assert len(reader.calls) == 2


async def test_stale_entry_served_when_chain_fails(cache, reader, clock):
    reader.results["ownerOf"] = OTHER_CONTRACT
    call = cache.resolve(CONTRACT, "ownerOf", {"tokenId": "1"})
    await cache.read(call)

    clock.now += 10_000
    reader.fail = True
    response = await cache.read(call)

    assert response.result == OTHER_CONTRACT
    assert response.cached is True
    assert response.stale is True
    assert response.error == STALE_ERROR
    assert response.cached_at is not None


async def test_chain_failure_without_cache_raises(cache, reader):
    reader.fail = True
    call = cache.resolve(CONTRACT, "ownerOf", {"tokenId": "1"})
    with pytest.raises(ChainCallError):
        await cache.read(call)


async def test_refresh_bypasses_fresh_cache(cache, store, reader, clock):
    call = cache.resolve(CONTRACT, "totalSupply", {})
    reader.results["totalSupply"] = "10"
    await cache.read(call)

    reader.results["totalSupply"] = "11"
    clock.now += 5
    response = await cache.refresh(call)

    assert response.result == "11"
    assert response.updated is True
    assert response.cached is False
    assert len(reader.calls) == 2
    assert (await store.get(call.key)).value == "11"
    assert (await cache.read(call)).result == "11"


async def test_refresh_failure_is_never_masked(cache, reader, clock):
    call = cache.resolve(CONTRACT, "totalSupply", {})
    await cache.read(call)

    reader.fail = True
    with pytest.raises(ChainCallError):
        await cache.refresh(call)


async def test_store_read_failure_falls_through_to_chain(reader, clock):
    cache = ContractCache(CacheStore(BrokenSessionFactory()), reader, "1", clock=clock)
    call = cache.resolve(CONTRACT, "name", {})
    with pytest.raises(CacheWriteError):
        await cache.read(call)
    assert len(reader.calls) == 1


async def test_concurrent_cold_reads_all_fetch_and_succeed(
    cache, store, reader, monkeypatch
):
    fetch = reader.call
    all_fetching = asyncio.Event()

    async def call_after_every_reader_missed(*args):
        result = await fetch(*args)
        if len(reader.calls) == 8:
            all_fetching.set()
        await all_fetching.wait()
        return result

    monkeypatch.setattr(reader, "call", call_after_every_reader_missed)
    call = cache.resolve(CONTRACT, "tokenURI", {"tokenId": "5"})

    responses = await asyncio.gather(*(cache.read(call) for _ in range(8)))

    assert [r.cached for r in responses] == [False] * 8
    assert len(reader.calls) == 8
    assert (await store.get(call.key)).value == "tokenURI-value"
