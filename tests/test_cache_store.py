import asyncio
import time

import pytest

from cache_api.core.exceptions.errors import CacheStoreError, CacheWriteError
from cache_api.utils.caching import CacheStore, WatermarkStore

from conftest import CONTRACT, OTHER_CONTRACT, BrokenSessionFactory, make_record


async def test_round_trip_returns_identical_value(store):
    value = {"recipient": "0xabc", "feeRate": "250", "list": ["1", "2"]}
    record = make_record(value=value)
    await store.set(record)

    loaded = await store.get(record.key)
    assert loaded == record
    assert loaded.value == value


async def test_get_missing_key_returns_none(store):
    assert await store.get("1:0xnothing:name") is None


async def test_get_returns_expired_entries(store):
    record = make_record(expire_at=int(time.time()) - 10)
    await store.set(record)

    loaded = await store.get(record.key)
    assert loaded is not None
    assert not loaded.is_fresh(time.time())


async def test_set_overwrites_whole_entry(store):
    first = make_record(value="old")
    await store.set(first)
    second = first.model_copy(update={"value": "new", "expire_at": first.expire_at + 60})
    await store.set(second)

    loaded = await store.get(first.key)
    assert loaded.value == "new"
    assert loaded.expire_at == first.expire_at + 60


async def test_concurrent_writes_to_one_key_all_succeed(store):
    records = [make_record(value=f"ipfs://token/5-v{i}") for i in range(8)]

    await asyncio.gather(*(store.set(record) for record in records))

    loaded = await store.get(records[0].key)
    assert loaded.value in {record.value for record in records}

    await store.set(records[3])
    assert (await store.get(records[0].key)).value == "ipfs://token/5-v3"


async def test_delete_by_contract_and_function(store):
    owner = make_record("ownerOf", ["1"])
    balance = make_record("balanceOf", ["0x33"])
    uri = make_record("tokenURI", ["1"])
    other = make_record("ownerOf", ["1"], contract=OTHER_CONTRACT)
    for record in (owner, balance, uri, other):
        await store.set(record)

    assert await store.delete_by_contract_and_function(CONTRACT.upper(), "ownerOf") == 1
    assert await store.get(owner.key) is None
    assert await store.get(balance.key) is not None
    assert await store.get(other.key) is not None

    assert await store.delete_by_contract_and_function(CONTRACT) == 2
    assert await store.get(uri.key) is None
    assert await store.get(other.key) is not None


async def test_delete_by_contract_with_no_matches(store):
    assert await store.delete_by_contract_and_function(CONTRACT, "ownerOf") == 0


async def test_purge_expired_keeps_entries_within_cutoff(store):
    now = int(time.time())
    old = make_record("ownerOf", ["1"], expire_at=now - 1000)
    recent = make_record("ownerOf", ["2"], expire_at=now - 10)
    await store.set(old)
    await store.set(recent)

    assert await store.purge_expired(now - 100) == 1
    assert await store.get(old.key) is None
    assert await store.get(recent.key) is not None


async def test_read_errors_are_treated_as_miss():
    store = CacheStore(BrokenSessionFactory())
    assert await store.get("1:0xabc:name") is None


async def test_write_errors_propagate():
    store = CacheStore(BrokenSessionFactory())
    with pytest.raises(CacheWriteError):
        await store.set(make_record())


async def test_scan_delete_errors_propagate():
    store = CacheStore(BrokenSessionFactory())
    with pytest.raises(CacheStoreError):
        await store.delete_by_contract_and_function(CONTRACT, "ownerOf")


async def test_watermark_round_trip(watermarks):
    assert await watermarks.load("event-monitor:1") is None
    await watermarks.save("event-monitor:1", 120)
    await watermarks.save("event-monitor:1", 130)
    assert await watermarks.load("event-monitor:1") == 130
    assert await watermarks.load("event-monitor:137") is None


async def test_concurrent_watermark_saves_all_succeed(watermarks):
    blocks = range(100, 108)
    await asyncio.gather(*(watermarks.save("event-monitor:1", b) for b in blocks))
    assert await watermarks.load("event-monitor:1") in blocks

    await watermarks.save("event-monitor:1", 200)
    assert await watermarks.load("event-monitor:1") == 200


async def test_watermark_read_errors_are_treated_as_absent():
    assert await WatermarkStore(BrokenSessionFactory()).load("event-monitor:1") is None


def test_record_freshness_boundary():
    record = make_record(expire_at=1_000)
    assert record.is_fresh(999.999)
    assert not record.is_fresh(1_000)
    assert not record.is_fresh(1_001)


def test_cached_at_is_iso_utc():
    record = make_record().model_copy(update={"created_at": 1_700_000_000_123})
    assert record.cached_at == "2023-11-14T22:13:20.123Z"
