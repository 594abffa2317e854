import asyncio
import time

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from cache_api.core.dependencies import get_cache_store, get_chain_reader
from cache_api.core.exceptions.errors import ChainCallError
from cache_api.db import Base
from cache_api.db.schemas.cache import CacheRecord
from cache_api.services.ethereum import coerce_arguments
from cache_api.services.policy import EVENT_TOPICS, lookup
from cache_api.utils.caching import CacheStore, WatermarkStore
from main import app

CONTRACT = "0xabcdef0123456789abcdef0123456789abcdef01"
OTHER_CONTRACT = "0x2222222222222222222222222222222222222222"
HOLDER = "0x3333333333333333333333333333333333333333"


class FakeChainReader:
    """In-memory stand-in for ChainReader that records every call."""

    def __init__(self):
        self.results = {}
        self.calls = []
        self.fail = False
        self.block_height = 100
        self.height_error = None
        self.logs = {}
        self.log_errors = {}
        self.log_requests = []

    async def call(self, contract_address, function_name, parameters):
        coerce_arguments(lookup(function_name), parameters)
        self.calls.append((contract_address, function_name, list(parameters)))
        if self.fail:
            raise ChainCallError(f"{function_name} call failed")
        return self.results.get(function_name, f"{function_name}-value")

    async def get_current_block_height(self):
        if self.height_error:
            raise self.height_error
        return self.block_height

    async def get_event_logs(self, contract_address, events, from_block, to_block):
        self.log_requests.append((contract_address, from_block, to_block))
        if contract_address in self.log_errors:
            raise self.log_errors[contract_address]
        return list(self.logs.get(contract_address, []))


class BrokenSessionFactory:
    """Session factory whose every session fails like an unreachable database."""

    def __call__(self):
        raise OperationalError("SELECT 1", {}, Exception("database is locked"))


def make_log(event, block=100):
    return {"topics": [EVENT_TOPICS[event]], "blockNumber": block}


def make_record(
    function="tokenURI",
    params=("5",),
    contract=CONTRACT,
    expire_at=None,
    value="ipfs://token/5",
):
    now = int(time.time())
    params = list(params)
    suffix = "".join(f":{p}" for p in params)
    return CacheRecord(
        key=f"1:{contract}:{function}{suffix}",
        value=value,
        expire_at=expire_at if expire_at is not None else now + 3600,
        created_at=now * 1000,
        contract_address=contract,
        function_name=function,
        parameters=params or None,
    )


def _engine(tmp_path):
    return create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'cache.db'}", poolclass=NullPool
    )


async def _create_tables(engine):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@pytest.fixture
async def session_factory(tmp_path):
    engine = _engine(tmp_path)
    await _create_tables(engine)
    yield async_sessionmaker(bind=engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def store(session_factory):
    return CacheStore(session_factory)


@pytest.fixture
def watermarks(session_factory):
    return WatermarkStore(session_factory)


@pytest.fixture
def reader():
    return FakeChainReader()


@pytest.fixture
def api_store(tmp_path):
    """A CacheStore for synchronous TestClient tests."""
    engine = _engine(tmp_path)
    asyncio.run(_create_tables(engine))
    return CacheStore(async_sessionmaker(bind=engine, expire_on_commit=False))


@pytest.fixture
def client(api_store, reader):
    app.dependency_overrides[get_cache_store] = lambda: api_store
    app.dependency_overrides[get_chain_reader] = lambda: reader
    yield TestClient(app)
    app.dependency_overrides.clear()
