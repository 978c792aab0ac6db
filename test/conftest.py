import logging

import pytest
from fakeredis import FakeServer
from fakeredis.aioredis import FakeRedis

from async_session.backends import MemoryStore, RedisStore, SQLAlchemyStore
from async_session.tokens import TokenCodec

TEST_SECRET = "test-secret-key-that-is-long-enough-for-hmac-signing"


@pytest.fixture(scope="session", autouse=True)
def configure_logging():
    """Configure logging for tests."""
    logging.basicConfig(level=logging.INFO)


@pytest.fixture
def secret():
    return TEST_SECRET


@pytest.fixture
def codec(secret):
    return TokenCodec(secret)


@pytest.fixture
def memory_store(codec):
    return MemoryStore(codec)


@pytest.fixture
def sqlalchemy_store(codec, tmp_path):
    store = SQLAlchemyStore.from_url(f"sqlite:///{tmp_path / 'sessions.db'}", codec)
    yield store
    store.engine.dispose()


@pytest.fixture
def fake_redis_store(codec):
    redis_client = FakeRedis(server=FakeServer(), decode_responses=True)
    return RedisStore(redis_client, codec, key_prefix="test-sessions:")


@pytest.fixture(params=["memory", "sqlalchemy", "fake_redis"])
def store(request):
    """Every backend, for the shared contract tests."""
    return request.getfixturevalue(f"{request.param}_store")
