"""
Contract tests every session backend must pass.

The ``store`` fixture is parametrized over every backend, Redis running
against fakeredis (see conftest.py).
"""

import asyncio
import logging
from datetime import timedelta
from unittest.mock import patch

import pytest

from async_session.backends import RedisStore
from async_session.exceptions import BackendUnavailableError
from async_session.session import Session, utcnow


async def _persist(store, **data) -> tuple[Session, str]:
    session = store.new_session()
    for key, value in data.items():
        session.insert(key, value)
    token = await store.store(session)
    return session, token


@pytest.mark.asyncio
async def test_store_then_load(store):
    session, token = await _persist(store, user_id="42")

    loaded = await store.load(token)

    assert loaded is not None
    assert loaded.id == session.id
    assert loaded.get("user_id") == "42"
    assert not loaded.dirty


@pytest.mark.asyncio
async def test_store_returns_token_and_clears_dirty(store, codec):
    session = store.new_session()
    assert session.dirty

    token = await store.store(session)

    assert codec.decode(token) == session.id
    assert not session.dirty


@pytest.mark.asyncio
async def test_tampered_token_loads_nothing(store):
    _, token = await _persist(store, user_id="42")

    assert await store.load(token + "x") is None
    assert await store.load(token[:-1]) is None
    assert await store.load("") is None


@pytest.mark.asyncio
async def test_unknown_id_loads_nothing(store, codec):
    assert await store.load(codec.encode(codec.generate_id())) is None


@pytest.mark.asyncio
async def test_updating_a_session_keeps_token(store):
    _, token = await _persist(store, key="value")

    session = await store.load(token)
    session.insert("key", "other value")
    new_token = await store.store(session)

    assert new_token == token
    reloaded = await store.load(token)
    assert reloaded.get("key") == "other value"


@pytest.mark.asyncio
async def test_clean_session_is_not_rewritten(store):
    _, token = await _persist(store, key="value")
    session = await store.load(token)

    with patch.object(store, "_write", wraps=store._write) as write:
        assert await store.store(session) == token
        write.assert_not_called()

        session.insert("key", "changed")
        await store.store(session)
        write.assert_called_once()


@pytest.mark.asyncio
async def test_loaded_sessions_are_independent_copies(store):
    _, token = await _persist(store, profile={"name": "ada"})

    first = await store.load(token)
    second = await store.load(token)
    first.insert("profile", {"name": "grace"})

    assert second.get("profile") == {"name": "ada"}


@pytest.mark.asyncio
async def test_changes_to_read_values_are_never_silently_dropped(store):
    _, token = await _persist(store, cart=["a"])
    loaded = await store.load(token)

    loaded.get("cart").append("b")
    assert loaded.get("cart") == ["a"]
    assert not loaded.dirty

    cart = loaded.get("cart")
    cart.append("b")
    loaded.insert("cart", cart)
    await store.store(loaded)

    assert (await store.load(token)).get("cart") == ["a", "b"]


@pytest.mark.asyncio
async def test_expiry_roundtrip(store):
    session = store.new_session()
    session.expire_in(timedelta(hours=1))
    token = await store.store(session)

    loaded = await store.load(token)

    assert loaded.expiry == session.expiry


@pytest.mark.asyncio
async def test_expired_session_loads_nothing(store):
    session = store.new_session()
    session.expire_in(timedelta(minutes=5))
    token = await store.store(session)

    assert await store.load(token) is not None
    assert await store.load(token, now=session.expiry) is None
    assert await store.load(token, now=session.expiry + timedelta(seconds=1)) is None


@pytest.mark.asyncio
async def test_session_stored_already_expired_loads_nothing(store):
    session = store.new_session()
    session.set_expiry(utcnow() - timedelta(seconds=1))
    token = await store.store(session)

    assert await store.load(token) is None


@pytest.mark.asyncio
async def test_destroy_removes_record(store):
    session, token = await _persist(store, user_id="42")

    await store.destroy(session)

    assert session.destroyed
    assert await store.load(token) is None


@pytest.mark.asyncio
async def test_destroy_is_idempotent(store):
    session, _ = await _persist(store)

    await store.destroy(session)
    await store.destroy(session)


@pytest.mark.asyncio
async def test_destroying_unsaved_session_is_not_an_error(store):
    await store.destroy(store.new_session())


@pytest.mark.asyncio
async def test_storing_destroyed_session_deletes_it(store):
    _, token = await _persist(store, user_id="42")
    session = await store.load(token)

    session.destroy()
    result = await store.store(session)

    assert result is None
    assert await store.load(token) is None


@pytest.mark.asyncio
async def test_destroy_only_affects_one_session(store):
    _, keep_token = await _persist(store, name="keep")
    doomed, doomed_token = await _persist(store, name="doomed")

    await store.destroy(doomed)

    assert await store.load(doomed_token) is None
    assert (await store.load(keep_token)).get("name") == "keep"


@pytest.mark.asyncio
async def test_regenerate_rotates_token_and_keeps_data(store, codec):
    _, old_token = await _persist(store, user_id="42")
    loaded = await store.load(old_token)

    renewed = loaded.regenerate_id(codec)
    new_token = await store.store(renewed)

    assert new_token != old_token
    assert (await store.load(new_token)).get("user_id") == "42"
    assert await store.load(old_token) is None
    assert renewed.replaces is None


@pytest.mark.asyncio
async def test_clear_all(store):
    tokens = [(await _persist(store, n=n))[1] for n in range(3)]

    await store.clear_all()

    for token in tokens:
        assert await store.load(token) is None


@pytest.mark.asyncio
async def test_cleanup_removes_only_expired(store):
    live = store.new_session()
    live.expire_in(timedelta(hours=1))
    live_token = await store.store(live)
    forever_token = (await _persist(store))[1]
    for _ in range(2):
        stale = store.new_session()
        stale.set_expiry(utcnow() - timedelta(seconds=1))
        await store.store(stale)

    removed = await store.cleanup()

    # redis never keeps an expired key, so there is nothing left to purge
    assert removed == (0 if isinstance(store, RedisStore) else 2)
    assert await store.load(live_token) is not None
    assert await store.load(forever_token) is not None
    assert await store.cleanup() == 0


@pytest.mark.asyncio
async def test_concurrent_writes_to_same_id_are_whole_records(store):
    _, token = await _persist(store, writer=-1)
    copies = []
    for n in range(10):
        copy = await store.load(token)
        copy.insert("writer", n)
        copy.insert(f"only-{n}", n)
        copies.append(copy)

    await asyncio.gather(*(store.store(copy) for copy in copies))

    final = await store.load(token)
    n = final.get("writer")
    assert n in range(10)
    assert dict(final.data) == {"writer": n, f"only-{n}": n}


@pytest.mark.asyncio
async def test_concurrent_sessions_do_not_interfere(store):
    results = await asyncio.gather(*(_persist(store, n=n) for n in range(20)))

    for n, (_, token) in enumerate(results):
        assert (await store.load(token)).get("n") == n


@pytest.mark.asyncio
async def test_cancelled_store_still_completes_write(store):
    session = store.new_session()
    session.insert("key", "value")
    token = store.codec.encode(session.id)

    task = asyncio.create_task(store.store(session))
    await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    # let the shielded write finish
    for _ in range(50):
        if await store.load(token) is not None:
            break
        await asyncio.sleep(0.01)

    loaded = await store.load(token)
    assert loaded is not None
    assert loaded.get("key") == "value"


@pytest.mark.asyncio
async def test_write_failing_after_cancellation_is_logged(store, caplog):
    async def failing_write(record):
        await asyncio.sleep(0.01)
        raise BackendUnavailableError("Database error during session write")

    session = store.new_session()
    with patch.object(store, "_write", side_effect=failing_write):
        task = asyncio.create_task(store.store(session))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        await asyncio.sleep(0.05)

    failures = [r for r in caplog.records if r.levelno == logging.ERROR and "caller was cancelled" in r.getMessage()]
    assert len(failures) == 1
    assert session.id[:8] in failures[0].getMessage()
