"""
Tests for Redis-backed matrix sessions.
"""

import asyncio
import json

import pytest

from variant_matrix.core.matrix import MatrixOptions, MatrixValidationError, VariantMatrix
from variant_matrix.core.session_store import (
    MatrixSession,
    RedisSessionStore,
    SessionConflictError,
    SessionNotFoundError,
)


def test_create_get_round_trip(store, fake_redis):
    matrix = VariantMatrix(product_name="Tee")
    matrix.add_value(0, "Red")
    matrix.advance()

    async def scenario():
        session = await store.create(matrix)
        return session, await store.get(session.session_id)

    created, loaded = asyncio.run(scenario())

    assert loaded.session_id == created.session_id
    assert loaded.matrix.to_dict() == matrix.to_dict()
    key = f"matrix:{created.session_id}:session"
    assert json.loads(fake_redis.data[key])["matrix"]["product_name"] == "Tee"
    assert fake_redis.expiries[key] == 3600


def test_loaded_sessions_use_store_options(fake_redis):
    options = MatrixOptions(placeholder_base_url="https://img.test", sku_fallback_token="ITEM")
    store = RedisSessionStore(fake_redis, options=options)

    async def scenario():
        matrix = VariantMatrix()
        matrix.add_value(0, "Red")
        session = await store.create(matrix)
        loaded = await store.get(session.session_id)
        loaded.matrix.advance()
        return loaded.matrix.get_row("Red")

    row = asyncio.run(scenario())

    assert row.sku == "ITEM-Red"
    assert row.images == ["https://img.test/400x400/Red/white?text="]


def test_missing_session(store):
    with pytest.raises(SessionNotFoundError):
        asyncio.run(store.get("nope"))


def test_delete(store):
    async def scenario():
        session = await store.create(VariantMatrix())
        first = await store.delete(session.session_id)
        second = await store.delete(session.session_id)
        return first, second

    assert asyncio.run(scenario()) == (True, False)


def configured_session(store):
    matrix = VariantMatrix(product_name="Tee")
    matrix.add_value(0, "Red")
    matrix.advance()
    return asyncio.run(store.create(matrix))


def write_elsewhere(fake_redis, session_id, change):
    """Edit the stored session the way a second request would."""
    key = f"matrix:{session_id}:session"
    other = MatrixSession.from_json(fake_redis.data[key])
    change(other.matrix)
    fake_redis.put(key, other.to_json())


class TestUpdate:
    """Read-modify-write under WATCH."""

    def test_applies_action_and_returns_its_result(self, store):
        session = configured_session(store)

        saved, row = asyncio.run(store.update(session.session_id, lambda m: m.toggle_row("Red")))

        assert row.enabled is False
        assert saved.matrix.get_row("Red").enabled is False
        assert asyncio.run(store.get(session.session_id)).matrix.get_row("Red").enabled is False

    def test_concurrent_write_is_not_lost(self, store, fake_redis):
        session = configured_session(store)
        calls = []

        def toggle(matrix):
            calls.append(1)
            if len(calls) == 1:
                write_elsewhere(fake_redis, session.session_id, lambda m: m.update_row("Red", "price", 42))
            return matrix.toggle_row("Red")

        asyncio.run(store.update(session.session_id, toggle))

        red = asyncio.run(store.get(session.session_id)).matrix.get_row("Red")
        assert len(calls) == 2
        assert red.price == 42
        assert red.enabled is False

    def test_gives_up_after_max_retries(self, fake_redis):
        store = RedisSessionStore(fake_redis, max_retries=2)
        session = configured_session(store)

        def always_interrupted(matrix):
            write_elsewhere(fake_redis, session.session_id, lambda m: m.update_row("Red", "stock", 1))
            return matrix.toggle_row("Red")

        with pytest.raises(SessionConflictError):
            asyncio.run(store.update(session.session_id, always_interrupted))
        assert asyncio.run(store.get(session.session_id)).matrix.get_row("Red").enabled is True

    def test_failed_action_writes_nothing(self, store, fake_redis):
        session = configured_session(store)
        key = f"matrix:{session.session_id}:session"
        stored = fake_redis.data[key]

        with pytest.raises(MatrixValidationError):
            asyncio.run(store.update(session.session_id, lambda m: m.add_value(0, "Red")))
        assert fake_redis.data[key] == stored

    def test_missing_session(self, store):
        with pytest.raises(SessionNotFoundError):
            asyncio.run(store.update("nope", lambda m: m.regenerate()))
