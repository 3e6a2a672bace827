"""Tests for session stores, the atomic commit helper and cookie signing."""

import asyncio
from datetime import timedelta

import pytest
from pydantic import ValidationError as PydanticValidationError

from authgate.auth_providers.session import (
    InMemorySessionStore,
    RedisSessionStore,
    build_session_store,
    commit_session,
    connect_session_store,
    sign_session_id,
    unsign_session_id,
)
from authgate.core.config import Settings
from authgate.errors import SessionCommitError, SessionNotFound
from authgate.models import Identity

from conftest import MutableClock


ADA = Identity(id="u_1", name="Ada", email="ada@example.com", provider="local")
GRACE = Identity(id="g-1", name="Grace", provider="google")


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the session store."""

    def __init__(self):
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.closed = False

    async def ping(self):
        return True

    async def setex(self, key, seconds, value):
        self.data[key] = value
        self.ttls[key] = seconds
        return True

    async def set(self, key, value, xx=False, keepttl=False):
        if xx and key not in self.data:
            return None
        self.data[key] = value
        if not keepttl:
            self.ttls.pop(key, None)
        return True

    async def get(self, key):
        return self.data.get(key)

    async def delete(self, key):
        self.ttls.pop(key, None)
        return 1 if self.data.pop(key, None) is not None else 0

    async def aclose(self):
        self.closed = True


class TestInMemorySessionStore:

    @pytest.mark.asyncio
    async def test_create_then_get(self, session_store, clock):
        session = await session_store.create(ADA)

        fetched = await session_store.get(session.session_id)
        assert fetched == session
        assert fetched.user == ADA
        assert session.expires_at - session.created_at == timedelta(hours=24)
        assert session.created_at == clock.now

    @pytest.mark.asyncio
    async def test_session_ids_are_unique_and_opaque(self, session_store):
        first = await session_store.create(ADA)
        second = await session_store.create(ADA)

        assert first.session_id != second.session_id
        assert len(first.session_id) >= 32
        assert ADA.id not in first.session_id

    @pytest.mark.asyncio
    async def test_expired_session_is_absent(self, session_store, clock):
        session = await session_store.create(ADA)

        clock.advance(hours=25)

        assert await session_store.get(session.session_id) is None
        assert len(session_store) == 0

    @pytest.mark.asyncio
    async def test_session_valid_until_ttl(self, session_store, clock):
        session = await session_store.create(ADA)

        clock.advance(hours=23, minutes=59)

        assert await session_store.get(session.session_id) is not None

    @pytest.mark.asyncio
    async def test_replace_swaps_user_wholesale(self, session_store, clock):
        session = await session_store.create(ADA)
        clock.advance(hours=1)

        await session_store.replace(session.session_id, GRACE)

        fetched = await session_store.get(session.session_id)
        assert fetched.user == GRACE
        assert fetched.created_at == session.created_at
        assert fetched.expires_at == session.expires_at

    @pytest.mark.asyncio
    async def test_replace_missing_session_raises(self, session_store):
        with pytest.raises(SessionNotFound):
            await session_store.replace("nope", ADA)

    @pytest.mark.asyncio
    async def test_replace_expired_session_raises(self, session_store, clock):
        session = await session_store.create(ADA)
        clock.advance(hours=24)

        with pytest.raises(SessionNotFound):
            await session_store.replace(session.session_id, GRACE)

    @pytest.mark.asyncio
    async def test_returned_session_cannot_alter_stored_record(self, session_store, clock):
        session = await session_store.create(ADA)
        fetched = await session_store.get(session.session_id)

        with pytest.raises(PydanticValidationError):
            fetched.user = GRACE
        with pytest.raises(PydanticValidationError):
            fetched.expires_at = clock()

        stored = await session_store.get(session.session_id)
        assert stored.user == ADA
        assert stored.expires_at == session.expires_at

    @pytest.mark.asyncio
    async def test_destroy_is_idempotent(self, session_store):
        session = await session_store.create(ADA)

        await session_store.destroy(session.session_id)
        await session_store.destroy(session.session_id)

        assert await session_store.get(session.session_id) is None

    @pytest.mark.asyncio
    async def test_purge_expired(self, session_store, clock):
        await session_store.create(ADA)
        clock.advance(hours=12)
        live = await session_store.create(GRACE)
        clock.advance(hours=13)

        assert session_store.purge_expired() == 1
        assert await session_store.get(live.session_id) is not None

    @pytest.mark.asyncio
    async def test_concurrent_creates_do_not_interfere(self, session_store):
        sessions = await asyncio.gather(*(session_store.create(ADA) for _ in range(50)))

        assert len({s.session_id for s in sessions}) == 50
        assert len(session_store) == 50


class TestRedisSessionStore:

    @pytest.fixture
    def redis_client(self):
        return FakeRedis()

    @pytest.fixture
    def store(self, redis_client, clock):
        return RedisSessionStore(client=redis_client, clock=clock)

    @pytest.mark.asyncio
    async def test_create_sets_ttl(self, store, redis_client):
        session = await store.create(ADA)

        key = f"session:{session.session_id}"
        assert key in redis_client.data
        assert redis_client.ttls[key] == 24 * 60 * 60

    @pytest.mark.asyncio
    async def test_round_trip(self, store):
        session = await store.create(GRACE)

        fetched = await store.get(session.session_id)
        assert fetched.user == GRACE
        assert fetched.expires_at == session.expires_at

    @pytest.mark.asyncio
    async def test_expired_record_is_absent_even_if_still_stored(self, store, clock, redis_client):
        session = await store.create(ADA)
        clock.advance(hours=25)

        assert await store.get(session.session_id) is None
        assert f"session:{session.session_id}" not in redis_client.data

    @pytest.mark.asyncio
    async def test_replace_keeps_ttl(self, store, redis_client):
        session = await store.create(ADA)

        await store.replace(session.session_id, GRACE)

        key = f"session:{session.session_id}"
        assert redis_client.ttls[key] == 24 * 60 * 60
        assert (await store.get(session.session_id)).user == GRACE

    @pytest.mark.asyncio
    async def test_replace_missing_raises(self, store):
        with pytest.raises(SessionNotFound):
            await store.replace("missing", ADA)

    @pytest.mark.asyncio
    async def test_unreadable_record_discarded(self, store, redis_client):
        redis_client.data["session:bad"] = "{not json"

        assert await store.get("bad") is None
        assert "session:bad" not in redis_client.data

    @pytest.mark.asyncio
    async def test_disconnect_closes_client(self, store, redis_client):
        await store.disconnect()

        assert redis_client.closed


class TestCommitSession:

    @pytest.mark.asyncio
    async def test_creates_when_no_current_session(self, session_store):
        session = await commit_session(session_store, ADA)

        assert (await session_store.get(session.session_id)).user == ADA

    @pytest.mark.asyncio
    async def test_rotates_live_session(self, session_store):
        existing = await session_store.create(ADA)

        session = await commit_session(session_store, GRACE, existing.session_id)

        assert session.session_id != existing.session_id
        assert session.user == GRACE
        assert await session_store.get(existing.session_id) is None
        assert len(session_store) == 1

    @pytest.mark.asyncio
    async def test_failed_commit_keeps_previous_session(self, clock):
        class LossyStore(InMemorySessionStore):
            async def get(self, session_id):
                if session_id in self.unconfirmed:
                    return None
                return await super().get(session_id)

            async def create(self, identity):
                session = await super().create(identity)
                self.unconfirmed.add(session.session_id)
                return session

        store = LossyStore(clock=clock)
        store.unconfirmed = set()
        existing = await InMemorySessionStore.create(store, ADA)

        with pytest.raises(SessionCommitError):
            await commit_session(store, GRACE, existing.session_id)

        assert (await store.get(existing.session_id)).user == ADA
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_creates_when_current_session_expired(self, session_store, clock):
        existing = await session_store.create(ADA)
        clock.advance(hours=30)

        session = await commit_session(session_store, GRACE, existing.session_id)

        assert session.session_id != existing.session_id

    @pytest.mark.asyncio
    async def test_write_failure_raises_and_leaves_nothing(self, clock):
        class BrokenStore(InMemorySessionStore):
            async def create(self, identity):
                raise ConnectionError("backend down")

        store = BrokenStore(clock=clock)

        with pytest.raises(SessionCommitError):
            await commit_session(store, ADA)
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_unconfirmed_write_is_discarded(self, clock):
        class LossyStore(InMemorySessionStore):
            async def get(self, session_id):
                return None

        store = LossyStore(clock=clock)

        with pytest.raises(SessionCommitError):
            await commit_session(store, ADA)
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_cancellation_during_confirmation_discards_session(self, clock):
        reached = asyncio.Event()

        class StallingStore(InMemorySessionStore):
            async def get(self, session_id):
                reached.set()
                await asyncio.sleep(3600)

        store = StallingStore(clock=clock)
        task = asyncio.create_task(commit_session(store, ADA))
        await reached.wait()
        assert len(store) == 1

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert len(store) == 0


class TestStoreSelection:

    def test_in_memory_without_redis(self):
        store = build_session_store(Settings(_env_file=None, REDIS_URL=None))

        assert isinstance(store, InMemorySessionStore)

    def test_redis_when_configured(self):
        store = build_session_store(Settings(_env_file=None, REDIS_URL="redis://localhost:6379/0"))

        assert isinstance(store, RedisSessionStore)

    @pytest.mark.asyncio
    async def test_falls_back_when_redis_unreachable(self):
        class DeadRedis(FakeRedis):
            async def ping(self):
                raise ConnectionError("refused")

        settings = Settings(_env_file=None, SESSION_TTL_HOURS=2)
        store = await connect_session_store(RedisSessionStore(client=DeadRedis()), settings)

        assert isinstance(store, InMemorySessionStore)
        assert store.ttl == timedelta(hours=2)


class TestCookieSigning:

    def test_round_trip(self):
        signed = sign_session_id("abc123", "secret")

        assert signed != "abc123"
        assert unsign_session_id(signed, "secret") == "abc123"

    def test_wrong_secret_rejected(self):
        signed = sign_session_id("abc123", "secret")

        assert unsign_session_id(signed, "other") is None

    @pytest.mark.parametrize("value", ["abc123", "a.b.c", ""])
    def test_garbage_rejected(self, value):
        assert unsign_session_id(value, "secret") is None


def test_clock_helper_advances():
    clock = MutableClock()
    start = clock()
    clock.advance(minutes=5)

    assert clock() - start == timedelta(minutes=5)
