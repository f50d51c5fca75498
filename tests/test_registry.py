"""Tests for the credential-keyed session registry."""

import asyncio

import pytest

from t3proxy.backend import BackendSettings, Credentials
from t3proxy.core.exceptions import InitializationError, MissingCredentialsError
from t3proxy.registry import DEFAULT_KEY, SessionRegistry, resolve_credentials
from t3proxy.testing import FakeBackend

from conftest import TEST_BASE_URL, TEST_CREDENTIALS


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_registry(backend: FakeBackend, credentials=None, **kwargs) -> SessionRegistry:
    return SessionRegistry(
        BackendSettings(base_url=TEST_BASE_URL),
        credentials,
        transport=backend.transport,
        **kwargs,
    )


class TestResolveCredentials:
    """Tests for picking credentials for a key."""

    def test_configured_credentials_win(self):
        assert resolve_credentials("ck:cs", TEST_CREDENTIALS) is TEST_CREDENTIALS
        assert resolve_credentials(DEFAULT_KEY, TEST_CREDENTIALS) is TEST_CREDENTIALS

    def test_key_split_on_first_colon(self):
        credentials = resolve_credentials("a=1; b=2:convex:with:colons", None)
        assert credentials == Credentials(cookies="a=1; b=2", convex_session_id="convex:with:colons")

    def test_incomplete_configured_credentials_ignored(self):
        partial = Credentials(cookies="c", convex_session_id="")
        assert resolve_credentials("x:y", partial) == Credentials("x", "y")

    @pytest.mark.parametrize("key", [None, "", DEFAULT_KEY, "no-colon", ":only-session", "only-cookies:"])
    def test_missing_credentials(self, key):
        with pytest.raises(MissingCredentialsError):
            resolve_credentials(key, None)


class TestSessionRegistry:
    """Tests for session creation and reuse."""

    @pytest.mark.asyncio
    async def test_entry_is_reused(self, fake_backend: FakeBackend):
        registry = make_registry(fake_backend, TEST_CREDENTIALS)

        first = await registry.get_or_create()
        second = await registry.get_or_create(DEFAULT_KEY)

        assert first is second
        assert fake_backend.probe_count == 1
        assert len(registry) == 1
        assert DEFAULT_KEY in registry
        await registry.aclose()

    @pytest.mark.asyncio
    async def test_distinct_keys_get_distinct_sessions(self, fake_backend: FakeBackend):
        registry = make_registry(fake_backend)

        one = await registry.get_or_create("c1:s1")
        two = await registry.get_or_create("c2:s2")

        assert one.session is not two.session
        assert one.connection.credentials == Credentials("c1", "s1")
        assert two.connection.credentials == Credentials("c2", "s2")
        assert registry.keys() == ["c1:s1", "c2:s2"]
        await registry.aclose()

    @pytest.mark.asyncio
    async def test_missing_credentials_makes_no_backend_call(self, fake_backend: FakeBackend):
        registry = make_registry(fake_backend)

        with pytest.raises(MissingCredentialsError):
            await registry.get_or_create()

        assert fake_backend.request_count == 0
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_failed_probe_is_not_cached(self):
        backend = FakeBackend(probe_status=403)
        registry = make_registry(backend, TEST_CREDENTIALS)

        with pytest.raises(InitializationError):
            await registry.get_or_create()
        assert len(registry) == 0

        backend.probe_status = 200
        entry = await registry.get_or_create()
        assert entry.key == DEFAULT_KEY
        assert backend.probe_count == 2
        await registry.aclose()

    @pytest.mark.asyncio
    async def test_probe_sends_cookie(self, fake_backend: FakeBackend):
        registry = make_registry(fake_backend, TEST_CREDENTIALS)
        await registry.get_or_create()

        probe = fake_backend.requests[0]
        assert probe.method == "GET"
        assert probe.headers["cookie"] == TEST_CREDENTIALS.cookies
        await registry.aclose()


class TestEviction:
    """Tests for idle expiry and capacity limits."""

    @pytest.mark.asyncio
    async def test_idle_entries_expire(self, fake_backend: FakeBackend):
        clock = FakeClock()
        registry = make_registry(fake_backend, idle_ttl=60, clock=clock)
        entry = await registry.get_or_create("c:s")

        clock.advance(61)
        assert await registry.evict_expired() == 1

        assert len(registry) == 0
        assert entry.connection.closed is True

    @pytest.mark.asyncio
    async def test_use_refreshes_idle_timer(self, fake_backend: FakeBackend):
        clock = FakeClock()
        registry = make_registry(fake_backend, idle_ttl=60, clock=clock)
        first = await registry.get_or_create("c:s")

        clock.advance(45)
        assert await registry.get_or_create("c:s") is first
        clock.advance(45)

        assert await registry.evict_expired() == 0
        assert await registry.get_or_create("c:s") is first
        await registry.aclose()

    @pytest.mark.asyncio
    async def test_expired_entry_is_recreated(self, fake_backend: FakeBackend):
        clock = FakeClock()
        registry = make_registry(fake_backend, idle_ttl=60, clock=clock)
        first = await registry.get_or_create("c:s")

        clock.advance(120)
        second = await registry.get_or_create("c:s")

        assert second is not first
        assert first.connection.closed is True
        assert fake_backend.probe_count == 2
        await registry.aclose()

    @pytest.mark.asyncio
    async def test_busy_entry_is_not_expired(self, fake_backend: FakeBackend):
        clock = FakeClock()
        registry = make_registry(fake_backend, idle_ttl=60, clock=clock)
        entry = await registry.get_or_create("c:s")

        async with entry.session.lock:
            clock.advance(600)
            assert await registry.evict_expired() == 0
            assert entry.busy is True

        assert await registry.evict_expired() == 1

    @pytest.mark.asyncio
    async def test_capacity_evicts_least_recently_used(self, fake_backend: FakeBackend):
        registry = make_registry(fake_backend, max_sessions=2)
        a = await registry.get_or_create("a:1")
        await registry.get_or_create("b:2")
        await registry.get_or_create("a:1")

        await registry.get_or_create("c:3")

        assert registry.keys() == ["a:1", "c:3"]
        assert a.connection.closed is False
        await registry.aclose()

    @pytest.mark.asyncio
    async def test_capacity_keeps_new_entry_when_others_busy(self, fake_backend: FakeBackend):
        registry = make_registry(fake_backend, max_sessions=1)
        a = await registry.get_or_create("a:1")

        async with a.session.lock:
            await registry.get_or_create("b:2")
            assert registry.keys() == ["a:1", "b:2"]

        await registry.aclose()

    @pytest.mark.asyncio
    async def test_explicit_evict(self, fake_backend: FakeBackend):
        registry = make_registry(fake_backend)
        entry = await registry.get_or_create("c:s")

        assert await registry.evict("c:s") is True
        assert await registry.evict("c:s") is False
        assert entry.connection.closed is True

    @pytest.mark.asyncio
    async def test_aclose_closes_all(self, fake_backend: FakeBackend):
        registry = make_registry(fake_backend)
        entries = [await registry.get_or_create(f"c{i}:s{i}") for i in range(3)]

        await registry.aclose()

        assert len(registry) == 0
        assert all(entry.connection.closed for entry in entries)


class TestConcurrentCreation:
    """A slow liveness check for one key never holds up other keys."""

    @pytest.mark.asyncio
    async def test_cached_key_not_blocked_by_slow_creation(self, fake_backend: FakeBackend):
        gate = asyncio.Event()
        fake_backend.liveness_gates["slow"] = gate
        registry = make_registry(fake_backend)
        cached = await registry.get_or_create("fast:1")

        slow = asyncio.create_task(registry.get_or_create("slow:2"))
        await asyncio.sleep(0.01)
        assert not slow.done()

        assert await asyncio.wait_for(registry.get_or_create("fast:1"), 1.0) is cached
        other = await asyncio.wait_for(registry.get_or_create("other:3"), 1.0)
        assert other.key == "other:3"

        gate.set()
        entry = await asyncio.wait_for(slow, 1.0)
        assert entry.key == "slow:2"
        assert registry.keys() == ["fast:1", "other:3", "slow:2"]
        await registry.aclose()

    @pytest.mark.asyncio
    async def test_concurrent_first_calls_share_one_connection(self, fake_backend: FakeBackend):
        gate = asyncio.Event()
        fake_backend.liveness_gates["same"] = gate
        registry = make_registry(fake_backend)

        first = asyncio.create_task(registry.get_or_create("same:1"))
        second = asyncio.create_task(registry.get_or_create("same:1"))
        await asyncio.sleep(0.01)
        assert fake_backend.probe_count == 1

        gate.set()
        one, two = await asyncio.wait_for(asyncio.gather(first, second), 1.0)

        assert one is two
        assert fake_backend.probe_count == 1
        assert len(registry) == 1
        await registry.aclose()

    @pytest.mark.asyncio
    async def test_waiter_retries_after_failed_creation(self):
        backend = FakeBackend(probe_status=403)
        gate = asyncio.Event()
        backend.liveness_gates["same"] = gate
        registry = make_registry(backend)

        first = asyncio.create_task(registry.get_or_create("same:1"))
        second = asyncio.create_task(registry.get_or_create("same:1"))
        await asyncio.sleep(0.01)
        gate.set()
        results = await asyncio.gather(first, second, return_exceptions=True)

        assert all(isinstance(result, InitializationError) for result in results)
        assert backend.probe_count == 2
        assert len(registry) == 0
