"""Session registry: credential key -> initialized backend session.

The registry is an explicit object owned by the application (``app.state``)
rather than module state, so tests can build isolated instances.

Eviction: entries idle for longer than ``idle_ttl`` seconds are dropped and
their connections closed; when more than ``max_sessions`` entries exist the
least recently used idle ones go first. Entries with a send in flight are
never evicted.

The cache itself is only read and changed between awaits, so it needs no
lock. Creation is serialized per key and liveness checks run outside any
shared lock.
"""

import asyncio
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable, Optional

import httpx

from .backend.client import ChatClient
from .backend.connection import BackendConnection, BackendSettings, Credentials, mask_secret
from .backend.session import ConversationSession
from .core.exceptions import InitializationError, MissingCredentialsError

logger = logging.getLogger("t3proxy")

DEFAULT_KEY = "default"
DEFAULT_MAX_SESSIONS = 128
DEFAULT_IDLE_TTL = 3600.0


@dataclass
class RegistryEntry:
    key: str
    client: ChatClient
    created_at: float
    last_used: float = field(default=0.0)

    @property
    def session(self) -> ConversationSession:
        return self.client.session

    @property
    def connection(self) -> BackendConnection:
        return self.client.connection

    @property
    def busy(self) -> bool:
        return self.session.lock.locked()


def resolve_credentials(key: Optional[str], configured: Optional[Credentials]) -> Credentials:
    """Pick credentials for a registry key.

    Configured (process-wide) credentials win when both fields are present;
    otherwise the key itself must read ``cookies:convexSessionId``.
    """
    if configured is not None and configured.cookies and configured.convex_session_id:
        return configured
    if key and key != DEFAULT_KEY and ":" in key:
        cookies, _, convex_session_id = key.partition(":")
        if cookies and convex_session_id:
            return Credentials(cookies=cookies, convex_session_id=convex_session_id)
    raise MissingCredentialsError(
        "No credentials available. Either configure COOKIES and CONVEX_SESSION_ID "
        "or provide an API key in the format cookies:convexSessionId"
    )


class SessionRegistry:
    """Lazily creates and caches one ``ChatClient`` per credential key."""

    def __init__(
        self,
        settings: Optional[BackendSettings] = None,
        credentials: Optional[Credentials] = None,
        *,
        max_sessions: int = DEFAULT_MAX_SESSIONS,
        idle_ttl: float = DEFAULT_IDLE_TTL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings or BackendSettings()
        self.credentials = credentials
        self.max_sessions = max(1, int(max_sessions))
        self.idle_ttl = float(idle_ttl)
        self._transport = transport
        self._clock = clock
        self._entries: "OrderedDict[str, RegistryEntry]" = OrderedDict()
        self._creation_locks: dict[str, asyncio.Lock] = {}

    @property
    def has_configured_credentials(self) -> bool:
        creds = self.credentials
        return bool(creds and creds.cookies and creds.convex_session_id)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def keys(self) -> list[str]:
        return list(self._entries.keys())

    async def get_or_create(self, key: Optional[str] = None) -> RegistryEntry:
        """Return the cached entry for ``key``, creating and probing it on first use.

        Cache lookups never wait on another key's liveness check. Concurrent first
        calls for the same key share one creation.

        Raises:
            MissingCredentialsError: no usable credentials for the key.
            InitializationError: the new connection failed its liveness probe.
        """
        key = key or DEFAULT_KEY
        await self._close_entries(self._pop_expired(self._clock()), "idle")

        entry = self._touch(key)
        if entry is not None:
            return entry

        creation_lock = self._creation_locks.setdefault(key, asyncio.Lock())
        try:
            async with creation_lock:
                # another caller may have finished creating it while we waited
                entry = self._touch(key)
                if entry is not None:
                    return entry
                return await self._create(key)
        finally:
            if not creation_lock.locked() and self._creation_locks.get(key) is creation_lock:
                del self._creation_locks[key]

    def _touch(self, key: str) -> Optional[RegistryEntry]:
        entry = self._entries.get(key)
        if entry is not None:
            entry.last_used = self._clock()
            self._entries.move_to_end(key)
        return entry

    async def _create(self, key: str) -> RegistryEntry:
        credentials = resolve_credentials(key, self.credentials)
        connection = BackendConnection(credentials, self.settings, transport=self._transport)
        if not await connection.probe():
            await connection.aclose()
            raise InitializationError("Failed to initialize backend client")

        existing = self._touch(key)
        if existing is not None:
            await connection.aclose()
            return existing

        now = self._clock()
        entry = RegistryEntry(
            key=key,
            client=ChatClient(connection),
            created_at=now,
            last_used=now,
        )
        self._entries[key] = entry
        logger.info(
            "Created backend session for key %s (%d active)",
            mask_secret(key),
            len(self._entries),
        )
        await self._close_entries(self._pop_overflow(keep=key), "capacity")
        return entry

    async def evict(self, key: str) -> bool:
        entry = self._entries.pop(key, None)
        if entry is None:
            return False
        await entry.connection.aclose()
        logger.info("Evicted backend session for key %s", mask_secret(key))
        return True

    async def evict_expired(self) -> int:
        expired = self._pop_expired(self._clock())
        await self._close_entries(expired, "idle")
        return len(expired)

    def _pop_expired(self, now: float) -> list[RegistryEntry]:
        if self.idle_ttl <= 0:
            return []
        expired = [
            key
            for key, entry in self._entries.items()
            if not entry.busy and now - entry.last_used > self.idle_ttl
        ]
        return [self._entries.pop(key) for key in expired]

    def _pop_overflow(self, keep: str) -> list[RegistryEntry]:
        overflow = len(self._entries) - self.max_sessions
        if overflow <= 0:
            return []
        # OrderedDict keeps least recently used first
        candidates = [
            key
            for key, entry in self._entries.items()
            if key != keep and not entry.busy
        ]
        return [self._entries.pop(key) for key in candidates[:overflow]]

    async def _close_entries(self, entries: list[RegistryEntry], reason: str) -> None:
        for entry in entries:
            await entry.connection.aclose()
            logger.info("Evicted backend session for key %s (%s)", mask_secret(entry.key), reason)

    async def aclose(self) -> None:
        entries = list(self._entries.values())
        self._entries.clear()
        for entry in entries:
            await entry.connection.aclose()
