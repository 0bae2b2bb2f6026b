"""Read-through cache of directory profiles and photos.

Profiles and photos are cached per lower-cased email with separate TTLs. A
confirmed "not found" is cached like any other value. Concurrent misses for the
same key share one directory call: the first caller through the key's gate
fetches, everyone queued behind it re-checks the cache and reuses the result.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol

from orgchart.core.config import Settings
from orgchart.models.directory import CacheStats, DirectoryUser, KindStats, PreloadSummary
from orgchart.services.directory_service import DirectoryService, directory_service
from orgchart.services.orgchart_repository import orgchart_repository

logger = logging.getLogger(__name__)

_PROFILE = "profile"
_PHOTO = "photo"

Photo = tuple[bytes | None, str | None]


class EmailSource(Protocol):
    async def list_employee_emails(self) -> list[str]: ...


@dataclass
class _CacheEntry:
    value: Any
    expires_at: float


@dataclass
class _Counter:
    hits: int = 0
    misses: int = 0

    def snapshot(self) -> KindStats:
        total = self.hits + self.misses
        return KindStats(hits=self.hits, misses=self.misses, hit_ratio=self.hits / total if total else 0.0)


class _Gate:
    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


def _normalize(email: str) -> str:
    return email.strip().lower()


class UserCacheService:
    def __init__(
        self,
        directory: DirectoryService | None = None,
        repository: EmailSource | None = None,
        profile_ttl: float = 6 * 60 * 60,
        photo_ttl: float = 24 * 60 * 60,
        preload_concurrency: int = 5,
        preload_pacing: float = 0.1,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.directory = directory
        self.repository = repository
        self.ttls = {_PROFILE: profile_ttl, _PHOTO: photo_ttl}
        self.preload_concurrency = preload_concurrency
        self.preload_pacing = preload_pacing
        self._clock = clock
        self._entries: dict[str, dict[str, _CacheEntry]] = {_PROFILE: {}, _PHOTO: {}}
        self._counters = {_PROFILE: _Counter(), _PHOTO: _Counter()}
        self._gates: dict[tuple[str, str], _Gate] = {}

    async def initialize(self, settings: Settings) -> None:
        self.ttls = {
            _PROFILE: settings.PROFILE_CACHE_TTL_SECONDS,
            _PHOTO: settings.PHOTO_CACHE_TTL_SECONDS,
        }
        self.preload_concurrency = settings.PRELOAD_CONCURRENCY
        self.preload_pacing = settings.PRELOAD_PACING_SECONDS

    async def close(self) -> None:
        self.clear()

    def clear(self) -> None:
        for entries in self._entries.values():
            entries.clear()

    def _lookup(self, kind: str, key: str) -> tuple[bool, Any]:
        entry = self._entries[kind].get(key)
        if entry is None:
            return False, None
        if entry.expires_at <= self._clock():
            del self._entries[kind][key]
            return False, None
        return True, entry.value

    def _store(self, kind: str, key: str, value: Any) -> None:
        self._entries[kind][key] = _CacheEntry(value=value, expires_at=self._clock() + self.ttls[kind])

    @asynccontextmanager
    async def _gate(self, kind: str, key: str) -> AsyncIterator[None]:
        gate_key = (kind, key)
        gate = self._gates.get(gate_key)
        if gate is None:
            gate = self._gates[gate_key] = _Gate()
        gate.users += 1
        try:
            async with gate.lock:
                yield
        finally:
            gate.users -= 1
            if gate.users == 0:
                self._gates.pop(gate_key, None)

    async def _get_or_fetch(self, kind: str, email: str, fetch: Callable[[str], Awaitable[Any]]) -> Any:
        key = _normalize(email)
        counter = self._counters[kind]

        hit, value = self._lookup(kind, key)
        if hit:
            counter.hits += 1
            logger.debug("User %s cache hit for: %s", kind, key)
            return value

        async with self._gate(kind, key):
            hit, value = self._lookup(kind, key)
            if hit:
                counter.hits += 1
                return value

            counter.misses += 1
            logger.debug("User %s cache miss for: %s", kind, key)
            if self.directory is None:
                raise RuntimeError("UserCacheService has no directory configured")
            value = await fetch(email.strip())
            self._store(kind, key, value)
            return value

    async def get_profile(self, email: str) -> DirectoryUser | None:
        if not email or not email.strip():
            return None
        return await self._get_or_fetch(_PROFILE, email, lambda e: self.directory.get_user_by_email(e))

    async def get_photo(self, email: str) -> Photo:
        if not email or not email.strip():
            return None, None
        return await self._get_or_fetch(_PHOTO, email, lambda e: self.directory.get_user_photo(e))

    async def refresh(self, email: str) -> None:
        if not email or not email.strip():
            return

        key = _normalize(email)
        self._entries[_PROFILE].pop(key, None)
        self._entries[_PHOTO].pop(key, None)
        logger.info("Refreshing user data for: %s", key)

        await self.get_profile(email)
        await self.get_photo(email)

    async def preload_all(self) -> PreloadSummary:
        if self.repository is None:
            raise RuntimeError("UserCacheService has no repository configured")

        emails = await self.repository.list_employee_emails()
        logger.info("Starting preload of %d unique emails", len(emails))

        semaphore = asyncio.Semaphore(self.preload_concurrency)

        async def preload_one(email: str) -> bool:
            async with semaphore:
                try:
                    await self.get_profile(email)
                    await asyncio.sleep(self.preload_pacing)
                    await self.get_photo(email)
                    return True
                except Exception:
                    logger.warning("Failed to preload user data for: %s", email, exc_info=True)
                    return False

        results = await asyncio.gather(*(preload_one(email) for email in emails))
        succeeded = sum(1 for ok in results if ok)
        summary = PreloadSummary(total=len(emails), succeeded=succeeded, failed=len(emails) - succeeded)
        logger.info(
            "Completed preload: %d users, %d succeeded, %d failed",
            summary.total,
            summary.succeeded,
            summary.failed,
        )
        return summary

    def stats(self) -> CacheStats:
        return CacheStats(
            profile_stats=self._counters[_PROFILE].snapshot(),
            photo_stats=self._counters[_PHOTO].snapshot(),
            last_updated=datetime.now(timezone.utc),
        )


user_cache_service = UserCacheService(directory=directory_service, repository=orgchart_repository)
