from __future__ import annotations

import logging
import time
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from applytrack.client.api_client import ApiError
from applytrack.config import Settings, get_settings

logger = logging.getLogger(__name__)

QueryKey = tuple[Any, ...]
Fetcher = Callable[[QueryKey], tuple[Any, int]]
Subscriber = Callable[[Any], None]

WILDCARD = "*"

APPLICATIONS_KEY: QueryKey = ("/api/applications",)
JOB_APPLICATIONS_KEY: QueryKey = ("/api/job-applications",)
INTERVIEW_PROCESSES_KEY: QueryKey = ("/api/interview/processes",)
CURRENT_USER_KEY: QueryKey = ("/api/users/me",)


def application_key(application_id: int) -> QueryKey:
    return ("/api/applications", application_id)


APPLICATION_DETAIL_PATTERN: QueryKey = ("/api/applications", WILDCARD)


@dataclass(slots=True)
class CacheEntry:
    data: Any = None
    version: int = -1
    stale: bool = True
    fetched_at: float = 0.0
    error: str = ""


@dataclass(slots=True)
class _Registration:
    pattern: QueryKey
    fetcher: Fetcher = field(repr=False)


def matches(key: QueryKey, prefix: QueryKey) -> bool:
    return key[: len(prefix)] == prefix


def matches_pattern(key: QueryKey, pattern: QueryKey) -> bool:
    if len(key) != len(pattern):
        return False
    return all(expected == WILDCARD or expected == actual for actual, expected in zip(key, pattern))


class QueryCache:
    """Client-side cache of named queries with prefix invalidation.

    Every fetch reports the server data version it observed. Invalidating
    with ``min_version`` re-polls a key until the fetched version reaches it,
    bounded by ``consistency_poll_attempts``.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings or get_settings()
        self._sleep = sleep
        self._entries: dict[QueryKey, CacheEntry] = {}
        self._subscribers: dict[QueryKey, list[Subscriber]] = defaultdict(list)
        self._registrations: list[_Registration] = []

    def register(self, pattern: QueryKey, fetcher: Fetcher) -> None:
        """Serve keys matching ``pattern`` (``"*"`` matches any single element)."""
        self._registrations.append(_Registration(pattern=pattern, fetcher=fetcher))

    def _fetcher_for(self, key: QueryKey) -> Fetcher:
        for registration in self._registrations:
            if matches_pattern(key, registration.pattern):
                return registration.fetcher
        raise KeyError(f"no fetcher registered for query {key!r}")

    def subscribe(self, key: QueryKey, callback: Subscriber) -> Callable[[], None]:
        self._subscribers[key].append(callback)
        self._entries.setdefault(key, CacheEntry())

        def unsubscribe() -> None:
            if callback in self._subscribers.get(key, []):
                self._subscribers[key].remove(callback)

        return unsubscribe

    def subscriber_count(self, key: QueryKey) -> int:
        return len(self._subscribers.get(key, []))

    def peek(self, key: QueryKey) -> CacheEntry | None:
        return self._entries.get(key)

    def is_stale(self, key: QueryKey) -> bool:
        entry = self._entries.get(key)
        return entry is None or entry.stale

    def get(self, key: QueryKey) -> Any:
        entry = self._entries.get(key)
        if entry is not None and not entry.stale:
            return entry.data
        return self.fetch(key).data

    def set_data(self, key: QueryKey, data: Any, version: int = 0) -> None:
        self._entries[key] = CacheEntry(data=data, version=version, stale=False, fetched_at=time.time())
        self._notify(key)

    def fetch(self, key: QueryKey, min_version: int | None = None) -> CacheEntry:
        fetcher = self._fetcher_for(key)
        attempts = max(1, self.settings.consistency_poll_attempts)

        data, version = fetcher(key)
        attempt = 1
        while min_version is not None and version < min_version and attempt < attempts:
            self._sleep(self.settings.consistency_poll_interval_sec)
            data, version = fetcher(key)
            attempt += 1

        caught_up = min_version is None or version >= min_version
        if not caught_up:
            logger.warning(
                "Query %r still at version %s after %s attempts (expected >= %s)",
                key,
                version,
                attempts,
                min_version,
            )

        entry = CacheEntry(data=data, version=version, stale=not caught_up, fetched_at=time.time())
        self._entries[key] = entry
        self._notify(key)
        return entry

    def invalidate(self, prefix: QueryKey, min_version: int | None = None) -> list[QueryKey]:
        """Mark every key under ``prefix`` stale and refetch the observed ones."""
        keys = {key for key in self._entries if matches(key, prefix)}
        keys.update(key for key, subs in self._subscribers.items() if subs and matches(key, prefix))

        refetched: list[QueryKey] = []
        for key in sorted(keys, key=repr):
            entry = self._entries.setdefault(key, CacheEntry())
            entry.stale = True
            if not self._subscribers.get(key):
                continue
            try:
                self.fetch(key, min_version=min_version)
            except ApiError as exc:
                entry.error = str(exc)
                logger.warning("Refetch of %r failed: %s", key, exc)
                continue
            refetched.append(key)
        return refetched

    def _notify(self, key: QueryKey) -> None:
        entry = self._entries[key]
        for callback in list(self._subscribers.get(key, [])):
            callback(entry.data)
