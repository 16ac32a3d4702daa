from __future__ import annotations

import logging
from typing import Any

from applytrack.client.api_client import ApiClient, AuthenticationRequired
from applytrack.config import Settings
from applytrack.core.outbox import OfflineOutbox
from applytrack.core.query_cache import (
    APPLICATION_DETAIL_PATTERN,
    APPLICATIONS_KEY,
    CURRENT_USER_KEY,
    INTERVIEW_PROCESSES_KEY,
    JOB_APPLICATIONS_KEY,
    QueryCache,
    QueryKey,
)
from applytrack.core.views import to_legacy_view

logger = logging.getLogger(__name__)

INTERVIEW_STATUSES = {"Interviewing", "Offer"}


def build_query_cache(
    client: ApiClient,
    outbox: OfflineOutbox,
    settings: Settings | None = None,
    **kwargs: Any,
) -> QueryCache:
    """Wire the application queries to the API, merging in queued offline records."""
    cache = QueryCache(settings or client.settings, **kwargs)

    def fetch_list(key: QueryKey) -> tuple[Any, int]:
        try:
            result = client.list_applications(key[0])
        except AuthenticationRequired:
            if not cache.settings.offline_fallback_enabled:
                raise
            logger.info("List %s unavailable without a session; serving offline records", key[0])
            return outbox.provisional_records(), 0
        return outbox.merge(result.data), result.version

    def fetch_detail(key: QueryKey) -> tuple[Any, int]:
        application_id = int(key[1])
        if outbox.is_provisional(application_id):
            provisional = outbox.provisional_bundle(application_id)
            if provisional is not None:
                return provisional, 0
        bundle = client.get_application(application_id)
        return bundle, bundle.version

    def fetch_interview_processes(key: QueryKey) -> tuple[Any, int]:
        records, version = fetch_list(JOB_APPLICATIONS_KEY)
        return [record for record in records if record.status in INTERVIEW_STATUSES], version

    def fetch_current_user(key: QueryKey) -> tuple[Any, int]:
        result = client.get_current_user()
        return result.data, result.version

    cache.register(APPLICATIONS_KEY, fetch_list)
    cache.register(JOB_APPLICATIONS_KEY, fetch_list)
    cache.register(APPLICATION_DETAIL_PATTERN, fetch_detail)
    cache.register(INTERVIEW_PROCESSES_KEY, fetch_interview_processes)
    cache.register(CURRENT_USER_KEY, fetch_current_user)
    return cache


def application_views(cache: QueryCache, key: QueryKey = JOB_APPLICATIONS_KEY) -> list[dict[str, Any]]:
    return [to_legacy_view(record) for record in cache.get(key)]
