from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from applytrack.client.api_client import ApiClient, ApiError, is_authentication_error
from applytrack.config import Settings, get_settings
from applytrack.core.outbox import OfflineOutbox
from applytrack.core.query_cache import (
    APPLICATIONS_KEY,
    CURRENT_USER_KEY,
    INTERVIEW_PROCESSES_KEY,
    JOB_APPLICATIONS_KEY,
    QueryCache,
    QueryKey,
    application_key,
)
from applytrack.types import DEFAULT_LOCATION, ApplicationRecord, JobDetails, ReplayReport, StepRecord

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class MutationResult:
    data: Any
    version: int | None = None
    offline: bool = False


def build_create_body(details: JobDetails, notes: str = "") -> dict[str, Any]:
    return {
        "title": details.title,
        "company": details.company,
        "location": details.location or DEFAULT_LOCATION,
        "description": details.description,
        "url": details.url,
        "status": "In Progress",
        "notes": notes,
        "source": details.source,
        "external_job_id": details.external_job_id,
    }


class MutationLayer:
    """Create, complete-step and submit calls with offline fallback and cache invalidation."""

    def __init__(
        self,
        client: ApiClient,
        outbox: OfflineOutbox,
        cache: QueryCache,
        *,
        settings: Settings | None = None,
    ):
        self.client = client
        self.outbox = outbox
        self.cache = cache
        self.settings = settings or get_settings()

    def _can_fall_back(self, exc: ApiError) -> bool:
        return self.settings.offline_fallback_enabled and is_authentication_error(exc)

    def _invalidate(self, keys: list[QueryKey], version: int | None) -> None:
        for key in keys:
            self.cache.invalidate(key, min_version=version)

    def create_application(self, details: JobDetails, notes: str = "") -> MutationResult:
        body = build_create_body(details, notes)
        try:
            bundle = self.client.create_application(body)
            result = MutationResult(data=bundle, version=bundle.version)
        except ApiError as exc:
            if not self._can_fall_back(exc):
                raise
            logger.warning("Create refused (%s); queuing application offline", exc)
            bundle = self.outbox.record_creation(details, notes, body)
            result = MutationResult(data=bundle, offline=True)

        self._invalidate([APPLICATIONS_KEY, JOB_APPLICATIONS_KEY], result.version)
        return result

    def complete_step(self, step: StepRecord, data: dict[str, Any]) -> MutationResult:
        if self.outbox.is_provisional(step.application_id):
            result = MutationResult(data=self.outbox.record_step(step, data), offline=True)
        else:
            try:
                response = self.client.complete_step(step.id, data)
                result = MutationResult(data=response.data, version=response.version)
            except ApiError as exc:
                if not self._can_fall_back(exc):
                    raise
                logger.warning("Step completion refused (%s); queuing step %s offline", exc, step.id)
                result = MutationResult(data=self.outbox.record_step(step, data), offline=True)

        self._invalidate(
            [application_key(step.application_id), APPLICATIONS_KEY, JOB_APPLICATIONS_KEY],
            result.version,
        )
        return result

    def submit_application(
        self,
        record: ApplicationRecord,
        *,
        applied: bool,
        notes: str = "",
    ) -> MutationResult:
        if self.outbox.is_provisional(record.id):
            submitted = self.outbox.record_submission(record, applied=applied, notes=notes)
            result = MutationResult(data=submitted, offline=True)
        else:
            try:
                submitted = self.client.submit_application(record.id, applied=applied, notes=notes)
                result = MutationResult(data=submitted, version=submitted.version)
            except ApiError as exc:
                if not self._can_fall_back(exc):
                    raise
                logger.warning("Submit refused (%s); queuing submission of %s offline", exc, record.id)
                submitted = self.outbox.record_submission(record, applied=applied, notes=notes)
                result = MutationResult(data=submitted, offline=True)

        self._invalidate(
            [APPLICATIONS_KEY, JOB_APPLICATIONS_KEY, INTERVIEW_PROCESSES_KEY, CURRENT_USER_KEY],
            result.version,
        )
        return result

    def replay_outbox(self) -> ReplayReport:
        report = self.outbox.replay(self.client)
        if report.replayed:
            self._invalidate([APPLICATIONS_KEY, JOB_APPLICATIONS_KEY], None)
        return report
