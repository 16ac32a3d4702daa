from __future__ import annotations

import json
import logging
import os
import random
import tempfile
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from applytrack.client.api_client import ApiClient, ApiError
from applytrack.core.views import from_legacy_view, to_legacy_view
from applytrack.types import (
    DEFAULT_LOCATION,
    STEP_NAMES,
    ApplicationBundle,
    ApplicationRecord,
    JobDetails,
    OutboxEntry,
    ReplayReport,
    StepRecord,
)

logger = logging.getLogger(__name__)

MOCK_APPLICATIONS_KEY = "mockJobApplications"
OUTBOX_KEY = "outbox"
ID_MAP_KEY = "outbox_id_map"


def form_data_key(application_id: int) -> str:
    return f"application_{application_id}_data"


def steps_key(application_id: int) -> str:
    return f"application_{application_id}_steps"


def is_provisional_id(application_id: int) -> bool:
    """Provisional ids are negative; the server only hands out positive ones."""
    return application_id < 0


def _now() -> str:
    return datetime.now(UTC).isoformat()


class LocalStore:
    """JSON-document key/value store standing in for browser local storage."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        text = self.path.read_text(encoding="utf-8")
        if not text.strip():
            return {}
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            aside = self.path.with_name(f"{self.path.name}.corrupt-{uuid.uuid4().hex[:8]}")
            os.replace(self.path, aside)
            logger.warning("Local store %s is unreadable (%s); moved to %s", self.path, exc, aside)
            return {}
        if not isinstance(data, dict):
            logger.warning("Local store %s does not hold an object; ignoring it", self.path)
            return {}
        return data

    def _save(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".store-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, indent=2)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def get(self, key: str, default: Any = None) -> Any:
        return self._load().get(key, default)

    def set(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def remove(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._save(data)

    def keys(self) -> list[str]:
        return list(self._load())


class OfflineOutbox:
    """Queue of mutations the server refused for lack of authentication.

    Entries are replayed in order once a session is available again. While
    queued, provisional applications stay visible to list views through the
    ``mockJobApplications`` key.
    """

    def __init__(self, store: LocalStore, rng: random.Random | None = None):
        self.store = store
        self.rng = rng or random.Random()

    # queue

    def pending(self) -> list[OutboxEntry]:
        return [OutboxEntry.model_validate(item) for item in self.store.get(OUTBOX_KEY, [])]

    def _write_pending(self, entries: list[OutboxEntry]) -> None:
        self.store.set(OUTBOX_KEY, [entry.model_dump() for entry in entries])

    def enqueue(
        self,
        kind: str,
        application_id: int,
        *,
        step_order: int | None = None,
        payload: dict[str, Any] | None = None,
    ) -> OutboxEntry:
        entry = OutboxEntry(
            id=uuid.uuid4().hex,
            kind=kind,
            application_id=application_id,
            step_order=step_order,
            payload=payload or {},
            queued_at=_now(),
        )
        entries = self.pending()
        entries.append(entry)
        self._write_pending(entries)
        logger.info("Queued offline %s for application_id=%s", kind, application_id)
        return entry

    # provisional records

    def is_provisional(self, application_id: int) -> bool:
        return is_provisional_id(application_id) and any(
            entry.kind == "create_application" and entry.application_id == application_id
            for entry in self.pending()
        )

    def provisional_views(self) -> list[dict[str, Any]]:
        return list(self.store.get(MOCK_APPLICATIONS_KEY, []))

    def provisional_records(self) -> list[ApplicationRecord]:
        return [from_legacy_view(view) for view in self.provisional_views()]

    def _put_view(self, record: ApplicationRecord) -> None:
        views = self.provisional_views()
        view = to_legacy_view(record)
        for index, existing in enumerate(views):
            if existing.get("id") == record.id:
                views[index] = view
                break
        else:
            views.append(view)
        self.store.set(MOCK_APPLICATIONS_KEY, views)

    def _drop_view(self, application_id: int) -> None:
        views = [view for view in self.provisional_views() if view.get("id") != application_id]
        self.store.set(MOCK_APPLICATIONS_KEY, views)

    def _new_provisional_id(self) -> int:
        taken = {view.get("id") for view in self.provisional_views()}
        while True:
            candidate = -self.rng.randint(1, 9999)
            if candidate not in taken:
                return candidate

    def record_creation(self, details: JobDetails, notes: str, body: dict[str, Any]) -> ApplicationBundle:
        application_id = self._new_provisional_id()
        now = _now()
        record = ApplicationRecord(
            id=application_id,
            title=details.title,
            company=details.company,
            location=details.location or DEFAULT_LOCATION,
            description=details.description,
            url=details.url,
            status="In Progress",
            notes=notes,
            source=details.source,
            external_job_id=details.external_job_id,
            created_at=now,
            updated_at=now,
            pending=True,
        )
        steps = [
            StepRecord(
                id=application_id * 10 - order,
                application_id=application_id,
                step_name=name,
                step_order=order,
                completed=False,
                data={},
            )
            for order, name in enumerate(STEP_NAMES, start=1)
        ]
        self._put_view(record)
        self._put_steps(application_id, steps)
        self.enqueue("create_application", application_id, payload=body)
        return ApplicationBundle(application=record, steps=steps)

    def provisional_steps(self, application_id: int) -> list[StepRecord]:
        return [StepRecord.model_validate(item) for item in self.store.get(steps_key(application_id), [])]

    def _put_steps(self, application_id: int, steps: list[StepRecord]) -> None:
        self.store.set(steps_key(application_id), [step.model_dump() for step in steps])

    def provisional_bundle(self, application_id: int) -> ApplicationBundle | None:
        record = next((r for r in self.provisional_records() if r.id == application_id), None)
        if record is None:
            return None
        return ApplicationBundle(application=record, steps=self.provisional_steps(application_id))

    def record_step(self, step: StepRecord, data: dict[str, Any]) -> StepRecord:
        self.enqueue(
            "complete_step",
            step.application_id,
            step_order=step.step_order,
            payload=data,
        )
        completed = step.model_copy(
            update={"completed": True, "data": {**step.data, **data}, "completed_at": _now()}
        )

        bundle = self.provisional_bundle(step.application_id) if is_provisional_id(step.application_id) else None
        if bundle is not None:
            steps = [completed if s.step_order == step.step_order else s for s in bundle.steps]
            self._put_steps(step.application_id, steps)
            done = sum(1 for s in steps if s.completed)
            progress = (done * 100) // len(steps) if steps else 0
            self._put_view(bundle.application.model_copy(update={"progress": progress, "updated_at": _now()}))
        return completed

    def record_submission(
        self,
        record: ApplicationRecord,
        *,
        applied: bool,
        notes: str = "",
    ) -> ApplicationRecord:
        stored = self.provisional_bundle(record.id) if is_provisional_id(record.id) else None
        if stored is not None:
            record = stored.application
        now = _now()
        submitted = record.model_copy(
            update={
                "status": "Applied" if applied else "In Progress",
                "applied_at": now if applied else None,
                "submitted_at": now if applied else None,
                "notes": notes or record.notes,
                "updated_at": now,
                "pending": True,
            }
        )
        self._put_view(submitted)
        self.enqueue(
            "submit_application",
            record.id,
            payload={"applied": applied, "notes": notes},
        )
        return submitted

    # review form data

    def save_form_data(self, application_id: int, data: dict[str, Any]) -> None:
        self.store.set(form_data_key(application_id), data)

    def load_form_data(self, application_id: int) -> dict[str, Any]:
        return dict(self.store.get(form_data_key(application_id), {}) or {})

    # reads

    def merge(self, server_records: list[ApplicationRecord]) -> list[ApplicationRecord]:
        """Server records first; provisional ones only where the id is unknown."""
        known = {record.id for record in server_records}
        merged = list(server_records)
        merged.extend(record for record in self.provisional_records() if record.id not in known)
        return merged

    # replay

    def replay(self, client: ApiClient) -> ReplayReport:
        id_map = {int(key): value for key, value in (self.store.get(ID_MAP_KEY, {}) or {}).items()}
        entries = self.pending()
        report = ReplayReport(remaining=len(entries))

        while entries:
            entry = entries[0]
            target_id = entry.application_id
            if is_provisional_id(entry.application_id):
                target_id = id_map.get(entry.application_id, entry.application_id)
            try:
                self._replay_entry(client, entry, target_id, id_map)
            except ApiError as exc:
                entry.attempts += 1
                entry.last_error = str(exc)
                self._write_pending(entries)
                logger.warning(
                    "Outbox replay stopped at %s for application_id=%s: %s",
                    entry.kind,
                    entry.application_id,
                    exc,
                )
                report.error = str(exc)
                break

            entries.pop(0)
            self._write_pending(entries)
            self.store.set(ID_MAP_KEY, {str(key): value for key, value in id_map.items()})
            if not any(item.application_id == entry.application_id for item in entries):
                self._settle(entry.application_id, id_map.get(entry.application_id))
            report.replayed += 1

        report.remaining = len(entries)
        report.id_map = dict(id_map)
        if not entries:
            self.store.remove(ID_MAP_KEY)
        logger.info("Outbox replay finished replayed=%s remaining=%s", report.replayed, report.remaining)
        return report

    def _replay_entry(
        self,
        client: ApiClient,
        entry: OutboxEntry,
        target_id: int,
        id_map: dict[int, int],
    ) -> None:
        if entry.kind == "create_application":
            bundle = client.create_application(entry.payload)
            id_map[entry.application_id] = bundle.application.id
            return

        if entry.kind == "complete_step":
            bundle = client.get_application(target_id)
            step = bundle.step_for_order(entry.step_order or 0)
            if step is None:
                raise ApiError(404, f"step {entry.step_order} missing on application {target_id}")
            client.complete_step(step.id, entry.payload)
            return

        if entry.kind == "submit_application":
            client.submit_application(
                target_id,
                applied=bool(entry.payload.get("applied")),
                notes=entry.payload.get("notes", ""),
            )
            return

        raise ValueError(f"unsupported outbox entry kind '{entry.kind}'")

    def _settle(self, provisional_id: int, server_id: int | None) -> None:
        self._drop_view(provisional_id)
        self.store.remove(steps_key(provisional_id))
        if server_id is not None and server_id != provisional_id:
            data = self.store.get(form_data_key(provisional_id))
            if data is not None:
                self.store.set(form_data_key(server_id), data)
                self.store.remove(form_data_key(provisional_id))
