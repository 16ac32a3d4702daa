"""Mapping between the canonical application shape and legacy view dicts.

Older list/detail views look records up by differently named keys
(``companyName``, ``jobTitle``, ``jobLink`` ...). Records are stored and
passed around in one canonical shape; the variants only exist in the dicts
produced here.
"""

from __future__ import annotations

from typing import Any

from applytrack.types import DEFAULT_LOCATION, ApplicationRecord, JobDetails

FIELD_VARIANTS: dict[str, tuple[str, ...]] = {
    "title": ("title", "jobTitle", "position"),
    "company": ("company", "companyName"),
    "location": ("location", "jobLocation"),
    "description": ("description", "jobDescription"),
    "url": ("url", "externalJobUrl", "jobLink"),
    "external_job_id": ("external_job_id", "adzunaJobId"),
}

SCALAR_FIELDS: dict[str, str] = {
    "id": "id",
    "status": "status",
    "notes": "notes",
    "source": "source",
    "progress": "progress",
    "version": "version",
    "created_at": "createdAt",
    "updated_at": "updatedAt",
    "applied_at": "appliedAt",
    "submitted_at": "submittedAt",
    "pending": "pending",
}


def to_legacy_view(record: ApplicationRecord) -> dict[str, Any]:
    canonical = record.model_dump()
    view: dict[str, Any] = {}
    for field, names in FIELD_VARIANTS.items():
        for name in names:
            view[name] = canonical[field]
    for field, name in SCALAR_FIELDS.items():
        view[name] = canonical[field]
    view["applicationDate"] = canonical["created_at"]
    return view


def _first(payload: dict[str, Any], names: tuple[str, ...]) -> Any:
    for name in names:
        value = payload.get(name)
        if value not in (None, ""):
            return value
    return None


def from_payload(payload: dict[str, Any]) -> JobDetails:
    """Build job details from any mix of naming variants."""
    values = {field: _first(payload, names) or "" for field, names in FIELD_VARIANTS.items()}
    values["source"] = payload.get("source") or "Adzuna"
    if not values["external_job_id"] and payload.get("id") is not None:
        values["external_job_id"] = str(payload["id"])
    return JobDetails(**{key: str(value) for key, value in values.items()})


def from_legacy_view(view: dict[str, Any]) -> ApplicationRecord:
    data: dict[str, Any] = {
        field: _first(view, names) or "" for field, names in FIELD_VARIANTS.items()
    }
    data["location"] = data["location"] or DEFAULT_LOCATION
    for field, name in SCALAR_FIELDS.items():
        if view.get(name) is not None:
            data[field] = view[name]
    return ApplicationRecord.model_validate(data)


def filter_views(views: list[dict[str, Any]], key: str, value: Any) -> list[dict[str, Any]]:
    return [view for view in views if view.get(key) == value]
