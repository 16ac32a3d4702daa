from __future__ import annotations

import logging
import math
from typing import Any, Protocol

import requests

from applytrack.config import Settings, get_settings
from applytrack.core.job_fetcher import html_to_text
from applytrack.types import JobListing, JobSearchParams, JobSearchResults

logger = logging.getLogger(__name__)


class JobSearchError(RuntimeError):
    pass


class JobSource(Protocol):
    id: str
    name: str

    def search(self, params: JobSearchParams) -> JobSearchResults: ...


class AdzunaSource:
    id = "adzuna"
    name = "Adzuna"

    def __init__(self, settings: Settings):
        self.settings = settings

    def search(self, params: JobSearchParams) -> JobSearchResults:
        url = f"{self.settings.adzuna_base_url}/{self.settings.adzuna_country}/search/{params.page}"
        what = params.query
        if params.is_remote and "remote" not in what.lower():
            what = f"{what} remote"

        query: dict[str, Any] = {
            "app_id": self.settings.adzuna_app_id,
            "app_key": self.settings.adzuna_app_key,
            "what": what,
            "results_per_page": params.page_size,
            "content-type": "application/json",
        }
        if params.location:
            query["where"] = params.location
        if params.job_type == "full_time":
            query["full_time"] = 1
        elif params.job_type == "part_time":
            query["part_time"] = 1
        elif params.job_type == "contract":
            query["contract"] = 1
        elif params.job_type == "permanent":
            query["permanent"] = 1

        try:
            response = requests.get(url, params=query, timeout=self.settings.http_timeout_sec)
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Adzuna search failed query=%r: %s", params.query, exc)
            raise JobSearchError(f"Adzuna search failed: {exc}") from exc

        total = int(payload.get("count") or 0)
        jobs = [normalize_adzuna_job(item) for item in payload.get("results", [])]
        return JobSearchResults(
            jobs=jobs,
            total_jobs=total,
            current_page=params.page,
            page_count=max(1, math.ceil(total / params.page_size)),
        )


def _format_salary(item: dict[str, Any]) -> str:
    low = item.get("salary_min")
    high = item.get("salary_max")
    if low and high and int(low) != int(high):
        return f"${int(low):,} - ${int(high):,}"
    if low or high:
        return f"${int(low or high):,}"
    return ""


def normalize_adzuna_job(item: dict[str, Any]) -> JobListing:
    source_id = str(item.get("id", ""))
    title = " ".join(html_to_text(item.get("title", "")).split())
    location = (item.get("location") or {}).get("display_name", "")
    description = html_to_text(item.get("description", ""))
    return JobListing(
        id=f"adzuna-{source_id}",
        source="Adzuna",
        source_id=source_id,
        title=title,
        company=(item.get("company") or {}).get("display_name", ""),
        location=location,
        description=description,
        apply_url=item.get("redirect_url", ""),
        salary=_format_salary(item),
        date_posted=item.get("created", ""),
        job_type=item.get("contract_time") or item.get("contract_type") or "",
        is_remote="remote" in f"{title} {location}".lower(),
    )


class JobSearchService:
    """Aggregates the configured job sources behind one search call."""

    def __init__(self, settings: Settings | None = None, sources: list[JobSource] | None = None):
        self.settings = settings or get_settings()
        if sources is None:
            sources = [AdzunaSource(self.settings)] if self.settings.adzuna_enabled else []
        self.sources = sources

    def list_sources(self) -> list[dict[str, str]]:
        return [{"id": source.id, "name": source.name} for source in self.sources]

    def search(self, params: JobSearchParams) -> JobSearchResults:
        if not params.query.strip():
            return JobSearchResults()

        selected = [s for s in self.sources if not params.source or s.id == params.source]
        if not selected:
            raise JobSearchError(f"no job source available for '{params.source or 'any'}'")

        jobs: list[JobListing] = []
        total = 0
        page_count = 1
        for source in selected:
            result = source.search(params)
            jobs.extend(result.jobs)
            total += result.total_jobs
            page_count = max(page_count, result.page_count)

        return JobSearchResults(
            jobs=jobs,
            total_jobs=total,
            current_page=params.page,
            page_count=page_count,
        )
