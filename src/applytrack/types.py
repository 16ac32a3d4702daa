from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

ApplicationStatus = Literal[
    "Not Started",
    "In Progress",
    "Applied",
    "Interviewing",
    "Offer",
    "Rejected",
    "Accepted",
    "Withdrawn",
]
APPLICATION_STATUSES: tuple[str, ...] = (
    "Not Started",
    "In Progress",
    "Applied",
    "Interviewing",
    "Offer",
    "Rejected",
    "Accepted",
    "Withdrawn",
)
DEFAULT_STATUS = "In Progress"
DEFAULT_LOCATION = "Remote"

StepName = Literal["personal_info", "resume", "cover_letter", "review"]
STEP_NAMES: tuple[str, ...] = ("personal_info", "resume", "cover_letter", "review")


class JobDetails(BaseModel):
    """Job context the wizard is opened with."""

    title: str = ""
    company: str = ""
    location: str = ""
    description: str = ""
    url: str = ""
    external_job_id: str = ""
    source: str = "Adzuna"

    @property
    def is_complete(self) -> bool:
        return all(
            value.strip() for value in (self.title, self.company, self.url, self.description)
        )


class StepRecord(BaseModel):
    id: int
    application_id: int
    step_name: StepName
    step_order: int
    completed: bool = False
    data: dict[str, Any] = Field(default_factory=dict)
    completed_at: str | None = None


class ApplicationRecord(BaseModel):
    """Canonical client-side shape of a tracked application."""

    id: int
    title: str
    company: str
    location: str = DEFAULT_LOCATION
    description: str = ""
    url: str = ""
    status: ApplicationStatus = DEFAULT_STATUS
    notes: str = ""
    source: str = ""
    external_job_id: str = ""
    progress: int = 0
    version: int = 0
    created_at: str | None = None
    updated_at: str | None = None
    applied_at: str | None = None
    submitted_at: str | None = None
    pending: bool = False

    @field_validator("progress")
    @classmethod
    def validate_progress(cls, value: int) -> int:
        if value < 0 or value > 100:
            raise ValueError("progress must be between 0 and 100")
        return value


class ApplicationBundle(BaseModel):
    application: ApplicationRecord
    steps: list[StepRecord] = Field(default_factory=list)
    version: int = 0

    def step_for_order(self, order: int) -> StepRecord | None:
        for step in self.steps:
            if step.step_order == order:
                return step
        return None


class OutboxEntry(BaseModel):
    id: str
    kind: Literal["create_application", "complete_step", "submit_application"]
    application_id: int
    step_order: int | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    attempts: int = 0
    last_error: str = ""
    queued_at: str


class ReplayReport(BaseModel):
    replayed: int = 0
    remaining: int = 0
    id_map: dict[int, int] = Field(default_factory=dict)
    error: str = ""


class JobSearchParams(BaseModel):
    query: str
    location: str = ""
    is_remote: bool = False
    job_type: str = ""
    source: str = ""
    page: int = 1
    page_size: int = 10

    @field_validator("page", "page_size")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("page and page_size must be positive")
        return value


class JobListing(BaseModel):
    id: str
    source: str
    source_id: str
    title: str
    company: str = ""
    location: str = ""
    description: str = ""
    apply_url: str = ""
    salary: str = ""
    date_posted: str = ""
    job_type: str = ""
    is_remote: bool = False


class JobSearchResults(BaseModel):
    jobs: list[JobListing] = Field(default_factory=list)
    total_jobs: int = 0
    current_page: int = 1
    page_count: int = 1
