from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from applytrack.types import ApplicationStatus, StepName


class ApplicationCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(min_length=1, validation_alias=AliasChoices("title", "jobTitle", "position"))
    company: str = Field(min_length=1, validation_alias=AliasChoices("company", "companyName"))
    location: str = Field(default="", validation_alias=AliasChoices("location", "jobLocation"))
    description: str = Field(
        default="", validation_alias=AliasChoices("description", "jobDescription")
    )
    url: str = Field(default="", validation_alias=AliasChoices("url", "externalJobUrl", "jobLink"))
    status: ApplicationStatus = "In Progress"
    notes: str = ""
    source: str = ""
    external_job_id: str = Field(
        default="", validation_alias=AliasChoices("external_job_id", "adzunaJobId")
    )


class ApplicationUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str | None = Field(default=None, validation_alias=AliasChoices("title", "jobTitle", "position"))
    company: str | None = Field(default=None, validation_alias=AliasChoices("company", "companyName"))
    location: str | None = Field(default=None, validation_alias=AliasChoices("location", "jobLocation"))
    description: str | None = Field(
        default=None, validation_alias=AliasChoices("description", "jobDescription")
    )
    url: str | None = Field(default=None, validation_alias=AliasChoices("url", "externalJobUrl", "jobLink"))
    status: ApplicationStatus | None = None
    notes: str | None = None
    source: str | None = None
    external_job_id: str | None = Field(
        default=None, validation_alias=AliasChoices("external_job_id", "adzunaJobId")
    )


class StepUpdateRequest(BaseModel):
    data: dict[str, Any] | None = None
    completed: bool | None = None


class SubmitRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    applied: bool = False
    notes: str = Field(default="", validation_alias=AliasChoices("notes", "submissionNotes"))


class ApplicationResponse(BaseModel):
    id: int
    title: str
    company: str
    location: str
    description: str
    url: str
    status: str
    notes: str
    source: str
    external_job_id: str
    progress: int
    version: int
    created_at: str | None
    updated_at: str | None
    applied_at: str | None
    submitted_at: str | None


class StepResponse(BaseModel):
    id: int
    application_id: int
    step_name: StepName
    step_order: int
    completed: bool
    data: dict[str, Any]
    completed_at: str | None
    version: int


class ApplicationWithStepsResponse(BaseModel):
    application: ApplicationResponse
    steps: list[StepResponse]
    version: int


class UserResponse(BaseModel):
    id: int
    email: str
    name: str
    data_version: int


class JobSourceResponse(BaseModel):
    id: str
    name: str


class JobSourcesResponse(BaseModel):
    sources: list[JobSourceResponse]


class JobListingResponse(BaseModel):
    id: str
    source: str
    sourceId: str
    title: str
    company: str
    location: str
    description: str
    applyUrl: str
    salary: str
    datePosted: str
    jobType: str
    isRemote: bool


class JobSearchResponse(BaseModel):
    jobs: list[JobListingResponse]
    totalJobs: int
    currentPage: int
    pageCount: int
