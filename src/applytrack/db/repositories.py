from __future__ import annotations

import secrets
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from applytrack.db.models import ApplicationStep, JobApplication, User
from applytrack.types import APPLICATION_STATUSES, DEFAULT_LOCATION, DEFAULT_STATUS, STEP_NAMES

EDITABLE_FIELDS = {
    "title",
    "company",
    "location",
    "description",
    "url",
    "status",
    "notes",
    "source",
    "external_job_id",
}
CLOSED_STATUSES = {"Accepted", "Rejected", "Withdrawn"}


class SubmissionError(ValueError):
    """Raised when an application cannot be submitted in its current state."""


def generate_api_token() -> str:
    return secrets.token_urlsafe(32)


class Repository:
    def __init__(self, session: Session):
        self.session = session

    def create_user(self, email: str, name: str = "", api_token: str | None = None) -> User:
        user = User(email=email, name=name, api_token=api_token or generate_api_token())
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def get_user(self, user_id: int) -> User | None:
        return self.session.get(User, user_id)

    def get_user_by_email(self, email: str) -> User | None:
        return self.session.scalar(select(User).where(User.email == email))

    def get_user_by_token(self, token: str) -> User | None:
        if not token:
            return None
        return self.session.scalar(select(User).where(User.api_token == token))

    def _bump_version(self, user_id: int, application: JobApplication | None = None) -> int:
        user = self.session.get(User, user_id)
        if not user:
            raise ValueError(f"user {user_id} not found")
        user.data_version += 1
        if application is not None:
            application.version = user.data_version
        return user.data_version

    def create_application(self, user_id: int, values: dict[str, Any]) -> JobApplication:
        now = datetime.now(UTC)
        status = values.get("status") or DEFAULT_STATUS
        if status not in APPLICATION_STATUSES:
            raise ValueError(f"unsupported status '{status}'")

        application = JobApplication(
            user_id=user_id,
            title=values["title"],
            company=values["company"],
            location=values.get("location") or DEFAULT_LOCATION,
            description=values.get("description", ""),
            url=values.get("url", ""),
            status=status,
            notes=values.get("notes", ""),
            source=values.get("source", ""),
            external_job_id=values.get("external_job_id", ""),
            created_at=now,
            updated_at=now,
        )
        for order, name in enumerate(STEP_NAMES, start=1):
            application.steps.append(
                ApplicationStep(step_name=name, step_order=order, completed=False, data_json={})
            )
        self.session.add(application)
        self.session.flush()
        self._bump_version(user_id, application)
        self.session.commit()
        self.session.refresh(application)
        return application

    def list_applications(self, user_id: int) -> list[JobApplication]:
        statement = (
            select(JobApplication)
            .where(JobApplication.user_id == user_id)
            .order_by(JobApplication.updated_at.desc(), JobApplication.id.desc())
        )
        return list(self.session.scalars(statement).all())

    def get_application(self, application_id: int) -> JobApplication | None:
        return self.session.get(JobApplication, application_id)

    def list_steps(self, application_id: int) -> list[ApplicationStep]:
        statement = (
            select(ApplicationStep)
            .where(ApplicationStep.application_id == application_id)
            .order_by(ApplicationStep.step_order.asc())
        )
        return list(self.session.scalars(statement).all())

    def get_step(self, step_id: int) -> ApplicationStep | None:
        return self.session.get(ApplicationStep, step_id)

    def update_application(self, application_id: int, values: dict[str, Any]) -> JobApplication:
        application = self.session.get(JobApplication, application_id)
        if not application:
            raise ValueError(f"application {application_id} not found")

        for key, value in values.items():
            if key not in EDITABLE_FIELDS or value is None:
                continue
            if key == "status" and value not in APPLICATION_STATUSES:
                raise SubmissionError(f"unsupported status '{value}'")
            setattr(application, key, value)
        application.updated_at = datetime.now(UTC)

        self._bump_version(application.user_id, application)
        self.session.commit()
        self.session.refresh(application)
        return application

    def delete_application(self, application_id: int) -> int:
        application = self.session.get(JobApplication, application_id)
        if not application:
            raise ValueError(f"application {application_id} not found")

        version = self._bump_version(application.user_id)
        self.session.delete(application)
        self.session.commit()
        return version

    def update_step(
        self,
        step_id: int,
        *,
        data: dict[str, Any] | None = None,
        completed: bool | None = None,
    ) -> ApplicationStep:
        step = self.session.get(ApplicationStep, step_id)
        if not step:
            raise ValueError(f"step {step_id} not found")

        if data is not None:
            step.data_json = dict(step.data_json or {}) | data
        if completed is not None:
            step.completed = completed
            step.completed_at = datetime.now(UTC) if completed else None

        self._refresh_progress(step.application)
        self.session.commit()
        self.session.refresh(step)
        return step

    def complete_step(self, step_id: int, data: dict[str, Any] | None = None) -> ApplicationStep:
        return self.update_step(step_id, data=data or {}, completed=True)

    def _refresh_progress(self, application: JobApplication) -> None:
        steps = application.steps
        completed = sum(1 for item in steps if item.completed)
        application.progress = (completed * 100) // len(steps) if steps else 0
        application.updated_at = datetime.now(UTC)
        self._bump_version(application.user_id, application)

    def submit_application(
        self,
        application_id: int,
        *,
        applied: bool,
        notes: str = "",
    ) -> JobApplication:
        application = self.session.get(JobApplication, application_id)
        if not application:
            raise ValueError(f"application {application_id} not found")
        if application.status in CLOSED_STATUSES:
            raise SubmissionError(
                f"application {application_id} is {application.status} and cannot be submitted"
            )

        now = datetime.now(UTC)
        application.status = "Applied" if applied else "In Progress"
        application.applied_at = now if applied else None
        application.submitted_at = now if applied else None
        if notes:
            application.notes = notes
        application.updated_at = now

        self._bump_version(application.user_id, application)
        self.session.commit()
        self.session.refresh(application)
        return application

    def current_version(self, user_id: int) -> int:
        user = self.session.get(User, user_id)
        return user.data_version if user else 0
