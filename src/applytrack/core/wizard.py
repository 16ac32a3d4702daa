from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from applytrack.types import JobDetails


class WizardStep(Enum):
    DETAILS = 1
    RESUME = 2
    COVER_LETTER = 3
    REVIEW = 4
    CLOSED = 5

    @property
    def step_name(self) -> str:
        return STEP_NAMES_BY_STEP[self]

    @property
    def title(self) -> str:
        if self is WizardStep.DETAILS:
            return "Start Application"
        if self is WizardStep.REVIEW:
            return "Review Application"
        return f"Application Step {self.value}"


class WizardAction(Enum):
    NEXT = "next"
    BACK = "back"
    SUBMIT = "submit"


STEP_NAMES_BY_STEP: dict[WizardStep, str] = {
    WizardStep.DETAILS: "personal_info",
    WizardStep.RESUME: "resume",
    WizardStep.COVER_LETTER: "cover_letter",
    WizardStep.REVIEW: "review",
    WizardStep.CLOSED: "closed",
}

TRANSITIONS: dict[tuple[WizardStep, WizardAction], WizardStep] = {
    (WizardStep.DETAILS, WizardAction.NEXT): WizardStep.RESUME,
    (WizardStep.RESUME, WizardAction.NEXT): WizardStep.COVER_LETTER,
    (WizardStep.RESUME, WizardAction.BACK): WizardStep.DETAILS,
    (WizardStep.COVER_LETTER, WizardAction.NEXT): WizardStep.REVIEW,
    (WizardStep.COVER_LETTER, WizardAction.BACK): WizardStep.RESUME,
    (WizardStep.REVIEW, WizardAction.BACK): WizardStep.COVER_LETTER,
    (WizardStep.REVIEW, WizardAction.SUBMIT): WizardStep.CLOSED,
}

SKIP_VALUE = "none"


class InvalidTransition(ValueError):
    pass


def transition(step: WizardStep, action: WizardAction) -> WizardStep:
    try:
        return TRANSITIONS[(step, action)]
    except KeyError:
        raise InvalidTransition(f"cannot {action.value} from {step.name}") from None


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_step(step: WizardStep, form_data: dict[str, Any], job: JobDetails) -> dict[str, str]:
    """Return field-level errors for ``step``; empty when it may advance."""
    errors: dict[str, str] = {}
    if step is WizardStep.DETAILS:
        if _blank(job.title):
            errors["title"] = "Job title is required"
        if _blank(job.company):
            errors["company"] = "Company is required"
    elif step is WizardStep.RESUME:
        if _blank(form_data.get("resume_id")):
            errors["resume_id"] = f"Select a resume or '{SKIP_VALUE}' to skip"
    elif step is WizardStep.COVER_LETTER:
        if _blank(form_data.get("cover_letter_id")):
            errors["cover_letter_id"] = f"Select a cover letter or '{SKIP_VALUE}' to skip"
    elif step is WizardStep.REVIEW:
        if not isinstance(form_data.get("applied"), bool):
            errors["applied"] = "Confirm whether the application was submitted"
    else:
        errors["step"] = "The wizard is closed"
    return errors


@dataclass(slots=True)
class StepOutcome:
    step: WizardStep
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass
class WizardMachine:
    """Step bookkeeping for the application wizard; no I/O happens here."""

    job: JobDetails
    step: WizardStep = WizardStep.DETAILS
    form_data: dict[WizardStep, dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def initial_step(cls, job: JobDetails) -> WizardStep:
        return WizardStep.RESUME if job.is_complete else WizardStep.DETAILS

    def data_for(self, step: WizardStep) -> dict[str, Any]:
        return dict(self.form_data.get(step, {}))

    def validate(self, form_data: dict[str, Any]) -> StepOutcome:
        return StepOutcome(step=self.step, errors=validate_step(self.step, form_data, self.job))

    def advance(self, form_data: dict[str, Any]) -> StepOutcome:
        self.form_data[self.step] = dict(form_data)
        outcome = self.validate(form_data)
        if not outcome.ok:
            return outcome
        return StepOutcome(step=self.move_next())

    def move_next(self) -> WizardStep:
        action = WizardAction.SUBMIT if self.step is WizardStep.REVIEW else WizardAction.NEXT
        self.step = transition(self.step, action)
        return self.step

    def retreat(self) -> WizardStep:
        self.step = transition(self.step, WizardAction.BACK)
        return self.step

    @property
    def closed(self) -> bool:
        return self.step is WizardStep.CLOSED
