import pytest

from applytrack.core.wizard import (
    SKIP_VALUE,
    InvalidTransition,
    WizardAction,
    WizardMachine,
    WizardStep,
    transition,
    validate_step,
)
from applytrack.types import JobDetails

FULL_JOB = JobDetails(
    title="Backend Engineer",
    company="Acme",
    location="Berlin",
    description="Build APIs",
    url="https://jobs.example.com/1",
)


def test_forward_and_back_transitions() -> None:
    assert transition(WizardStep.DETAILS, WizardAction.NEXT) is WizardStep.RESUME
    assert transition(WizardStep.COVER_LETTER, WizardAction.BACK) is WizardStep.RESUME
    assert transition(WizardStep.REVIEW, WizardAction.SUBMIT) is WizardStep.CLOSED


def test_undefined_transitions_are_rejected() -> None:
    with pytest.raises(InvalidTransition):
        transition(WizardStep.DETAILS, WizardAction.BACK)
    with pytest.raises(InvalidTransition):
        transition(WizardStep.REVIEW, WizardAction.NEXT)
    with pytest.raises(InvalidTransition):
        transition(WizardStep.CLOSED, WizardAction.BACK)


def test_initial_step_skips_details_only_for_complete_job() -> None:
    assert WizardMachine.initial_step(FULL_JOB) is WizardStep.RESUME
    partial = FULL_JOB.model_copy(update={"description": "  "})
    assert WizardMachine.initial_step(partial) is WizardStep.DETAILS


def test_details_step_requires_title_and_company() -> None:
    errors = validate_step(WizardStep.DETAILS, {}, JobDetails(title="", company=""))
    assert set(errors) == {"title", "company"}
    assert validate_step(WizardStep.DETAILS, {}, FULL_JOB) == {}


def test_resume_and_cover_letter_accept_explicit_skip() -> None:
    assert "resume_id" in validate_step(WizardStep.RESUME, {"resume_id": ""}, FULL_JOB)
    assert validate_step(WizardStep.RESUME, {"resume_id": SKIP_VALUE}, FULL_JOB) == {}
    assert "cover_letter_id" in validate_step(WizardStep.COVER_LETTER, {}, FULL_JOB)
    assert validate_step(WizardStep.COVER_LETTER, {"cover_letter_id": "cl-7"}, FULL_JOB) == {}


def test_review_requires_applied_flag() -> None:
    assert "applied" in validate_step(WizardStep.REVIEW, {"applied": "yes"}, FULL_JOB)
    assert validate_step(WizardStep.REVIEW, {"applied": False}, FULL_JOB) == {}


def test_invalid_input_keeps_step_and_retreat_preserves_data() -> None:
    machine = WizardMachine(job=FULL_JOB, step=WizardStep.RESUME)

    outcome = machine.advance({"resume_id": ""})
    assert not outcome.ok
    assert machine.step is WizardStep.RESUME

    assert machine.advance({"resume_id": "r-1"}).ok
    assert machine.step is WizardStep.COVER_LETTER

    machine.retreat()
    assert machine.step is WizardStep.RESUME
    assert machine.data_for(WizardStep.RESUME) == {"resume_id": "r-1"}


def test_review_advance_closes_the_wizard() -> None:
    machine = WizardMachine(job=FULL_JOB, step=WizardStep.REVIEW)
    assert machine.advance({"applied": True}).step is WizardStep.CLOSED
    assert machine.closed
