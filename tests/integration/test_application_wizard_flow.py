import random
from pathlib import Path

from fastapi.testclient import TestClient

from applytrack.api.app import create_app
from applytrack.client.api_client import ApiClient
from applytrack.config import Settings
from applytrack.core.outbox import LocalStore
from applytrack.core.wizard import SKIP_VALUE, WizardStep
from applytrack.core.workflow import ApplicationWizard, build_mutation_layer
from applytrack.db.repositories import Repository
from applytrack.db.session import SessionLocal
from applytrack.types import JobDetails

JOB = JobDetails(
    title="Staff Engineer",
    company="Wayne Enterprises",
    location="Gotham",
    description="Lead the platform team",
    url="https://jobs.example.com/staff",
    external_job_id="adz-1",
)


def _client(token: str) -> ApiClient:
    return ApiClient(
        settings=Settings(consistency_poll_interval_sec=0.0),
        base_url="http://testserver",
        token=token,
        session=TestClient(create_app()),
    )


def _wizard(tmp_path: Path, token: str, job: JobDetails = JOB, **settings) -> ApplicationWizard:
    config = Settings(consistency_poll_interval_sec=0.0, **settings)
    mutations = build_mutation_layer(config, client=_client(token), store=LocalStore(tmp_path / "store.json"))
    mutations.outbox.rng = random.Random(11)
    return ApplicationWizard(job, mutations)


def _walk_remaining_steps(wizard: ApplicationWizard, applied: bool = True) -> None:
    assert wizard.advance({"resume_id": "resume-3"}).ok
    assert wizard.advance({"cover_letter_id": SKIP_VALUE}).ok
    assert wizard.advance({"applied": applied, "submission_notes": "Sent through portal"}).ok


def _stored_applications(user_id: int):
    with SessionLocal() as db:
        repo = Repository(db)
        return [
            (row.status, row.progress, [step.completed for step in repo.list_steps(row.id)])
            for row in repo.list_applications(user_id)
        ]


def test_complete_job_creates_on_open_and_submits(tmp_path: Path, user) -> None:
    wizard = _wizard(tmp_path, user.token)

    assert wizard.open() is WizardStep.RESUME
    assert wizard.application is not None
    assert not wizard.offline

    _walk_remaining_steps(wizard)

    assert wizard.closed
    assert wizard.redirect == "/interviews"
    assert wizard.application.status == "Applied"
    assert _stored_applications(user.id) == [("Applied", 100, [True, True, True, True])]
    assert wizard.mutations.outbox.load_form_data(wizard.application.id)["applied"] is True


def test_incomplete_job_starts_at_details(tmp_path: Path, user) -> None:
    wizard = _wizard(tmp_path, user.token, job=JOB.model_copy(update={"url": ""}))

    assert wizard.open() is WizardStep.DETAILS
    assert wizard.application is None

    assert wizard.advance({"notes": "Found on a forum"}).ok
    assert wizard.step is WizardStep.RESUME
    _walk_remaining_steps(wizard, applied=False)

    assert wizard.application.status == "In Progress"
    assert _stored_applications(user.id) == [("In Progress", 100, [True, True, True, True])]


def test_invalid_step_input_issues_no_mutation(tmp_path: Path, user) -> None:
    wizard = _wizard(tmp_path, user.token)
    wizard.open()

    outcome = wizard.advance({"resume_id": ""})

    assert not outcome.ok
    assert wizard.step is WizardStep.RESUME
    assert _stored_applications(user.id) == [("In Progress", 25, [True, False, False, False])]


def test_going_back_keeps_entered_data(tmp_path: Path, user) -> None:
    wizard = _wizard(tmp_path, user.token)
    wizard.open()
    wizard.advance({"resume_id": "resume-9"})

    assert wizard.retreat() is WizardStep.RESUME
    assert wizard.machine.data_for(WizardStep.RESUME) == {"resume_id": "resume-9"}


def test_signed_out_flow_is_queued_then_replayed(tmp_path: Path, user) -> None:
    wizard = _wizard(tmp_path, token="")

    assert wizard.open() is WizardStep.RESUME
    assert wizard.offline
    provisional_id = wizard.application.id
    _walk_remaining_steps(wizard)

    assert wizard.closed
    assert wizard.application.status == "Applied"
    assert _stored_applications(user.id) == []
    outbox = wizard.mutations.outbox
    assert [entry.kind for entry in outbox.pending()] == [
        "create_application",
        "complete_step",
        "complete_step",
        "complete_step",
        "complete_step",
        "submit_application",
    ]
    assert [view["id"] for view in outbox.provisional_views()] == [provisional_id]
    assert outbox.provisional_views()[0]["progress"] == 100
    assert [step.completed for step in outbox.provisional_bundle(provisional_id).steps] == [True, True, True, True]

    report = outbox.replay(_client(user.token))

    assert report.remaining == 0
    assert _stored_applications(user.id) == [("Applied", 100, [True, True, True, True])]
    assert outbox.provisional_views() == []
    assert outbox.load_form_data(report.id_map[provisional_id])["submission_notes"] == "Sent through portal"


def test_auth_failure_without_fallback_notifies_and_stays(tmp_path: Path, user) -> None:
    wizard = _wizard(tmp_path, token="", offline_fallback_enabled=False)

    assert wizard.open() is WizardStep.DETAILS
    assert wizard.application is None
    assert wizard.notifier.last.description == "Please sign in to track your application progress."
    assert wizard.notifier.last.variant == "destructive"
    assert wizard.mutations.outbox.pending() == []


def test_review_without_an_application_reports_missing_id(tmp_path: Path, user) -> None:
    wizard = _wizard(tmp_path, token="", offline_fallback_enabled=False)
    wizard.open()
    assert wizard.application is None

    wizard.machine.step = WizardStep.REVIEW
    outcome = wizard.advance({"applied": True, "submission_notes": ""})

    assert not outcome.ok
    assert outcome.errors["form"] == "No application ID"
    assert wizard.step is WizardStep.REVIEW
    assert not wizard.closed
    assert wizard.notifier.last.title == "Submission Error"
    assert wizard.mutations.outbox.pending() == []
