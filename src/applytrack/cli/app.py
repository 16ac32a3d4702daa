from __future__ import annotations

import json
from typing import Any

import typer
import uvicorn

from applytrack.api.app import create_app
from applytrack.api.routes import serialize_application, serialize_step
from applytrack.client.api_client import ApiClient
from applytrack.config import get_settings
from applytrack.core.job_fetcher import fetch_job_text
from applytrack.core.job_search import JobSearchError, JobSearchService
from applytrack.core.outbox import LocalStore, OfflineOutbox
from applytrack.core.wizard import SKIP_VALUE, WizardStep
from applytrack.core.workflow import ApplicationWizard, Notifier, build_mutation_layer
from applytrack.db.init import init_database
from applytrack.db.repositories import Repository
from applytrack.db.session import SessionLocal
from applytrack.logging_config import configure_logging
from applytrack.types import JobDetails, JobSearchParams

app = typer.Typer(help="Applytrack CLI")
user_app = typer.Typer(help="Manage API users")
apps_app = typer.Typer(help="Inspect tracked applications")
outbox_app = typer.Typer(help="Offline outbox commands")
jobs_app = typer.Typer(help="Job search commands")

app.add_typer(user_app, name="user")
app.add_typer(apps_app, name="apps")
app.add_typer(outbox_app, name="outbox")
app.add_typer(jobs_app, name="jobs")

_INITIALIZED = False


@app.callback()
def main(log_level: str | None = typer.Option(None, "--log-level", help="Override LOG_LEVEL for this run")) -> None:
    configure_logging(log_level)


def ensure_initialized() -> None:
    global _INITIALIZED
    if _INITIALIZED:
        return
    init_database()
    _INITIALIZED = True


def build_client() -> ApiClient:
    return ApiClient(settings=get_settings())


def _echo(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2, default=str))


def _resolve_user(repo: Repository, email: str | None):
    settings = get_settings()
    user = repo.get_user_by_email(email or settings.demo_user_email)
    if not user:
        raise typer.BadParameter(f"user {email} not found")
    return user


@app.command("init")
def init_cmd() -> None:
    """Initialize database, directories, and the demo user."""
    configure_logging()
    result = init_database()
    _echo({"ok": True, **result})


@user_app.command("create")
def user_create(
    email: str = typer.Option(..., "--email"),
    name: str = typer.Option("", "--name"),
) -> None:
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        repo = Repository(db)
        if repo.get_user_by_email(email):
            raise typer.BadParameter(f"user {email} already exists")
        user = repo.create_user(email=email, name=name)
        _echo({"id": user.id, "email": user.email, "api_token": user.api_token})


@apps_app.command("list")
def apps_list(email: str | None = typer.Option(None, "--email")) -> None:
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        repo = Repository(db)
        user = _resolve_user(repo, email)
        _echo(
            [
                {
                    "id": application.id,
                    "title": application.title,
                    "company": application.company,
                    "status": application.status,
                    "progress": application.progress,
                }
                for application in repo.list_applications(user.id)
            ]
        )


@apps_app.command("show")
def apps_show(application_id: int = typer.Option(..., "--id")) -> None:
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        repo = Repository(db)
        application = repo.get_application(application_id)
        if not application:
            raise typer.BadParameter(f"application {application_id} not found")
        version = repo.current_version(application.user_id)
        _echo(
            {
                "application": serialize_application(application).model_dump(),
                "steps": [serialize_step(step, version).model_dump() for step in repo.list_steps(application_id)],
            }
        )


def _ask(value: str | None, label: str, default: str = "") -> str:
    if value is not None:
        return value
    return typer.prompt(label, default=default, show_default=bool(default))


@app.command("apply")
def apply_cmd(
    url: str = typer.Option("", "--url"),
    title: str | None = typer.Option(None, "--title"),
    company: str | None = typer.Option(None, "--company"),
    location: str = typer.Option("", "--location"),
    description: str | None = typer.Option(None, "--description"),
    notes: str | None = typer.Option(None, "--notes"),
    resume_id: str | None = typer.Option(None, "--resume-id"),
    cover_letter_id: str | None = typer.Option(None, "--cover-letter-id"),
    applied: bool | None = typer.Option(None, "--applied/--not-applied"),
    submission_notes: str | None = typer.Option(None, "--submission-notes"),
) -> None:
    """Walk the application wizard against the configured API."""
    configure_logging()
    settings = get_settings()

    if description is None and url and not (title and company):
        description = fetch_job_text(url, timeout_sec=settings.http_timeout_sec)

    job = JobDetails(
        title=_ask(title, "Job title"),
        company=_ask(company, "Company"),
        location=location,
        description=description or "",
        url=url,
    )

    notifier = Notifier()
    wizard = ApplicationWizard(job, build_mutation_layer(settings, client=build_client()), notifier=notifier)
    wizard.open()

    answers = {
        WizardStep.DETAILS: lambda: {"notes": _ask(notes, "Notes")},
        WizardStep.RESUME: lambda: {"resume_id": _ask(resume_id, "Resume id", default=SKIP_VALUE)},
        WizardStep.COVER_LETTER: lambda: {
            "cover_letter_id": _ask(cover_letter_id, "Cover letter id", default=SKIP_VALUE)
        },
        WizardStep.REVIEW: lambda: {
            "applied": applied if applied is not None else typer.confirm("Did you submit the application?"),
            "submission_notes": _ask(submission_notes, "Submission notes"),
        },
    }

    while not wizard.closed:
        current = wizard.step
        typer.echo(f"Step {current.value}: {current.title}")
        outcome = wizard.advance(answers[current]())
        if not outcome.ok:
            for field, error in outcome.errors.items():
                typer.echo(f"{field}: {error}", err=True)
            raise typer.Exit(code=1)

    application = wizard.application
    _echo(
        {
            "application": application.model_dump() if application else None,
            "offline": wizard.offline,
            "redirect": wizard.redirect,
        }
    )


@outbox_app.command("status")
def outbox_status() -> None:
    configure_logging()
    outbox = OfflineOutbox(LocalStore(get_settings().local_store_path))
    _echo(
        {
            "pending": [entry.model_dump() for entry in outbox.pending()],
            "provisional_applications": outbox.provisional_views(),
        }
    )


@outbox_app.command("replay")
def outbox_replay() -> None:
    configure_logging()
    settings = get_settings()
    mutations = build_mutation_layer(settings, client=build_client())
    report = mutations.replay_outbox()
    _echo(report.model_dump())
    if report.remaining:
        raise typer.Exit(code=1)


@jobs_app.command("sources")
def jobs_sources() -> None:
    configure_logging()
    _echo(JobSearchService(get_settings()).list_sources())


@jobs_app.command("search")
def jobs_search(
    query: str = typer.Option(..., "--query"),
    location: str = typer.Option("", "--location"),
    remote: bool = typer.Option(False, "--remote"),
    job_type: str = typer.Option("", "--job-type"),
    page: int = typer.Option(1, "--page"),
) -> None:
    configure_logging()
    settings = get_settings()
    params = JobSearchParams(
        query=query,
        location=location,
        is_remote=remote,
        job_type=job_type,
        page=page,
        page_size=settings.job_search_page_size,
    )
    try:
        results = JobSearchService(settings).search(params)
    except JobSearchError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc
    _echo(results.model_dump())


@app.command("serve")
def serve(
    host: str | None = typer.Option(None, "--host"),
    port: int | None = typer.Option(None, "--port"),
) -> None:
    configure_logging()
    ensure_initialized()
    settings = get_settings()
    app_instance = create_app()
    uvicorn.run(app_instance, host=host or settings.app_host, port=port or settings.app_port)
