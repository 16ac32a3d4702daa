from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Literal

from applytrack.client.api_client import ApiClient, ApiError, is_authentication_error
from applytrack.config import Settings, get_settings
from applytrack.core.mutations import MutationLayer
from applytrack.core.outbox import LocalStore, OfflineOutbox
from applytrack.core.queries import build_query_cache
from applytrack.core.query_cache import application_key
from applytrack.core.wizard import StepOutcome, WizardMachine, WizardStep
from applytrack.types import ApplicationBundle, ApplicationRecord, JobDetails, StepRecord

logger = logging.getLogger(__name__)

APPLICATION_LIST_ROUTE = "/interviews"


@dataclass(slots=True)
class Notification:
    title: str
    description: str
    variant: Literal["default", "destructive"] = "default"


@dataclass
class Notifier:
    """Collects user-facing notices; the CLI prints them, tests inspect them."""

    notifications: list[Notification] = field(default_factory=list)

    def notify(self, title: str, description: str, variant: Literal["default", "destructive"] = "default") -> None:
        notice = Notification(title=title, description=description, variant=variant)
        self.notifications.append(notice)
        if variant == "destructive":
            logger.warning("%s: %s", title, description)
        else:
            logger.info("%s: %s", title, description)

    @property
    def last(self) -> Notification | None:
        return self.notifications[-1] if self.notifications else None


def build_mutation_layer(
    settings: Settings | None = None,
    *,
    client: ApiClient | None = None,
    store: LocalStore | None = None,
) -> MutationLayer:
    settings = settings or get_settings()
    client = client or ApiClient(settings=settings)
    outbox = OfflineOutbox(store or LocalStore(settings.local_store_path))
    cache = build_query_cache(client, outbox, settings)
    return MutationLayer(client, outbox, cache, settings=settings)


class ApplicationWizard:
    """Drives the four-step flow that turns a job posting into a tracked application."""

    def __init__(
        self,
        job: JobDetails,
        mutations: MutationLayer,
        *,
        notifier: Notifier | None = None,
    ):
        self.job = job
        self.mutations = mutations
        self.notifier = notifier or Notifier()
        self.machine = WizardMachine(job=job)
        self.bundle: ApplicationBundle | None = None
        self.redirect: str | None = None
        self.offline = False

    @property
    def step(self) -> WizardStep:
        return self.machine.step

    @property
    def closed(self) -> bool:
        return self.machine.closed

    @property
    def application(self) -> ApplicationRecord | None:
        return self.bundle.application if self.bundle else None

    def open(self) -> WizardStep:
        self.machine.step = WizardStep.DETAILS
        self.redirect = None
        if WizardMachine.initial_step(self.job) is WizardStep.RESUME:
            outcome = self.advance({"notes": ""})
            if not outcome.ok:
                logger.info("Could not start application up front: %s", outcome.errors)
        return self.step

    def retreat(self) -> WizardStep:
        return self.machine.retreat()

    def advance(self, form_data: dict[str, Any]) -> StepOutcome:
        self.machine.form_data[self.step] = dict(form_data)
        outcome = self.machine.validate(form_data)
        if not outcome.ok:
            return outcome

        current = self.step
        try:
            if current is WizardStep.DETAILS:
                self._start(form_data.get("notes") or "")
            elif current is WizardStep.REVIEW:
                self._finish(form_data)
            else:
                self._complete(current, form_data)
        except ApiError as exc:
            message = self._failure_message(current, exc)
            return StepOutcome(step=current, errors={"form": message})

        return StepOutcome(step=self.machine.move_next())

    def _failure_message(self, step: WizardStep, exc: ApiError) -> str:
        if step is WizardStep.DETAILS and self.bundle is None:
            title, message = "Error", "Failed to create application. Please try again."
        elif step is WizardStep.REVIEW:
            title, message = "Submission Error", exc.message or "Failed to submit application. Please try again."
        else:
            title, message = "Error", exc.message or "Failed to complete this step. Please try again."
        if is_authentication_error(exc):
            message = "Please sign in to track your application progress."
        self.notifier.notify(title, message, variant="destructive")
        return message

    def _step_record(self, step: WizardStep) -> StepRecord:
        if self.bundle is None:
            raise ApiError(0, "No application ID")
        record = self.bundle.step_for_order(step.value)
        if record is None:
            raise ApiError(0, f"Application has no {step.step_name} step")
        return record

    def _replace_step(self, updated: StepRecord) -> None:
        if self.bundle is None:
            raise ApiError(0, "No application ID")
        self.bundle.steps = [updated if s.step_order == updated.step_order else s for s in self.bundle.steps]

    def _start(self, notes: str) -> None:
        if self.bundle is None:
            result = self.mutations.create_application(self.job, notes)
            self.bundle = result.data
            self.offline = self.offline or result.offline
            self.notifier.notify("Application created", "Your application has been started successfully.")
        self._complete(WizardStep.DETAILS, {"notes": notes})

    def _complete(self, step: WizardStep, form_data: dict[str, Any]) -> None:
        result = self.mutations.complete_step(self._step_record(step), dict(form_data))
        self.offline = self.offline or result.offline
        self._replace_step(result.data)

    def _finish(self, form_data: dict[str, Any]) -> None:
        if self.bundle is None:
            raise ApiError(0, "No application ID")
        application_id = self.bundle.application.id
        self.mutations.outbox.save_form_data(application_id, dict(form_data))
        self._complete(WizardStep.REVIEW, form_data)

        applied = bool(form_data.get("applied"))
        result = self.mutations.submit_application(
            self.bundle.application,
            applied=applied,
            notes=form_data.get("submission_notes") or "",
        )
        self.offline = self.offline or result.offline
        self.bundle.application = result.data
        self.mutations.cache.invalidate(application_key(application_id), min_version=result.version)
        self.notifier.notify(
            "Application submitted",
            "Your application has been marked as submitted and added to your applications tracker.",
        )
        self.redirect = APPLICATION_LIST_ROUTE
