from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Body,
    Depends,
    HTTPException,
    Query,
    Response,
    WebSocket,
    WebSocketDisconnect,
)
from sqlalchemy.orm import Session

from applytrack.api.deps import AUTH_REQUIRED, get_current_user, get_db, resolve_user
from applytrack.api.schemas import (
    ApplicationCreateRequest,
    ApplicationResponse,
    ApplicationUpdateRequest,
    ApplicationWithStepsResponse,
    JobSearchResponse,
    JobSourcesResponse,
    StepResponse,
    StepUpdateRequest,
    SubmitRequest,
    UserResponse,
)
from applytrack.core.job_search import JobSearchError, JobSearchService
from applytrack.core.events import get_event_bus
from applytrack.db.models import ApplicationStep, JobApplication, User
from applytrack.db.repositories import Repository, SubmissionError
from applytrack.db.session import SessionLocal
from applytrack.types import JobSearchParams

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["api"])

VERSION_HEADER = "X-Data-Version"


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def serialize_application(row: JobApplication) -> ApplicationResponse:
    return ApplicationResponse(
        id=row.id,
        title=row.title,
        company=row.company,
        location=row.location,
        description=row.description,
        url=row.url,
        status=row.status,
        notes=row.notes,
        source=row.source,
        external_job_id=row.external_job_id,
        progress=row.progress,
        version=row.version,
        created_at=_iso(row.created_at),
        updated_at=_iso(row.updated_at),
        applied_at=_iso(row.applied_at),
        submitted_at=_iso(row.submitted_at),
    )


def serialize_step(row: ApplicationStep, version: int) -> StepResponse:
    return StepResponse(
        id=row.id,
        application_id=row.application_id,
        step_name=row.step_name,
        step_order=row.step_order,
        completed=row.completed,
        data=row.data_json or {},
        completed_at=_iso(row.completed_at),
        version=version,
    )


def _owned_application(repo: Repository, application_id: int, user: User, verb: str) -> JobApplication:
    application = repo.get_application(application_id)
    if not application:
        raise HTTPException(status_code=404, detail="Application not found")
    if application.user_id != user.id:
        raise HTTPException(
            status_code=403,
            detail=f"You do not have permission to {verb} this application",
        )
    return application


def _owned_step(repo: Repository, step_id: int, user: User) -> ApplicationStep:
    step = repo.get_step(step_id)
    if not step:
        raise HTTPException(status_code=404, detail="Step not found")
    if step.application.user_id != user.id:
        raise HTTPException(status_code=403, detail="You do not have permission to update this step")
    return step


def _stamp(response: Response, repo: Repository, user: User) -> int:
    version = repo.current_version(user.id)
    response.headers[VERSION_HEADER] = str(version)
    return version


def _notify(
    background_tasks: BackgroundTasks,
    user: User,
    event_type: str,
    application_id: int,
    version: int,
) -> None:
    background_tasks.add_task(
        get_event_bus().publish,
        user.id,
        {"type": event_type, "application_id": application_id, "version": version},
    )


@router.get("/users/me", response_model=UserResponse)
def read_current_user(
    response: Response,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UserResponse:
    repo = Repository(db)
    version = _stamp(response, repo, user)
    return UserResponse(id=user.id, email=user.email, name=user.name, data_version=version)


@router.get("/applications", response_model=list[ApplicationResponse])
def list_applications(
    response: Response,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[ApplicationResponse]:
    repo = Repository(db)
    _stamp(response, repo, user)
    return [serialize_application(row) for row in repo.list_applications(user.id)]


@router.get("/job-applications", response_model=list[ApplicationResponse])
def list_job_applications(
    response: Response,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[ApplicationResponse]:
    return list_applications(response=response, user=user, db=db)


@router.post("/applications", response_model=ApplicationWithStepsResponse, status_code=201)
def create_application(
    payload: ApplicationCreateRequest,
    response: Response,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ApplicationWithStepsResponse:
    repo = Repository(db)
    application = repo.create_application(user.id, payload.model_dump())
    version = _stamp(response, repo, user)
    logger.info("Created application id=%s user_id=%s version=%s", application.id, user.id, version)
    _notify(background_tasks, user, "application.created", application.id, version)
    return ApplicationWithStepsResponse(
        application=serialize_application(application),
        steps=[serialize_step(step, application.version) for step in repo.list_steps(application.id)],
        version=version,
    )


@router.get("/applications/{application_id}", response_model=ApplicationWithStepsResponse)
def get_application(
    application_id: int,
    response: Response,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ApplicationWithStepsResponse:
    repo = Repository(db)
    application = _owned_application(repo, application_id, user, "access")
    version = _stamp(response, repo, user)
    return ApplicationWithStepsResponse(
        application=serialize_application(application),
        steps=[serialize_step(step, application.version) for step in repo.list_steps(application.id)],
        version=version,
    )


@router.put("/applications/{application_id}", response_model=ApplicationResponse)
def update_application(
    application_id: int,
    payload: ApplicationUpdateRequest,
    response: Response,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ApplicationResponse:
    repo = Repository(db)
    _owned_application(repo, application_id, user, "update")
    try:
        application = repo.update_application(application_id, payload.model_dump(exclude_none=True))
    except SubmissionError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    version = _stamp(response, repo, user)
    _notify(background_tasks, user, "application.updated", application.id, version)
    return serialize_application(application)


@router.delete("/applications/{application_id}", status_code=204)
def delete_application(
    application_id: int,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Response:
    repo = Repository(db)
    _owned_application(repo, application_id, user, "delete")
    version = repo.delete_application(application_id)
    _notify(background_tasks, user, "application.deleted", application_id, version)
    return Response(status_code=204, headers={VERSION_HEADER: str(version)})


@router.get("/applications/{application_id}/steps", response_model=list[StepResponse])
def list_application_steps(
    application_id: int,
    response: Response,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[StepResponse]:
    repo = Repository(db)
    application = _owned_application(repo, application_id, user, "access")
    _stamp(response, repo, user)
    return [serialize_step(step, application.version) for step in repo.list_steps(application_id)]


@router.put("/applications/steps/{step_id}", response_model=StepResponse)
def update_application_step(
    step_id: int,
    payload: StepUpdateRequest,
    response: Response,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> StepResponse:
    repo = Repository(db)
    _owned_step(repo, step_id, user)
    step = repo.update_step(step_id, data=payload.data, completed=payload.completed)
    version = _stamp(response, repo, user)
    _notify(background_tasks, user, "application.updated", step.application_id, version)
    return serialize_step(step, step.application.version)


@router.post("/applications/steps/{step_id}/complete", response_model=StepResponse)
def complete_application_step(
    step_id: int,
    response: Response,
    background_tasks: BackgroundTasks,
    payload: dict[str, Any] | None = Body(default=None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> StepResponse:
    repo = Repository(db)
    _owned_step(repo, step_id, user)
    data = {key: value for key, value in (payload or {}).items() if key != "completed"}
    step = repo.complete_step(step_id, data)
    version = _stamp(response, repo, user)
    _notify(background_tasks, user, "application.updated", step.application_id, version)
    return serialize_step(step, step.application.version)


@router.post("/applications/{application_id}/submit", response_model=ApplicationResponse)
def submit_application(
    application_id: int,
    response: Response,
    background_tasks: BackgroundTasks,
    payload: SubmitRequest | None = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ApplicationResponse:
    repo = Repository(db)
    _owned_application(repo, application_id, user, "submit")
    payload = payload or SubmitRequest()
    try:
        application = repo.submit_application(application_id, applied=payload.applied, notes=payload.notes)
    except SubmissionError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    version = _stamp(response, repo, user)
    logger.info(
        "Submitted application id=%s status=%s version=%s", application.id, application.status, version
    )
    _notify(background_tasks, user, "application.submitted", application.id, version)
    return serialize_application(application)


@router.websocket("/applications/stream")
async def stream_application_events(websocket: WebSocket, token: str = Query(default="")) -> None:
    with SessionLocal() as db:
        user = resolve_user(db, token)
        user_id = user.id if user else None

    if user_id is None:
        await websocket.close(code=4401, reason=AUTH_REQUIRED)
        return

    await websocket.accept()
    event_bus = get_event_bus()
    try:
        async for event in event_bus.subscribe(user_id):
            await websocket.send_json(event)
    except WebSocketDisconnect:
        return


@router.get("/jobs/sources", response_model=JobSourcesResponse)
def list_job_sources() -> JobSourcesResponse:
    return JobSourcesResponse.model_validate({"sources": JobSearchService().list_sources()})


@router.get("/jobs/search", response_model=JobSearchResponse)
def search_jobs(
    query: str = Query(default=""),
    location: str = Query(default=""),
    is_remote: bool = Query(default=False, alias="isRemote"),
    job_type: str = Query(default="", alias="jobType"),
    source: str = Query(default=""),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=10, ge=1, le=50, alias="pageSize"),
) -> JobSearchResponse:
    params = JobSearchParams(
        query=query,
        location=location,
        is_remote=is_remote,
        job_type=job_type,
        source=source,
        page=page,
        page_size=page_size,
    )
    try:
        results = JobSearchService().search(params)
    except JobSearchError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc

    return JobSearchResponse(
        jobs=[
            {
                "id": job.id,
                "source": job.source,
                "sourceId": job.source_id,
                "title": job.title,
                "company": job.company,
                "location": job.location,
                "description": job.description,
                "applyUrl": job.apply_url,
                "salary": job.salary,
                "datePosted": job.date_posted,
                "jobType": job.job_type,
                "isRemote": job.is_remote,
            }
            for job in results.jobs
        ],
        totalJobs=results.total_jobs,
        currentPage=results.current_page,
        pageCount=results.page_count,
    )
