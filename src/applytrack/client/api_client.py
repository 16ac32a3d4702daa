from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import requests

from applytrack.config import Settings, get_settings
from applytrack.types import ApplicationBundle, ApplicationRecord, StepRecord

logger = logging.getLogger(__name__)

AUTH_REQUIRED = "Authentication required"
VERSION_HEADER = "X-Data-Version"


class ApiError(RuntimeError):
    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class AuthenticationRequired(ApiError):
    pass


def is_authentication_error(exc: BaseException) -> bool:
    return isinstance(exc, AuthenticationRequired) or AUTH_REQUIRED in str(exc)


@dataclass(slots=True)
class ApiResponse:
    data: Any
    version: int


class ApiClient:
    """Thin wrapper over the applications REST API.

    ``session`` only needs a requests-compatible ``request`` method, so a
    ``requests.Session`` and FastAPI's ``TestClient`` are interchangeable.
    """

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        base_url: str | None = None,
        token: str | None = None,
        session: Any | None = None,
    ):
        self.settings = settings or get_settings()
        self.base_url = (base_url or self.settings.api_base_url).rstrip("/")
        self.token = self.settings.api_token if token is None else token
        self.session = session or requests.Session()

    def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> ApiResponse:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            response = self.session.request(
                method,
                f"{self.base_url}{path}",
                json=json,
                params=params,
                headers=headers,
                timeout=self.settings.http_timeout_sec,
            )
        except requests.RequestException as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise ApiError(0, f"Network error: {exc}") from exc

        if response.status_code >= 400:
            message = _error_message(response)
            if response.status_code == 401 or AUTH_REQUIRED in message:
                raise AuthenticationRequired(response.status_code, message or AUTH_REQUIRED)
            raise ApiError(response.status_code, message)

        version = int(response.headers.get(VERSION_HEADER) or 0)
        data = response.json() if response.status_code != 204 and response.content else None
        return ApiResponse(data=data, version=version)

    def get_current_user(self) -> ApiResponse:
        return self.request("GET", "/api/users/me")

    def list_applications(self, path: str = "/api/applications") -> ApiResponse:
        result = self.request("GET", path)
        return ApiResponse(
            data=[ApplicationRecord.model_validate(item) for item in result.data or []],
            version=result.version,
        )

    def get_application(self, application_id: int) -> ApplicationBundle:
        result = self.request("GET", f"/api/applications/{application_id}")
        return ApplicationBundle.model_validate(result.data)

    def create_application(self, body: dict[str, Any]) -> ApplicationBundle:
        result = self.request("POST", "/api/applications", json=body)
        return ApplicationBundle.model_validate(result.data)

    def update_application(self, application_id: int, body: dict[str, Any]) -> ApplicationRecord:
        result = self.request("PUT", f"/api/applications/{application_id}", json=body)
        return ApplicationRecord.model_validate(result.data)

    def delete_application(self, application_id: int) -> int:
        return self.request("DELETE", f"/api/applications/{application_id}").version

    def complete_step(self, step_id: int, data: dict[str, Any]) -> ApiResponse:
        result = self.request(
            "POST",
            f"/api/applications/steps/{step_id}/complete",
            json={**data, "completed": True},
        )
        return ApiResponse(data=StepRecord.model_validate(result.data), version=result.version)

    def submit_application(self, application_id: int, *, applied: bool, notes: str = "") -> ApplicationRecord:
        result = self.request(
            "POST",
            f"/api/applications/{application_id}/submit",
            json={"applied": applied, "notes": notes},
        )
        return ApplicationRecord.model_validate(result.data)

    def search_jobs(self, params: dict[str, Any]) -> dict[str, Any]:
        return self.request("GET", "/api/jobs/search", params=params).data

    def job_sources(self) -> list[dict[str, str]]:
        return self.request("GET", "/api/jobs/sources").data.get("sources", [])


def _error_message(response: Any) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"

    if isinstance(body, dict):
        detail = body.get("detail") or body.get("message")
        if isinstance(detail, str):
            return detail
        if detail is not None:
            return str(detail)
    return f"HTTP {response.status_code}"
