import json
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from typer.testing import CliRunner

from applytrack.api.app import create_app
from applytrack.cli.app import app
from applytrack.client.api_client import ApiClient
from applytrack.config import Settings

runner = CliRunner()


@pytest.fixture
def cli_settings(tmp_path: Path, monkeypatch) -> Settings:
    settings = Settings(
        local_store_path=tmp_path / "store.json",
        consistency_poll_interval_sec=0.0,
        adzuna_app_id="",
        adzuna_app_key="",
    )
    monkeypatch.setattr("applytrack.cli.app.get_settings", lambda: settings)
    monkeypatch.setattr("applytrack.cli.app.configure_logging", lambda *args, **kwargs: None)
    return settings


def _point_cli_at_test_server(monkeypatch, settings: Settings, token: str) -> None:
    monkeypatch.setattr(
        "applytrack.cli.app.build_client",
        lambda: ApiClient(
            settings=settings,
            base_url="http://testserver",
            token=token,
            session=TestClient(create_app()),
        ),
    )


def test_init_and_user_create(cli_settings) -> None:
    init = runner.invoke(app, ["init"])
    assert init.exit_code == 0
    assert json.loads(init.stdout)["ok"] is True

    created = runner.invoke(app, ["user", "create", "--email", "lin@example.com", "--name", "Lin"])
    assert created.exit_code == 0
    payload = json.loads(created.stdout)
    assert payload["email"] == "lin@example.com"
    assert payload["api_token"]

    duplicate = runner.invoke(app, ["user", "create", "--email", "lin@example.com"])
    assert duplicate.exit_code != 0


def test_apply_runs_wizard_and_apps_commands_show_result(cli_settings, monkeypatch, user) -> None:
    _point_cli_at_test_server(monkeypatch, cli_settings, user.token)

    result = runner.invoke(
        app,
        [
            "apply",
            "--url",
            "https://jobs.example.com/cli",
            "--title",
            "CLI Engineer",
            "--company",
            "Tyrell",
            "--description",
            "Terminal tooling",
            "--resume-id",
            "r-1",
            "--cover-letter-id",
            "none",
            "--applied",
            "--submission-notes",
            "emailed",
        ],
    )

    assert result.exit_code == 0, result.stdout
    assert "Step 2: Application Step 2" in result.stdout
    assert '"status": "Applied"' in result.stdout
    assert '"redirect": "/interviews"' in result.stdout

    listing = runner.invoke(app, ["apps", "list", "--email", user.email])
    rows = json.loads(listing.stdout)
    assert [(row["title"], row["status"], row["progress"]) for row in rows] == [("CLI Engineer", "Applied", 100)]

    shown = runner.invoke(app, ["apps", "show", "--id", str(rows[0]["id"])])
    detail = json.loads(shown.stdout)
    assert detail["application"]["company"] == "Tyrell"
    assert all(step["completed"] for step in detail["steps"])


def test_apply_prompts_for_missing_values(cli_settings, monkeypatch, user) -> None:
    _point_cli_at_test_server(monkeypatch, cli_settings, user.token)
    monkeypatch.setattr("applytrack.cli.app.fetch_job_text", lambda url, timeout_sec=30: "")

    result = runner.invoke(
        app,
        ["apply", "--url", "https://jobs.example.com/prompted"],
        input="Prompted Role\nStark\nsaw it online\n\n\nn\n\n",
    )

    assert result.exit_code == 0, result.stdout
    assert '"status": "In Progress"' in result.stdout


def test_signed_out_apply_is_queued_and_replayed(cli_settings, monkeypatch, user) -> None:
    _point_cli_at_test_server(monkeypatch, cli_settings, token="")
    options = [
        "--url", "https://jobs.example.com/q",
        "--title", "Queued Role",
        "--company", "Oscorp",
        "--description", "d",
        "--resume-id", "none",
        "--cover-letter-id", "none",
        "--not-applied",
        "--submission-notes", "",
    ]

    queued = runner.invoke(app, ["apply", *options])
    assert queued.exit_code == 0, queued.stdout
    assert '"offline": true' in queued.stdout

    status = json.loads(runner.invoke(app, ["outbox", "status"]).stdout)
    assert len(status["pending"]) == 6
    assert status["provisional_applications"][0]["companyName"] == "Oscorp"

    _point_cli_at_test_server(monkeypatch, cli_settings, user.token)
    replay = runner.invoke(app, ["outbox", "replay"])
    assert replay.exit_code == 0, replay.stdout
    assert json.loads(replay.stdout)["remaining"] == 0

    rows = json.loads(runner.invoke(app, ["apps", "list", "--email", user.email]).stdout)
    assert [row["title"] for row in rows] == ["Queued Role"]


def test_jobs_commands_without_configured_sources(cli_settings) -> None:
    sources = runner.invoke(app, ["jobs", "sources"])
    assert json.loads(sources.stdout) == []

    search = runner.invoke(app, ["jobs", "search", "--query", "python"])
    assert search.exit_code == 1
