from applytrack.core.views import filter_views, from_legacy_view, from_payload, to_legacy_view
from applytrack.types import ApplicationRecord


def test_legacy_view_exposes_every_naming_variant() -> None:
    record = ApplicationRecord(
        id=3,
        title="SRE",
        company="Umbrella",
        url="https://jobs.example.com/sre",
        external_job_id="adz-77",
        created_at="2026-01-02T03:04:05",
    )

    view = to_legacy_view(record)

    assert view["company"] == view["companyName"] == "Umbrella"
    assert view["title"] == view["jobTitle"] == view["position"] == "SRE"
    assert view["url"] == view["externalJobUrl"] == view["jobLink"]
    assert view["adzunaJobId"] == "adz-77"
    assert view["location"] == view["jobLocation"] == "Remote"
    assert view["applicationDate"] == "2026-01-02T03:04:05"


def test_from_payload_accepts_mixed_variants() -> None:
    details = from_payload(
        {"id": 991, "jobTitle": "Analyst", "companyName": "Vandelay", "jobLink": "https://x.test/a"}
    )

    assert details.title == "Analyst"
    assert details.company == "Vandelay"
    assert details.url == "https://x.test/a"
    assert details.external_job_id == "991"
    assert details.source == "Adzuna"


def test_legacy_view_reads_back_to_canonical_record() -> None:
    record = ApplicationRecord(id=12, title="PM", company="Soylent", status="Applied", progress=75, pending=True)
    assert from_legacy_view(to_legacy_view(record)) == record


def test_filter_views_by_status() -> None:
    views = [
        to_legacy_view(ApplicationRecord(id=1, title="a", company="b", status="Applied")),
        to_legacy_view(ApplicationRecord(id=2, title="c", company="d")),
    ]
    assert [view["id"] for view in filter_views(views, "status", "Applied")] == [1]
