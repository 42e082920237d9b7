import pytest
from fastapi.testclient import TestClient

import main
from report_data import AnalysisBundle
from vebapi import AnalysisRun


@pytest.fixture
def client():
    main._rate_buckets.clear()
    with TestClient(main.app) as c:
        yield c


@pytest.fixture
def fake_collect(monkeypatch, seo_result, speed_result):
    calls = []

    async def _collect(website, include_ai=True, client=None):
        calls.append((website, include_ai))
        return AnalysisRun(
            website=website,
            bundle=AnalysisBundle(seo_analysis=seo_result, loading_speed=speed_result),
            errors={"ai_visibility": "Quota exceeded"},
        )

    monkeypatch.setattr(main, "collect_bundle", _collect)
    return calls


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_info_lists_endpoints(client):
    assert "fix_guide" in client.get("/info").json()["endpoints"]


def test_fix_guide_returns_pdf_attachment(client, seo_result, read_pages):
    resp = client.post("/reports/fix-guide", json={"website": "example.com", "seo_analysis": seo_result})

    assert resp.status_code == 200
    assert resp.headers["content-type"] == "application/pdf"
    assert resp.headers["content-disposition"] == "attachment; filename=seo-report-example-com.pdf"
    assert resp.content.startswith(b"%PDF")
    text = read_pages(resp.content)[0]
    assert "SEO FIX GUIDE: EXAMPLE.COM" in text
    assert "Report generated:" in text


def test_fix_guide_accepts_camel_case_and_empty_bundle(client, read_pages):
    resp = client.post("/reports/fix-guide", json={"website": "example.com", "aiVisibility": None})
    assert resp.status_code == 200
    assert "No analysis data was available" in read_pages(resp.content)[0]


def test_fix_guide_rejects_blank_website(client):
    resp = client.post("/reports/fix-guide", json={"website": "   "})
    assert resp.status_code == 422


def test_analysis_round_trip_and_export(client, fake_collect, read_pages):
    resp = client.post("/analyses", json={"website": "https://example.com", "guest_email": " Guest@Example.com "})
    assert resp.status_code == 200
    body = resp.json()
    assert body["seo_analysis"]["summary"]["grade"] == "B"
    assert body["ai_visibility"] is None
    assert body["errors"] == {"ai_visibility": "Quota exceeded"}
    assert fake_collect == [("https://example.com", True)]

    stored = client.get(f"/analyses/{body['id']}").json()
    assert stored["website"] == "https://example.com"
    assert stored["guest_email"] == "guest@example.com"
    assert stored["loading_speed"]["summary"]["load_time_ms"] == 1234

    history = client.get("/analyses", params={"email": "guest@example.com"}).json()
    assert body["id"] in [h["id"] for h in history]
    entry = next(h for h in history if h["id"] == body["id"])
    assert entry["has_seo"] and entry["has_speed"]
    assert not entry["has_ai_visibility"]

    export = client.post(f"/analyses/{body['id']}/export")
    assert export.status_code == 200
    assert export.headers["content-disposition"].endswith("filename=seo-report-https---example-com.pdf")
    text = "\n".join(read_pages(export.content))
    assert "Overall Score: 82/100" in text
    assert "Performance & Speed" in text


def test_analysis_fails_when_seo_and_speed_both_fail(client, monkeypatch):
    async def _collect(website, include_ai=True, client=None):
        return AnalysisRun(
            website=website,
            bundle=AnalysisBundle(ai_visibility={"score": 40}),
            errors={"seo_analysis": "boom", "loading_speed": "boom"},
        )

    monkeypatch.setattr(main, "collect_bundle", _collect)
    resp = client.post("/analyses", json={"website": "example.com"})
    assert resp.status_code == 502


def test_analysis_rejects_empty_website(client, fake_collect):
    resp = client.post("/analyses", json={"website": "https://"})
    assert resp.status_code == 422
    assert fake_collect == []


def test_unknown_analysis_is_404(client):
    assert client.get("/analyses/does-not-exist").status_code == 404
    assert client.post("/analyses/does-not-exist/export").status_code == 404


def test_rate_limit(client, monkeypatch):
    monkeypatch.setattr(main, "RATE_LIMIT", 2)
    main._rate_buckets.clear()
    statuses = [client.get("/analyses/nope").status_code for _ in range(3)]
    assert statuses == [404, 404, 429]
    assert client.get("/health").status_code == 200
