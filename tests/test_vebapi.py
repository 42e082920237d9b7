import asyncio

import httpx
import pytest

import vebapi
from vebapi import VebApiError, call_vebapi, clean_website, collect_bundle


def _run_with(handler, coro_factory):
    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await coro_factory(client)
    return asyncio.run(go())


@pytest.mark.parametrize("raw,expected", [
    ("https://example.com/", "example.com"),
    ("http://example.com", "example.com"),
    ("HTTPS://Example.com/path/", "Example.com/path"),
    ("  example.com  ", "example.com"),
])
def test_clean_website(raw, expected):
    assert clean_website(raw) == expected


def test_call_sends_api_key_and_clean_site(monkeypatch):
    monkeypatch.setattr(vebapi, "VEBAPI_KEY", "secret-key")
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["website"] = request.url.params["website"]
        seen["key"] = request.headers["X-API-KEY"]
        return httpx.Response(200, json={"summary": {"overall_score": 90}})

    data = _run_with(handler, lambda c: call_vebapi("seo/analyze/v2", "https://example.com/", c))

    assert data == {"summary": {"overall_score": 90}}
    assert seen["path"].endswith("/seo/analyze/v2")
    assert seen["website"] == "example.com"
    assert seen["key"] == "secret-key"


def test_call_raises_with_api_error_message():
    def handler(request):
        return httpx.Response(429, json={"error": "Quota exceeded"})

    with pytest.raises(VebApiError) as exc:
        _run_with(handler, lambda c: call_vebapi("seo/aiseochecker", "example.com", c))
    assert str(exc.value) == "Quota exceeded"
    assert exc.value.status_code == 429


def test_call_raises_on_non_json_error_body():
    def handler(request):
        return httpx.Response(502, text="<html>Bad gateway</html>")

    with pytest.raises(VebApiError) as exc:
        _run_with(handler, lambda c: call_vebapi("seo/analyze/v2", "example.com", c))
    assert exc.value.status_code == 502


def test_call_wraps_transport_errors():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(VebApiError):
        _run_with(handler, lambda c: call_vebapi("seo/analyze/v2", "example.com", c))


def test_collect_bundle_keeps_successes_and_records_failures():
    payloads = {
        "/seo/analyze/v2": {"summary": {"overall_score": 70}},
        "/seo/ai-visibility-checker/v2": {"score": 50},
        "/seo/aiseochecker": {"robots_found": False},
        "/seo/topsearchkeywords": {"keywords": [{"keyword": "seo audit"}]},
    }

    def handler(request):
        for suffix, body in payloads.items():
            if request.url.path.endswith(suffix):
                return httpx.Response(200, json=body)
        return httpx.Response(503, json={"error": "Speed service unavailable"})

    run = _run_with(handler, lambda c: collect_bundle("example.com", client=c))

    assert run.bundle.seo_analysis == {"summary": {"overall_score": 70}}
    assert run.bundle.loading_speed is None
    assert run.bundle.ai_visibility == {"score": 50}
    assert run.bundle.ai_bot_checker == {"robots_found": False}
    assert run.top_keywords == {"keywords": [{"keyword": "seo audit"}]}
    assert run.errors == {"loading_speed": "Speed service unavailable"}


def test_collect_bundle_without_ai_skips_pro_checks():
    requested = []

    def handler(request):
        requested.append(request.url.path)
        return httpx.Response(200, json={"ok": True})

    run = _run_with(handler, lambda c: collect_bundle("example.com", include_ai=False, client=c))

    assert sorted(p.rsplit("/api/", 1)[-1] for p in requested) == [
        "seo/analyze/v2", "seo/loadingspeeddata/v2",
    ]
    assert run.bundle.ai_visibility is None
    assert run.bundle.ai_bot_checker is None
    assert run.top_keywords is None
    assert run.errors == {}
