"""
vebapi.py — Client for the third-party analysis API (SEO, speed, AI checks).

Every analysis is a GET on `<base>/<endpoint>?website=<site>` authenticated
with an `X-API-KEY` header. `collect_bundle` runs the calls for one site
concurrently and keeps whatever succeeded.

Usage:
    from vebapi import collect_bundle
    run = await collect_bundle("example.com")
    run.bundle.seo_analysis, run.errors
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Optional

import httpx
from pydantic import BaseModel, Field

from report_data import AnalysisBundle

logger = logging.getLogger("seozapp")

VEBAPI_BASE_URL = os.getenv("VEBAPI_BASE_URL", "https://vebapi.com/api").rstrip("/")
VEBAPI_KEY = os.getenv("VEBAPI_KEY", "")
VEBAPI_TIMEOUT = float(os.getenv("VEBAPI_TIMEOUT", "60"))

ENDPOINTS = {
    "seo_analysis":   "seo/analyze/v2",
    "loading_speed":  "seo/loadingspeeddata/v2",
    "ai_visibility":  "seo/ai-visibility-checker/v2",
    "ai_bot_checker": "seo/aiseochecker",
    "top_keywords":   "seo/topsearchkeywords",
}

# Only available to Pro accounts; the caller decides via include_ai.
PRO_CHECKS = ("ai_visibility", "ai_bot_checker", "top_keywords")


class VebApiError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AnalysisRun(BaseModel):
    """Outcome of one collect_bundle call."""

    website:      str
    bundle:       AnalysisBundle
    top_keywords: Optional[dict] = None
    errors:       dict[str, str] = Field(default_factory=dict)


def clean_website(website: str) -> str:
    """Strip scheme and trailing slash: https://example.com/ -> example.com"""
    w = website.strip()
    for prefix in ("https://", "http://"):
        if w.lower().startswith(prefix):
            w = w[len(prefix):]
            break
    return w.rstrip("/")


async def call_vebapi(endpoint: str, website: str,
                      client: Optional[httpx.AsyncClient] = None) -> dict:
    """GET one analysis endpoint. Raises VebApiError on any failure."""
    url = f"{VEBAPI_BASE_URL}/{endpoint}"
    params = {"website": clean_website(website)}
    headers = {"X-API-KEY": VEBAPI_KEY, "Content-Type": "application/json"}

    logger.info(f"[VebAPI] Calling {endpoint} for {params['website']}")
    try:
        if client is None:
            async with httpx.AsyncClient(timeout=VEBAPI_TIMEOUT) as http:
                resp = await http.get(url, params=params, headers=headers)
        else:
            resp = await client.get(url, params=params, headers=headers)
    except httpx.HTTPError as e:
        logger.warning(f"[VebAPI] {endpoint} transport error: {e}")
        raise VebApiError(f"Request to {endpoint} failed: {e}") from e

    if resp.status_code >= 400:
        try:
            detail = resp.json().get("error")
        except (ValueError, AttributeError):
            detail = None
        logger.warning(f"[VebAPI] {endpoint} returned HTTP {resp.status_code}: {detail}")
        raise VebApiError(
            detail or f"Request failed: {resp.reason_phrase or resp.status_code}",
            status_code=resp.status_code,
        )

    try:
        data = resp.json()
    except ValueError as e:
        raise VebApiError(f"{endpoint} returned invalid JSON", status_code=resp.status_code) from e
    logger.info(f"[VebAPI] Success for {endpoint}")
    return data


async def analyze_seo(website: str, client: Optional[httpx.AsyncClient] = None) -> dict:
    return await call_vebapi(ENDPOINTS["seo_analysis"], website, client)


async def check_loading_speed(website: str, client: Optional[httpx.AsyncClient] = None) -> dict:
    return await call_vebapi(ENDPOINTS["loading_speed"], website, client)


async def check_ai_visibility(website: str, client: Optional[httpx.AsyncClient] = None) -> dict:
    return await call_vebapi(ENDPOINTS["ai_visibility"], website, client)


async def check_ai_bots(website: str, client: Optional[httpx.AsyncClient] = None) -> dict:
    return await call_vebapi(ENDPOINTS["ai_bot_checker"], website, client)


async def check_top_keywords(website: str, client: Optional[httpx.AsyncClient] = None) -> dict:
    return await call_vebapi(ENDPOINTS["top_keywords"], website, client)


_CHECKS = {
    "seo_analysis":   analyze_seo,
    "loading_speed":  check_loading_speed,
    "ai_visibility":  check_ai_visibility,
    "ai_bot_checker": check_ai_bots,
    "top_keywords":   check_top_keywords,
}


async def collect_bundle(website: str, include_ai: bool = True,
                         client: Optional[httpx.AsyncClient] = None) -> AnalysisRun:
    """
    Run every requested check concurrently. A failed check leaves its slot
    empty and records the reason in `errors`; nothing here raises for a
    single failed call.
    """
    names = [n for n in _CHECKS if include_ai or n not in PRO_CHECKS]
    results = await asyncio.gather(
        *(_CHECKS[n](website, client) for n in names),
        return_exceptions=True,
    )

    values: dict[str, Optional[dict]] = {}
    errors: dict[str, str] = {}
    for name, result in zip(names, results):
        if isinstance(result, VebApiError):
            errors[name] = str(result)
            values[name] = None
        elif isinstance(result, BaseException):
            raise result
        else:
            values[name] = result

    if errors:
        logger.warning(f"[VebAPI] {website}: {len(errors)}/{len(names)} checks failed ({', '.join(errors)})")

    return AnalysisRun(
        website=website,
        bundle=AnalysisBundle(
            seo_analysis=values.get("seo_analysis"),
            loading_speed=values.get("loading_speed"),
            ai_visibility=values.get("ai_visibility"),
            ai_bot_checker=values.get("ai_bot_checker"),
        ),
        top_keywords=values.get("top_keywords") if isinstance(values.get("top_keywords"), dict) else None,
        errors=errors,
    )
