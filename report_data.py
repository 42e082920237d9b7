"""
report_data.py — Normalise raw analysis-API payloads into the shape the
fix-guide PDF renders.

The analysis API answers with loosely-typed JSON whose field names vary
between endpoint versions. Everything here is pure: each section has its own
normaliser, and a section whose data has the wrong type is dropped on its own
without affecting the others.

Usage:
    from report_data import AnalysisBundle, normalize_bundle
    data = normalize_bundle(AnalysisBundle(seo_analysis=payload))
"""

from __future__ import annotations

import logging
import math
from typing import Any, Callable, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger("seozapp")

Scalar = Union[float, str]

# ---------------------------------------------------------------------------
# Severity ranking
# ---------------------------------------------------------------------------

SEVERITY_WEIGHTS = {
    "critical": 3,
    "error":    3,
    "high":     2,
    "medium":   1,
    "warning":  1,
    "low":      0,
    "info":     0,
}


def severity_weight(label) -> int:
    """Weight for a severity label. Case-insensitive; unknown or missing -> 0."""
    if not isinstance(label, str):
        return 0
    return SEVERITY_WEIGHTS.get(label.strip().lower(), 0)


def rank_findings(findings: list["Finding"]) -> list["Finding"]:
    """Most urgent first. Equal weights keep their original order."""
    return sorted(findings, key=lambda f: -severity_weight(f.severity))


# ---------------------------------------------------------------------------
# Input bundle
# ---------------------------------------------------------------------------

class AnalysisBundle(BaseModel):
    """Up to four independently optional raw results for one site."""

    model_config = ConfigDict(populate_by_name=True)

    seo_analysis:   Optional[Any] = Field(default=None, alias="seoAnalysis")
    ai_visibility:  Optional[Any] = Field(default=None, alias="aiVisibility")
    ai_bot_checker: Optional[Any] = Field(default=None, alias="aiBotChecker")
    loading_speed:  Optional[Any] = Field(default=None, alias="loadingSpeed")


# ---------------------------------------------------------------------------
# Canonical section models
# ---------------------------------------------------------------------------

class Finding(BaseModel):
    severity: Optional[str] = None
    category: Optional[str] = None
    issue:    Optional[str] = None
    fix:      Optional[str] = None


class Suggestion(BaseModel):
    priority: Optional[str] = None
    category: Optional[str] = None
    message:  Optional[str] = None


class BotRule(BaseModel):
    allowed: bool = False
    rule:    Optional[str] = None


class ScoresSection(BaseModel):
    overall_score:      Optional[Scalar] = None
    grade:              Optional[str] = None
    buckets:            dict[str, Scalar] = Field(default_factory=dict)
    images_missing_alt: Optional[Scalar] = None


class FindingsSection(BaseModel):
    findings: list[Finding] = Field(default_factory=list)


class SpeedSection(BaseModel):
    grade:        Optional[str] = None
    score:        Optional[Scalar] = None
    has_grade:    bool = False
    load_time_ms: Optional[float] = None


class AiVisibilitySection(BaseModel):
    score:       Optional[Scalar] = None
    suggestions: list[Suggestion] = Field(default_factory=list)


class AiBotSection(BaseModel):
    robots_found:    Optional[bool] = None
    ai_bots_allowed: Optional[bool] = None
    bots:            dict[str, BotRule] = Field(default_factory=dict)


class ReportData(BaseModel):
    scores:        Optional[ScoresSection] = None
    findings:      Optional[FindingsSection] = None
    speed:         Optional[SpeedSection] = None
    ai_visibility: Optional[AiVisibilitySection] = None
    ai_bots:       Optional[AiBotSection] = None

    def is_empty(self) -> bool:
        return all(
            s is None
            for s in (self.scores, self.findings, self.speed, self.ai_visibility, self.ai_bots)
        )


class MalformedSectionError(ValueError):
    """A present field has a type the report cannot use."""


# ---------------------------------------------------------------------------
# Field coercion helpers
# ---------------------------------------------------------------------------

def _mapping(value, path: str) -> Optional[dict]:
    if value is None:
        return None
    if not isinstance(value, dict):
        raise MalformedSectionError(f"{path}: expected an object, got {type(value).__name__}")
    return value


def _sequence(value, path: str) -> Optional[list]:
    if value is None:
        return None
    if not isinstance(value, list):
        raise MalformedSectionError(f"{path}: expected a list, got {type(value).__name__}")
    return value


def _text(value, path: str) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return format_number(value)
    raise MalformedSectionError(f"{path}: expected text, got {type(value).__name__}")


def _finite(value, path: str) -> float:
    # JSON integers are unbounded; anything outside the float range is unusable.
    try:
        number = float(value)
    except OverflowError:
        raise MalformedSectionError(f"{path}: number out of range") from None
    if not math.isfinite(number):
        raise MalformedSectionError(f"{path}: number out of range")
    return number


def _scalar(value, path: str) -> Optional[Scalar]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise MalformedSectionError(f"{path}: expected a number, got bool")
    if isinstance(value, (int, float)):
        return _finite(value, path)
    if isinstance(value, str):
        return value
    raise MalformedSectionError(f"{path}: expected a number, got {type(value).__name__}")


def _number(value, path: str) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise MalformedSectionError(f"{path}: expected a number, got bool")
    if isinstance(value, (int, float)):
        return _finite(value, path)
    if isinstance(value, str):
        try:
            number = float(value)
        except ValueError:
            raise MalformedSectionError(f"{path}: {value!r} is not a number") from None
        return _finite(number, path)
    raise MalformedSectionError(f"{path}: expected a number, got {type(value).__name__}")


_TRUE_WORDS = {"true", "yes", "1"}
_FALSE_WORDS = {"false", "no", "0"}


def _flag(value, path: str) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    raise MalformedSectionError(f"{path}: expected a boolean, got {value!r}")


def _first_present(*candidates):
    for c in candidates:
        if c is not None:
            return c
    return None


def format_number(value) -> str:
    """Render 82.0 as "82" and 87.5 as "87.5"."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


# ---------------------------------------------------------------------------
# Section normalisers
# ---------------------------------------------------------------------------

def normalize_scores(seo) -> Optional[ScoresSection]:
    """Overall score, grade, bucket scores and the alt-text counter."""
    seo = _mapping(seo, "seo_analysis")
    if seo is None:
        return None
    summary = _mapping(seo.get("summary"), "summary")
    scores  = _mapping(seo.get("scores"), "scores") or {}

    overall = _first_present((summary or {}).get("overall_score"), scores.get("overall"))
    if summary is None and overall is None:
        return None

    buckets = {}
    for name, value in (_mapping(scores.get("buckets"), "scores.buckets") or {}).items():
        score = _scalar(value, f"scores.buckets.{name}")
        if score is not None:
            buckets[str(name)] = score

    images        = _mapping(seo.get("images"), "images") or {}
    accessibility = _mapping(seo.get("accessibility"), "accessibility") or {}
    missing_alt = _first_present(
        images.get("missing_alt"),
        images.get("without_alt"),
        accessibility.get("images_missing_alt"),
    )

    return ScoresSection(
        overall_score=_scalar(overall, "summary.overall_score"),
        grade=_text((summary or {}).get("grade"), "summary.grade") or None,
        buckets=buckets,
        images_missing_alt=_scalar(missing_alt, "images.missing_alt"),
    )


def normalize_findings(seo) -> Optional[FindingsSection]:
    """Ranked issue list. Present SEO data without findings is an empty list."""
    seo = _mapping(seo, "seo_analysis")
    if seo is None:
        return None
    findings = []
    for i, raw in enumerate(_sequence(seo.get("findings"), "findings") or []):
        item = _mapping(raw, f"findings[{i}]")
        if item is None:
            continue
        findings.append(Finding(
            severity=_text(item.get("severity"), f"findings[{i}].severity"),
            category=_text(item.get("category"), f"findings[{i}].category"),
            issue=_text(item.get("issue"), f"findings[{i}].issue"),
            fix=_text(item.get("fix"), f"findings[{i}].fix"),
        ))
    return FindingsSection(findings=rank_findings(findings))


def normalize_speed(speed) -> Optional[SpeedSection]:
    speed = _mapping(speed, "loading_speed")
    if speed is None:
        return None
    summary = _mapping(speed.get("summary"), "loading_speed.summary")
    if summary is None:
        return None

    grade_info = summary.get("performance_grade")
    grade = score = None
    has_grade = False
    if isinstance(grade_info, dict):
        has_grade = True
        grade = _text(grade_info.get("grade"), "performance_grade.grade") or None
        score = _scalar(grade_info.get("score"), "performance_grade.score")
    elif grade_info is not None:
        raise MalformedSectionError(
            f"performance_grade: expected an object, got {type(grade_info).__name__}"
        )

    load_time = _number(summary.get("load_time_ms"), "summary.load_time_ms")
    if not has_grade and load_time is None:
        return None
    return SpeedSection(grade=grade, score=score, has_grade=has_grade, load_time_ms=load_time)


def normalize_ai_visibility(vis) -> Optional[AiVisibilitySection]:
    vis = _mapping(vis, "ai_visibility")
    if vis is None:
        return None

    score = vis.get("score")
    if score is None:
        ai_score = _mapping(vis.get("ai_score"), "ai_score") or {}
        score = ai_score.get("total")

    suggestions = []
    raw_suggestions = _sequence(vis.get("suggestions"), "suggestions")
    if raw_suggestions is not None:
        for i, raw in enumerate(raw_suggestions):
            item = _mapping(raw, f"suggestions[{i}]")
            if item is None:
                continue
            suggestions.append(Suggestion(
                priority=_text(item.get("priority"), f"suggestions[{i}].priority"),
                category=_text(item.get("category"), f"suggestions[{i}].category"),
                message=_text(item.get("message"), f"suggestions[{i}].message"),
            ))
    else:
        for i, raw in enumerate(_sequence(vis.get("recommendations"), "recommendations") or []):
            message = _text(raw, f"recommendations[{i}]")
            if message:
                suggestions.append(Suggestion(message=message))

    if score is None and not suggestions:
        return None
    return AiVisibilitySection(score=_scalar(score, "score"), suggestions=suggestions)


def _bot_rule(value, path: str) -> BotRule:
    if isinstance(value, bool):
        return BotRule(allowed=value)
    info = _mapping(value, path) or {}
    allowed = _flag(_first_present(info.get("allowed"), info.get("allowed_by_robots")), f"{path}.allowed")
    return BotRule(allowed=bool(allowed), rule=_text(info.get("rule"), f"{path}.rule") or None)


def normalize_ai_bots(bots_data) -> Optional[AiBotSection]:
    data = _mapping(bots_data, "ai_bot_checker")
    if data is None:
        return None

    robots_found = _flag(
        _first_present(data.get("robots_found"), data.get("robots_txt_exists")),
        "robots_found",
    )
    ai_bots_allowed = _flag(data.get("ai_bots_allowed"), "ai_bots_allowed")

    bots: Optional[dict[str, BotRule]] = None
    raw_bots = _mapping(data.get("bots"), "bots")
    if raw_bots is not None:
        bots = {str(name): _bot_rule(info, f"bots.{name}") for name, info in raw_bots.items()}
    else:
        allowed = _sequence(data.get("allowed_bots"), "allowed_bots")
        blocked = _sequence(data.get("blocked_bots"), "blocked_bots")
        if allowed is not None or blocked is not None:
            bots = {}
            for listed, is_allowed in ((allowed or [], True), (blocked or [], False)):
                for raw_name in listed:
                    name = _text(raw_name, "bot name")
                    if name:
                        bots[name] = BotRule(allowed=is_allowed)

    if bots is None and robots_found is None:
        return None
    return AiBotSection(
        robots_found=robots_found,
        ai_bots_allowed=ai_bots_allowed,
        bots=bots or {},
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def _section(name: str, normalizer: Callable, raw):
    try:
        return normalizer(raw)
    except MalformedSectionError as e:
        logger.warning(f"Report section '{name}' skipped: {e}")
        return None
    except Exception:
        logger.warning(f"Report section '{name}' skipped: unexpected data", exc_info=True)
        return None


def normalize_bundle(bundle: AnalysisBundle) -> ReportData:
    """Map a raw bundle onto canonical sections, dropping malformed ones."""
    return ReportData(
        scores=_section("scores", normalize_scores, bundle.seo_analysis),
        findings=_section("issues", normalize_findings, bundle.seo_analysis),
        speed=_section("speed", normalize_speed, bundle.loading_speed),
        ai_visibility=_section("ai_visibility", normalize_ai_visibility, bundle.ai_visibility),
        ai_bots=_section("ai_bots", normalize_ai_bots, bundle.ai_bot_checker),
    )
