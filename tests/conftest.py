import io
import os
import tempfile

# Must be set before database / vebapi / main are imported.
_tmp_dir = tempfile.mkdtemp(prefix="seozapp-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_tmp_dir}/test.db")
os.environ.setdefault("RATE_LIMIT_PER_MIN", "10000")
os.environ.setdefault("VEBAPI_KEY", "test-key")

import pytest
from pypdf import PdfReader


@pytest.fixture
def read_pages():
    """Extract the text of every page of a rendered PDF."""
    def _read(data: bytes) -> list[str]:
        return [page.extract_text() or "" for page in PdfReader(io.BytesIO(data)).pages]
    return _read


@pytest.fixture
def seo_result():
    return {
        "summary": {"overall_score": 82, "grade": "B"},
        "scores": {"buckets": {"meta_tags": 70, "content_quality": 88, "technical": 91}},
        "findings": [
            {"severity": "warning", "category": "images", "issue": "3 images missing alt text",
             "fix": "Describe each image in its alt attribute"},
            {"severity": "critical", "category": "meta_tags", "issue": "Missing meta description",
             "fix": "Add a 150-160 character description"},
        ],
    }


@pytest.fixture
def speed_result():
    return {"summary": {"performance_grade": {"score": 87, "grade": "B"}, "load_time_ms": 1234}}


@pytest.fixture
def ai_visibility_result():
    return {
        "score": 64,
        "suggestions": [
            {"priority": "high", "category": "schema", "message": "Add Organization JSON-LD"},
            {"priority": "low", "category": "content", "message": "Add an FAQ section"},
        ],
    }


@pytest.fixture
def ai_bot_result():
    return {
        "robots_found": True,
        "ai_bots_allowed": None,
        "bots": {
            "GPTBot": {"allowed": False, "rule": "Disallow: /"},
            "Google-Extended": {"allowed": True},
        },
    }


@pytest.fixture
def full_bundle(seo_result, speed_result, ai_visibility_result, ai_bot_result):
    return {
        "seo_analysis": seo_result,
        "loading_speed": speed_result,
        "ai_visibility": ai_visibility_result,
        "ai_bot_checker": ai_bot_result,
    }
