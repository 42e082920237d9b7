# =============================================================================
# SEOzapp — FastAPI Backend
# =============================================================================
# Runs website analyses against the third-party analysis API, keeps a history
# of runs, and turns any run into a downloadable SEO fix-guide PDF.
#
# Checks (all delegated to the analysis API):
#   1. SEO analysis        — scores, grade, findings
#   2. Loading speed       — performance grade, load time
#   3. AI visibility (Pro) — AI search readiness score, suggestions
#   4. AI bot access (Pro) — robots.txt rules per AI crawler
#
# Run:  python main.py
# Test: curl http://localhost:8000/health
# =============================================================================

import asyncio
import logging
import os
import time
import uuid
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

load_dotenv()                       # must run before the imports below read os.environ

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(message)s",
)
logger = logging.getLogger("seozapp")

from database import Analysis, SessionLocal, get_db, init_db
from pdf_export import build_pdf, report_filename
from report_data import AnalysisBundle
from vebapi import VEBAPI_KEY, clean_website, collect_bundle

if not VEBAPI_KEY:
    logger.warning("VEBAPI_KEY is not set — analysis calls will be rejected")

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info("Database tables ready")
    yield


app = FastAPI(
    title="SEOzapp API",
    version="1.0.0",
    description="SEO, speed and AI-visibility analysis with PDF fix guides",
    lifespan=lifespan,
)

# CORS — open for development, lock down for production
ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS",
    "http://localhost:3000,http://localhost:5173",
).split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Simple in-memory rate limiter (swap for Redis in production)
# ---------------------------------------------------------------------------

_rate_buckets: dict[str, list[float]] = defaultdict(list)
RATE_LIMIT = int(os.getenv("RATE_LIMIT_PER_MIN", "10"))


@app.middleware("http")
async def rate_limit_middleware(request: Request, call_next):
    if request.url.path.startswith(("/health", "/info", "/docs", "/openapi")):
        return await call_next(request)

    ip = request.client.host if request.client else "unknown"
    now = time.time()
    _rate_buckets[ip] = [t for t in _rate_buckets[ip] if now - t < 60]

    if len(_rate_buckets[ip]) >= RATE_LIMIT:
        return JSONResponse(
            status_code=429,
            content={"detail": "Rate limit exceeded — try again in a minute"},
        )

    _rate_buckets[ip].append(now)
    return await call_next(request)


# =============================================================================
# Request / response models
# =============================================================================

def _validate_website(v: str) -> str:
    v = v.strip()
    if not clean_website(v):
        raise ValueError("Website is required")
    if len(v) > 2048:
        raise ValueError("Website must be under 2048 characters")
    return v


class AnalyzeRequest(BaseModel):
    website: str
    include_ai: bool = True          # Pro tier: AI visibility, AI bots, top keywords
    guest_email: Optional[str] = None

    @field_validator("website")
    @classmethod
    def website_valid(cls, v: str) -> str:
        return _validate_website(v)

    @field_validator("guest_email")
    @classmethod
    def email_normalised(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip().lower()
        return v or None


class ReportRequest(AnalysisBundle):
    """Already-fetched results, rendered straight into a PDF."""

    website: str

    @field_validator("website")
    @classmethod
    def website_valid(cls, v: str) -> str:
        return _validate_website(v)


# =============================================================================
# Helpers
# =============================================================================

def _save_analysis(analysis_id: str, website: str, bundle: AnalysisBundle,
                   guest_email: Optional[str]) -> None:
    """Synchronous DB write — called via run_in_executor."""
    db = SessionLocal()
    try:
        db.add(Analysis.from_bundle(analysis_id, website, bundle, guest_email))
        db.commit()
        logger.info(f"[{analysis_id}] Saved analysis for {website}")
    except Exception as e:
        db.rollback()
        logger.error(f"[{analysis_id}] DB save failed: {type(e).__name__}: {e}", exc_info=True)
    finally:
        db.close()


def _analysis_payload(row: Analysis) -> dict:
    bundle = row.to_bundle()
    return {
        "id": row.id,
        "website": row.website,
        "guest_email": row.guest_email,
        "created_at": row.created_at.isoformat() if row.created_at else None,
        **bundle.model_dump(),
    }


def _pdf_response(website: str, bundle: AnalysisBundle, label: str) -> Response:
    try:
        pdf_bytes = build_pdf(website, bundle, generated_at=datetime.now(timezone.utc))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        logger.error(f"PDF generation failed for {label}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="PDF generation failed")

    filename = report_filename(website)
    logger.info(f"PDF ready for {label}: {filename} ({len(pdf_bytes)} bytes)")
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


# =============================================================================
# Analyses
# =============================================================================

@app.post("/analyses")
async def run_analysis(request: AnalyzeRequest):
    """Run every check for one website, store the run, return the results."""
    start = time.time()
    run = await collect_bundle(request.website, include_ai=request.include_ai)
    bundle = run.bundle

    if bundle.seo_analysis is None and bundle.loading_speed is None:
        logger.warning(f"Analysis failed for {request.website}: {run.errors}")
        raise HTTPException(
            status_code=502,
            detail="Failed to analyze website. Please check the URL and try again.",
        )

    analysis_id = str(uuid.uuid4())
    loop = asyncio.get_running_loop()
    await loop.run_in_executor(
        None, _save_analysis, analysis_id, request.website, bundle, request.guest_email,
    )
    logger.info(f"[{analysis_id}] {request.website} analysed in {time.time() - start:.1f}s")

    return {
        "id": analysis_id,
        "website": request.website,
        **bundle.model_dump(),
        "top_keywords": run.top_keywords,
        "errors": run.errors,
    }


@app.get("/analyses")
def list_analyses(limit: int = 20, offset: int = 0, email: Optional[str] = None,
                  db: Session = Depends(get_db)):
    """Analysis history, newest first (metadata only, no payloads)."""
    query = db.query(Analysis)
    if email:
        query = query.filter(Analysis.guest_email == email.strip().lower())
    rows = (
        query.order_by(Analysis.created_at.desc())
        .offset(max(offset, 0))
        .limit(max(min(limit, 100), 1))
        .all()
    )
    return [
        {
            "id": r.id,
            "website": r.website,
            "created_at": r.created_at.isoformat() if r.created_at else None,
            "has_seo": r.seo_data is not None,
            "has_speed": r.loading_speed_data is not None,
            "has_ai_visibility": r.ai_visibility_data is not None,
            "has_ai_bots": r.ai_bot_data is not None,
        }
        for r in rows
    ]


@app.get("/analyses/{analysis_id}")
def get_analysis(analysis_id: str, db: Session = Depends(get_db)):
    row = db.query(Analysis).filter(Analysis.id == analysis_id).first()
    if not row:
        raise HTTPException(status_code=404, detail="Analysis not found")
    return _analysis_payload(row)


@app.post("/analyses/{analysis_id}/export")
def export_analysis_pdf(analysis_id: str, db: Session = Depends(get_db)):
    """Generate and return the fix-guide PDF for a stored analysis."""
    row = db.query(Analysis).filter(Analysis.id == analysis_id).first()
    if not row:
        raise HTTPException(status_code=404, detail="Analysis not found")
    return _pdf_response(row.website, row.to_bundle(), analysis_id)


# =============================================================================
# Direct report rendering
# =============================================================================

@app.post("/reports/fix-guide")
def fix_guide_pdf(request: ReportRequest):
    """Render a fix guide from results the client already holds."""
    bundle = AnalysisBundle(
        seo_analysis=request.seo_analysis,
        ai_visibility=request.ai_visibility,
        ai_bot_checker=request.ai_bot_checker,
        loading_speed=request.loading_speed,
    )
    return _pdf_response(request.website, bundle, request.website)


# =============================================================================
# Health & info
# =============================================================================

@app.get("/health")
async def health():
    return {
        "status": "ok",
        "timestamp": datetime.now().isoformat(),
        "vebapi_key_set": bool(VEBAPI_KEY),
    }


@app.get("/info")
async def info():
    return {
        "name": "SEOzapp API",
        "version": "1.0.0",
        "checks": ["seo_analysis", "loading_speed", "ai_visibility", "ai_bot_checker"],
        "endpoints": {
            "analyze": "POST /analyses",
            "history": "GET /analyses",
            "analysis": "GET /analyses/{id}",
            "export_pdf": "POST /analyses/{id}/export",
            "fix_guide": "POST /reports/fix-guide",
            "health": "GET /health",
        },
    }


# =============================================================================
# Run
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", "8000"))
    uvicorn.run(app, host="0.0.0.0", port=port)
