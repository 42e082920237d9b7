"""
database.py — SQLAlchemy models and session management.

Stores each analysis run (the site plus the four raw API payloads) so a
fix-guide PDF can be regenerated later from history.

Uses PostgreSQL in production (via DATABASE_URL env var).
Falls back to SQLite locally so you can develop without Postgres.
"""

import json
import logging
import os
from datetime import datetime

from sqlalchemy import Column, DateTime, String, Text, create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from report_data import AnalysisBundle

logger = logging.getLogger("seozapp")

# ---------------------------------------------------------------------------
# Connection
# ---------------------------------------------------------------------------

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./seozapp.db")

# Some hosts expose postgres:// but SQLAlchemy requires postgresql://
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

engine = create_engine(
    DATABASE_URL,
    # SQLite needs this flag; ignored by Postgres
    connect_args={"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {},
    pool_pre_ping=True,   # drop stale connections before use
)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class Base(DeclarativeBase):
    pass


def _dump(value) -> str | None:
    if value is None:
        return None
    # PostgreSQL rejects \x00 in text columns
    return json.dumps(value, default=str).replace("\\u0000", "")


def _load(value: str | None):
    if not value:
        return None
    try:
        return json.loads(value)
    except ValueError:
        logger.warning("Stored analysis payload is not valid JSON; treating as missing")
        return None


class Analysis(Base):
    __tablename__ = "analyses"

    id                 = Column(String(36), primary_key=True)
    website            = Column(String(2048), nullable=False, index=True)
    guest_email        = Column(String(255), nullable=True, index=True)
    # Raw payloads as JSON text; avoids a JSON column type that behaves
    # differently across SQLite and Postgres.
    seo_data           = Column(Text, nullable=True)
    ai_visibility_data = Column(Text, nullable=True)
    ai_bot_data        = Column(Text, nullable=True)
    loading_speed_data = Column(Text, nullable=True)
    created_at         = Column(DateTime, default=datetime.utcnow, index=True)

    @classmethod
    def from_bundle(cls, analysis_id: str, website: str, bundle: AnalysisBundle,
                    guest_email: str | None = None) -> "Analysis":
        return cls(
            id=analysis_id,
            website=website,
            guest_email=guest_email,
            seo_data=_dump(bundle.seo_analysis),
            ai_visibility_data=_dump(bundle.ai_visibility),
            ai_bot_data=_dump(bundle.ai_bot_checker),
            loading_speed_data=_dump(bundle.loading_speed),
        )

    def to_bundle(self) -> AnalysisBundle:
        return AnalysisBundle(
            seo_analysis=_load(self.seo_data),
            ai_visibility=_load(self.ai_visibility_data),
            ai_bot_checker=_load(self.ai_bot_data),
            loading_speed=_load(self.loading_speed_data),
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def init_db() -> None:
    """Create all tables. Safe to call on every startup."""
    Base.metadata.create_all(bind=engine)


def get_db():
    """Yield a session and ensure it's closed afterwards."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
