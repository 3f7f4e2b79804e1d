"""
SQLite database - stores articles, events, article→event mappings and the API usage ledger.

Tables:
  - articles: Scraped articles (delivered by the scraping collaborator)
  - events: Clustered real-world events, unprocessed until aggregated
  - article_event_mappings: At most one live row per article (unique article_id)
  - api_usage_log: Append-only ledger of every external text-generation call
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    create_engine, Column, String, Integer, Float, Text, DateTime, Boolean, ForeignKey,
)
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool

from .config import get_settings

logger = logging.getLogger(__name__)

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp (SQLite stores datetimes without tzinfo)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ── Models ───────────────────────────────────────────────────────────────────

class ArticleModel(Base):
    """News article. Immutable once summarized, apart from mapping side effects."""
    __tablename__ = "articles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    url = Column(String(1000), nullable=False, unique=True)
    title = Column(String(500), nullable=False)
    content = Column(Text, nullable=False)
    summarized_content = Column(Text)  # NULL until summarized
    source = Column(String(200), nullable=False, index=True)
    author = Column(String(200))
    category = Column(String(100))
    published_at = Column(DateTime, index=True)
    created_at = Column(DateTime, default=utcnow)


class EventModel(Base):
    """One real-world happening backed by one or more articles."""
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(500), nullable=False)
    event_type = Column(String(100), default="")
    aggregated_summary = Column(Text)  # NULL until processed
    discrepancies = Column(Text)       # NULL until processed
    article_count = Column(Integer, default=0, nullable=False)
    event_date = Column(DateTime)
    is_processed = Column(Boolean, default=False, nullable=False, index=True)
    confidence_score = Column(Float, default=0.0)
    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class ArticleEventMappingModel(Base):
    """Article → event assignment with provenance."""
    __tablename__ = "article_event_mappings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    article_id = Column(Integer, ForeignKey("articles.id"), nullable=False, unique=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    confidence_score = Column(Float, default=0.0)
    mapping_method = Column(String(30), nullable=False)  # AI_CLUSTERING | AI_INDIVIDUAL | AI_MERGING | MANUAL
    created_at = Column(DateTime, default=utcnow)


class ApiUsageLogModel(Base):
    """Usage ledger entry. Rows are appended, never updated or deleted."""
    __tablename__ = "api_usage_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    key_name = Column(String(100), nullable=False, index=True)
    operation = Column(String(30), nullable=False, index=True)
    subject_id = Column(Integer)  # article id, event id or batch size, by operation
    token_estimate = Column(Integer, default=0)
    success = Column(Boolean, default=True, nullable=False)
    error_message = Column(Text)
    created_at = Column(DateTime, default=utcnow, index=True)


# ── Database class ───────────────────────────────────────────────────────────

class Database:
    """Database manager - singleton, lazy-initialized."""

    def __init__(self, database_url: Optional[str] = None):
        settings = get_settings()
        url = database_url or settings.database_url
        if "aiosqlite" in url:
            url = url.replace("sqlite+aiosqlite", "sqlite")

        kwargs = {}
        if url.startswith("sqlite"):
            # API handlers run in a threadpool
            kwargs["connect_args"] = {"check_same_thread": False}
            if url in ("sqlite://", "sqlite:///:memory:"):
                kwargs["poolclass"] = StaticPool

        self.engine = create_engine(url, echo=False, **kwargs)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

    def create_tables(self):
        """Create all tables (safe to call multiple times)."""
        Base.metadata.create_all(self.engine)

    def drop_tables(self):
        Base.metadata.drop_all(self.engine)

    @contextmanager
    def get_session(self) -> Session:
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


# ── Singleton ────────────────────────────────────────────────────────────────

_db: Optional[Database] = None


def get_database() -> Database:
    """Get or create database instance."""
    global _db
    if _db is None:
        _db = Database()
        _db.create_tables()
    return _db
