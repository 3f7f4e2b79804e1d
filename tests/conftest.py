"""Shared fixtures: in-memory database, scripted text generator, zero-delay settings."""

import json
from datetime import datetime, timedelta
from typing import List, Optional

import pytest

from newsdesk.config import Settings
from newsdesk.database import (
    ApiUsageLogModel,
    ArticleEventMappingModel,
    ArticleModel,
    Database,
    EventModel,
    utcnow,
)
from newsdesk.events.pipeline import build_pipeline
from newsdesk.schemas.base import MappingMethod, Operation
from newsdesk.tools.llm_service import LLMService


class ScriptedGenerator:
    """Stands in for the model: returns queued answers in order, or raises queued exceptions."""

    def __init__(self):
        self.responses: List = []
        self.prompts: List[str] = []
        self.keys: List[Optional[str]] = []

    def queue(self, *responses):
        self.responses.extend(responses)
        return self

    async def generate(self, prompt: str, key_name: Optional[str]) -> str:
        self.prompts.append(prompt)
        self.keys.append(key_name)
        if not self.responses:
            raise RuntimeError("no scripted response left")
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        if not isinstance(response, str):
            response = json.dumps(response)
        return response

    @property
    def calls(self) -> int:
        return len(self.prompts)


@pytest.fixture(autouse=True)
def _clear_agent_cache():
    yield
    LLMService.clear_cache()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        DATABASE_URL="sqlite://",
        LLM_API_KEYS="K1=secret-1,K2=secret-2,K3=secret-3,K4=secret-4,K5=secret-5",
        SUMMARIZATION_DELAY_SECONDS=0,
        AGGREGATION_DELAY_SECONDS=0,
        API_KEY="",
    )


@pytest.fixture
def db(settings) -> Database:
    database = Database(settings.database_url)
    database.create_tables()
    yield database
    database.drop_tables()
    database.engine.dispose()


@pytest.fixture
def generator() -> ScriptedGenerator:
    return ScriptedGenerator()


@pytest.fixture
def pipeline(db, settings, generator):
    return build_pipeline(db=db, settings=settings, generator=generator)


# ── Row helpers ──────────────────────────────────────────────────────────────

def add_article(
    db: Database,
    title: str = "Article",
    summary: Optional[str] = "A summary that is long enough.",
    source: str = "Daily Star",
    published_at: Optional[datetime] = None,
    content: str = "Full article text.",
    url: Optional[str] = None,
) -> int:
    with db.get_session() as session:
        row = ArticleModel(
            url=url or f"https://news.example/{title.replace(' ', '-').lower()}-{utcnow().timestamp()}",
            title=title,
            content=content,
            summarized_content=summary,
            source=source,
            published_at=published_at,
        )
        session.add(row)
        session.flush()
        return row.id


def add_event(
    db: Database,
    article_ids: List[int],
    title: str = "Event",
    confidence: float = 0.8,
    is_processed: bool = False,
    created_at: Optional[datetime] = None,
    article_count: Optional[int] = None,
    event_type: str = "politics",
) -> int:
    with db.get_session() as session:
        event = EventModel(
            title=title,
            event_type=event_type,
            confidence_score=confidence,
            is_processed=is_processed,
            article_count=len(article_ids) if article_count is None else article_count,
            event_date=utcnow(),
            created_at=created_at or utcnow(),
        )
        session.add(event)
        session.flush()
        for article_id in article_ids:
            session.add(ArticleEventMappingModel(
                article_id=article_id,
                event_id=event.id,
                confidence_score=confidence,
                mapping_method=MappingMethod.AI_CLUSTERING.value,
            ))
        return event.id


def record_usage(
    db: Database,
    key_name: str,
    operation: Operation,
    count: int = 1,
    tokens: int = 1,
    age: timedelta = timedelta(0),
    success: bool = True,
):
    with db.get_session() as session:
        when = utcnow() - age
        session.add_all([
            ApiUsageLogModel(
                key_name=key_name,
                operation=operation.value,
                token_estimate=tokens,
                success=success,
                created_at=when,
            )
            for _ in range(count)
        ])


def get_event(db: Database, event_id: int) -> Optional[EventModel]:
    with db.get_session() as session:
        return session.get(EventModel, event_id)


def all_events(db: Database) -> List[EventModel]:
    with db.get_session() as session:
        return session.query(EventModel).order_by(EventModel.id).all()


def all_mappings(db: Database) -> List[ArticleEventMappingModel]:
    with db.get_session() as session:
        return session.query(ArticleEventMappingModel).order_by(ArticleEventMappingModel.id).all()


def ledger_rows(db: Database) -> List[ApiUsageLogModel]:
    with db.get_session() as session:
        return session.query(ApiUsageLogModel).order_by(ApiUsageLogModel.id).all()
