"""
Session-scoped repositories for articles, events and article→event mappings.

Each repository wraps one SQLAlchemy session; the caller owns the transaction
(normally through Database.get_session()).
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..database import ArticleEventMappingModel, ArticleModel, EventModel
from ..schemas.events import EventFilter
from ..schemas.news import ArticleIn, ArticleReference

logger = logging.getLogger(__name__)


class ArticleRepository:

    def __init__(self, session: Session):
        self.session = session

    def _summarized(self):
        return self.session.query(ArticleModel).filter(
            ArticleModel.summarized_content.isnot(None),
            ArticleModel.summarized_content != "",
        )

    def find_summarized_unmapped(self) -> List[ArticleModel]:
        """Summarized articles with zero live mappings (mapping candidates)."""
        mapped = select(ArticleEventMappingModel.article_id)
        return (
            self._summarized()
            .filter(~ArticleModel.id.in_(mapped))
            .order_by(ArticleModel.id)
            .all()
        )

    def find_unsummarized(self, limit: Optional[int] = None) -> List[ArticleModel]:
        q = self.session.query(ArticleModel).filter(
            (ArticleModel.summarized_content.is_(None)) | (ArticleModel.summarized_content == "")
        ).order_by(ArticleModel.id)
        if limit:
            q = q.limit(limit)
        return q.all()

    def find_by_id(self, article_id: int) -> Optional[ArticleModel]:
        return self.session.get(ArticleModel, article_id)

    def find_by_ids(self, ids: Iterable[int]) -> Dict[int, ArticleModel]:
        ids = list(ids)
        if not ids:
            return {}
        rows = self.session.query(ArticleModel).filter(ArticleModel.id.in_(ids)).all()
        return {r.id: r for r in rows}

    def find_by_url(self, url: str) -> Optional[ArticleModel]:
        return self.session.query(ArticleModel).filter(ArticleModel.url == url).first()

    def save(self, article: ArticleIn) -> ArticleModel:
        row = ArticleModel(
            url=article.url,
            title=article.title,
            content=article.content,
            summarized_content=article.summarized_content,
            source=article.source,
            author=article.author,
            category=article.category,
            published_at=article.published_at,
        )
        self.session.add(row)
        self.session.flush()
        return row

    def count(self) -> int:
        return self.session.query(func.count(ArticleModel.id)).scalar() or 0

    def count_summarized(self) -> int:
        return self._summarized().count()


class EventRepository:

    def __init__(self, session: Session):
        self.session = session

    def find_unprocessed(self) -> List[EventModel]:
        return (
            self.session.query(EventModel)
            .filter(EventModel.is_processed.is_(False))
            .order_by(EventModel.id)
            .all()
        )

    def find_recent_unprocessed(self, since: datetime) -> List[EventModel]:
        return (
            self.session.query(EventModel)
            .filter(EventModel.is_processed.is_(False), EventModel.created_at >= since)
            .order_by(EventModel.created_at, EventModel.id)
            .all()
        )

    def find_by_id(self, event_id: int) -> Optional[EventModel]:
        return self.session.get(EventModel, event_id)

    def find_by_ids(self, ids: Iterable[int]) -> Dict[int, EventModel]:
        ids = list(ids)
        if not ids:
            return {}
        rows = self.session.query(EventModel).filter(EventModel.id.in_(ids)).all()
        return {r.id: r for r in rows}

    def save(self, event: EventModel) -> EventModel:
        self.session.add(event)
        self.session.flush()
        return event

    def delete(self, event: EventModel):
        self.session.delete(event)
        self.session.flush()

    def list(self, filters: Optional[EventFilter] = None) -> List[EventModel]:
        """Events newest-first, with optional filters."""
        f = filters or EventFilter()
        q = self.session.query(EventModel)
        if f.is_processed is not None:
            q = q.filter(EventModel.is_processed.is_(f.is_processed))
        if f.event_type:
            q = q.filter(func.lower(EventModel.event_type) == f.event_type.lower())
        if f.date_from:
            q = q.filter(EventModel.event_date >= f.date_from)
        if f.date_to:
            q = q.filter(EventModel.event_date <= f.date_to)
        if f.min_article_count is not None:
            q = q.filter(EventModel.article_count >= f.min_article_count)
        if f.min_confidence is not None:
            q = q.filter(EventModel.confidence_score >= f.min_confidence)
        return q.order_by(EventModel.event_date.desc(), EventModel.id.desc()).limit(f.limit).all()

    def recent(self, since: datetime, limit: int = 20) -> List[EventModel]:
        return (
            self.session.query(EventModel)
            .filter(EventModel.created_at >= since)
            .order_by(EventModel.created_at.desc(), EventModel.id.desc())
            .limit(limit)
            .all()
        )

    def count(self, is_processed: Optional[bool] = None, since: Optional[datetime] = None) -> int:
        q = self.session.query(func.count(EventModel.id))
        if is_processed is not None:
            q = q.filter(EventModel.is_processed.is_(is_processed))
        if since is not None:
            q = q.filter(EventModel.created_at >= since)
        return q.scalar() or 0

    def averages(self) -> Dict[str, float]:
        avg_conf, avg_count = self.session.query(
            func.avg(EventModel.confidence_score), func.avg(EventModel.article_count),
        ).one()
        return {
            "confidence": round(float(avg_conf or 0.0), 3),
            "article_count": round(float(avg_count or 0.0), 2),
        }


class MappingRepository:

    def __init__(self, session: Session):
        self.session = session

    def find_by_event(self, event_id: int) -> List[ArticleEventMappingModel]:
        return (
            self.session.query(ArticleEventMappingModel)
            .filter(ArticleEventMappingModel.event_id == event_id)
            .order_by(ArticleEventMappingModel.id)
            .all()
        )

    def find_by_article(self, article_id: int) -> Optional[ArticleEventMappingModel]:
        return (
            self.session.query(ArticleEventMappingModel)
            .filter(ArticleEventMappingModel.article_id == article_id)
            .first()
        )

    def exists_by_article(self, article_id: int) -> bool:
        return self.find_by_article(article_id) is not None

    def save(self, mapping: ArticleEventMappingModel) -> ArticleEventMappingModel:
        self.session.add(mapping)
        self.session.flush()
        return mapping

    def count_by_event(self, event_id: int) -> int:
        return (
            self.session.query(func.count(ArticleEventMappingModel.id))
            .filter(ArticleEventMappingModel.event_id == event_id)
            .scalar()
            or 0
        )

    def count(self) -> int:
        return self.session.query(func.count(ArticleEventMappingModel.id)).scalar() or 0

    def articles_for_event(self, event_id: int) -> List[ArticleModel]:
        """Member articles in mapping order."""
        return (
            self.session.query(ArticleModel)
            .join(ArticleEventMappingModel, ArticleEventMappingModel.article_id == ArticleModel.id)
            .filter(ArticleEventMappingModel.event_id == event_id)
            .order_by(ArticleEventMappingModel.id)
            .all()
        )

    def references_for_event(self, event_id: int) -> List[ArticleReference]:
        rows = (
            self.session.query(ArticleModel, ArticleEventMappingModel)
            .join(ArticleEventMappingModel, ArticleEventMappingModel.article_id == ArticleModel.id)
            .filter(ArticleEventMappingModel.event_id == event_id)
            .order_by(ArticleModel.published_at, ArticleModel.id)
            .all()
        )
        return [
            ArticleReference(
                id=a.id,
                title=a.title,
                source=a.source,
                url=a.url or "",
                published_at=a.published_at,
                confidence_score=m.confidence_score or 0.0,
                mapping_method=m.mapping_method or "",
            )
            for a, m in rows
        ]
