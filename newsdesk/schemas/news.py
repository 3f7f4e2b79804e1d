"""
Article data models exchanged with the scraping collaborator and the read side.

ArticleIn is what the collaborator delivers (already validated and extracted).
ArticleReference is the compact view of an article attached to an event.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class ArticleIn(BaseModel):
    """Validated article delivered by the scraping collaborator."""
    url: str
    title: str
    content: str
    source: str
    published_at: Optional[datetime] = None
    summarized_content: Optional[str] = None
    author: Optional[str] = None
    category: Optional[str] = None

    @field_validator("title", "content", "source", "url")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be blank")
        return v.strip()


class ArticleReference(BaseModel):
    """Article as shown inside an event view."""
    id: int
    title: str
    source: str
    url: str = ""
    published_at: Optional[datetime] = None
    confidence_score: float = Field(ge=0.0, le=1.0, default=0.0)
    mapping_method: str = ""
