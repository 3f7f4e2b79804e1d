"""FastAPI dependency injection -- Depends() patterns using app.state from lifespan."""

from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, Request

from newsdesk.config import Settings
from newsdesk.database import Database
from newsdesk.events.pipeline import NewsPipeline
from newsdesk.tools.usage_monitor import UsageMonitor


def get_db(request: Request) -> Database:
    return request.app.state.db


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_pipeline(request: Request) -> NewsPipeline:
    return request.app.state.pipeline


def get_monitor(request: Request) -> UsageMonitor:
    return request.app.state.monitor


async def verify_api_key(
    request: Request,
    x_api_key: Annotated[Optional[str], Header()] = None,
):
    """API key gate. Empty API_KEY env var = dev mode (all requests pass)."""
    required_key = request.app.state.settings.api_key
    if required_key and x_api_key != required_key:
        raise HTTPException(status_code=401, detail="Invalid API key")


# Type aliases for cleaner route signatures
DB = Annotated[Database, Depends(get_db)]
AppSettings = Annotated[Settings, Depends(get_app_settings)]
Pipeline = Annotated[NewsPipeline, Depends(get_pipeline)]
Monitor = Annotated[UsageMonitor, Depends(get_monitor)]
