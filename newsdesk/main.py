"""
newsdesk event pipeline - Main Entry Point.
FastAPI server and CLI interface.
"""

import argparse
import asyncio
import json
import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import TypeAdapter, ValidationError

from .config import Settings, get_settings
from .events.errors import StageError
from .events.pipeline import NewsPipeline, build_monitor, build_pipeline
from .schemas.news import ArticleIn

# Configure logging
logging.basicConfig(
    level=getattr(logging, get_settings().log_level.upper(), logging.INFO),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logger = logging.getLogger(__name__)

# Suppress noisy loggers
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


def _attach(app: FastAPI, pipeline: NewsPipeline, settings: Settings):
    app.state.settings = settings
    app.state.db = pipeline.db
    app.state.pipeline = pipeline
    app.state.monitor = build_monitor(pipeline)


async def _stage_error_handler(request: Request, exc: StageError):
    logger.error(f"{request.url.path}: {exc}")
    return JSONResponse(status_code=502, content={"stage": exc.stage, "detail": exc.message})


def create_app(pipeline: Optional[NewsPipeline] = None, settings: Optional[Settings] = None) -> FastAPI:
    """Build the API. Pass a pipeline to skip wiring from the environment (tests)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if not hasattr(app.state, "pipeline"):
            s = settings or get_settings()
            _attach(app, build_pipeline(settings=s), s)
        logger.info(f"newsdesk API ready ({len(app.state.pipeline.pool.key_names)} keys configured)")
        yield

    app = FastAPI(
        title="newsdesk event pipeline",
        description="Article summarization, event clustering, cross-source aggregation and merging",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(StageError, _stage_error_handler)

    if pipeline is not None:
        _attach(app, pipeline, settings or pipeline.settings)

    from .api import events, health, monitoring
    app.include_router(health.router)
    app.include_router(events.router, prefix="/api/events", tags=["events"])
    app.include_router(monitoring.router, prefix="/api/monitoring", tags=["monitoring"])
    return app


app = create_app()


# CLI Runner

def _print_result(result) -> None:
    print(f"[{result.status.value}] {result.message}")
    for name, value in result.counters.items():
        print(f"   {name}: {value}")


def _positive_int(value: str) -> int:
    n = int(value)
    if n < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {n}")
    return n


def _load_articles(path: str) -> List[ArticleIn]:
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(raw, dict):
        raw = raw.get("articles", [raw])
    return TypeAdapter(List[ArticleIn]).validate_python(raw)


async def cli_main(argv: Optional[List[str]] = None) -> int:
    """Command-line interface for running pipeline stages."""
    parser = argparse.ArgumentParser(
        prog="newsdesk",
        description="newsdesk event pipeline"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    ingest = sub.add_parser("ingest", help="Load scraped articles from a JSON file")
    ingest.add_argument("file", help="JSON array of articles (or {\"articles\": [...]})")
    sub.add_parser("summarize", help="Summarize articles without a summary")
    sub.add_parser("map", help="Cluster unmapped summarized articles into events")
    sub.add_parser("aggregate", help="Aggregate unprocessed events")
    merge = sub.add_parser("merge", help="Merge duplicate recent events")
    merge.add_argument("--hours", type=_positive_int, default=None, help="Look-back window (default: MERGE_WINDOW_HOURS)")
    sub.add_parser("process-all", help="Summarize, map and aggregate")
    sub.add_parser("stats", help="Print pipeline statistics")
    sub.add_parser("health", help="Print key-pool health")
    serve = sub.add_parser("serve", help="Start the FastAPI server")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000, help="Server port (default: 8000)")

    args = parser.parse_args(argv)

    if args.command == "serve":
        import uvicorn
        logger.info(f"Starting server on port {args.port}...")
        await uvicorn.Server(uvicorn.Config(app, host=args.host, port=args.port)).serve()
        return 0

    pipeline = build_pipeline()

    if args.command == "ingest":
        try:
            articles = _load_articles(args.file)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.error(f"Could not read {args.file}: {e}")
            return 1
        counts = pipeline.ingest(articles)
        print(f"Saved {counts['saved']} articles, skipped {counts['duplicates']} duplicates")
        return 0

    if args.command == "stats":
        print(json.dumps(
            {
                "pipeline": pipeline.get_pipeline_stats().model_dump(by_alias=True),
                "aggregation": pipeline.aggregation_stats(),
                "merge": pipeline.merge_stats(),
                "summarization": pipeline.summarization_stats(),
            },
            indent=2,
        ))
        return 0

    if args.command == "health":
        print(json.dumps(pipeline.pool.health().model_dump(mode="json"), indent=2))
        for rec in build_monitor(pipeline).recommendations():
            print(f" - {rec}")
        return 0

    try:
        if args.command == "summarize":
            _print_result(await pipeline.run_summarization())
        elif args.command == "map":
            _print_result(await pipeline.run_event_mapping())
        elif args.command == "aggregate":
            _print_result(await pipeline.run_aggregation())
        elif args.command == "merge":
            _print_result(await pipeline.run_merge(args.hours))
        elif args.command == "process-all":
            for result in (await pipeline.process_all()).values():
                _print_result(result)
    except StageError as e:
        logger.error(str(e))
        return 2
    return 0


def main():
    """Entry point for CLI."""
    sys.exit(asyncio.run(cli_main()))


if __name__ == "__main__":
    main()
