"""FastAPI application entry point for the issue bot.

Receives GitHub webhooks, verifies their signature, parses them into typed
events and hands them to the orchestrator as background tasks so GitHub
gets a fast 202 response.

Endpoints:
- GET /health: liveness
- GET /ready: store and GitHub connectivity
- GET /metrics: Prometheus exposition
- POST /webhooks/github: webhook receiver
"""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Optional, Set

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from src.issuebot.analysis.analyzer import Analyzer
from src.issuebot.analysis.completion import CompletionClient
from src.issuebot.analysis.solution import SolutionGenerator
from src.issuebot.autofix.applicator import FixApplicator
from src.issuebot.config import BotSettings, get_settings
from src.issuebot.events.emitter import CompositeEventEmitter, LoggingEventEmitter
from src.issuebot.events.metrics import MetricsEventEmitter, generate_metrics_output
from src.issuebot.github.client import GitHubClient
from src.issuebot.orchestrator import IssueOrchestrator
from src.issuebot.state.postgres import PostgresIssueStore
from src.issuebot.state.store import InMemoryIssueStore, IssueStore
from src.issuebot.webhook.handler import WebhookHandler

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Global instances, initialized during lifespan startup
settings: Optional[BotSettings] = None
store: Optional[IssueStore] = None
orchestrator: Optional[IssueOrchestrator] = None
webhook_handler: Optional[WebhookHandler] = None
github_client: Optional[GitHubClient] = None

# Strong references keep scheduled handlers alive until they finish
_background_tasks: Set[asyncio.Task] = set()


def _redact_secret(value: str, visible_chars: int = 4) -> str:
    """Redact a secret value, showing only the first few characters."""
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


def _log_configuration(cfg: BotSettings) -> None:
    """Log configuration values with secrets redacted."""
    logger.info("Issue bot configuration:")
    logger.info("  GitHub API URL: %s", cfg.github_api_url)
    logger.info("  GitHub Token: %s", _redact_secret(cfg.github_token))
    logger.info("  Webhook Secret: %s", _redact_secret(cfg.webhook_secret))
    logger.info("  Bot Name: %s", cfg.bot_name)
    logger.info("  LLM Base URL: %s", cfg.llm_base_url or "(default)")
    logger.info("  LLM API Key: %s", _redact_secret(cfg.llm_api_key))
    logger.info("  LLM Model: %s", cfg.llm_model)
    logger.info("  Issue Analysis Enabled: %s", cfg.issue_analysis_enabled)
    logger.info("  Auto-fix Enabled: %s", cfg.auto_fix_enabled)
    logger.info("  Max Auto-fix Complexity: %s", cfg.max_auto_fix_complexity)
    logger.info("  Confidence Threshold: %s", cfg.confidence_threshold)
    logger.info(
        "  Rate Limit: %s per %ss", cfg.rate_limit_max, cfg.rate_limit_window_seconds
    )
    logger.info(
        "  Database URL: %s",
        _redact_secret(cfg.database_url) if cfg.database_url else "(in-memory)",
    )
    logger.info("  Host: %s", cfg.host)
    logger.info("  Port: %s", cfg.port)


async def _create_store(cfg: BotSettings) -> IssueStore:
    """Create the issue store. A database that cannot be reached is fatal."""
    if not cfg.database_url:
        logger.warning("No database configured, issue records are kept in memory")
        return InMemoryIssueStore()

    postgres = PostgresIssueStore(cfg.database_url)
    await postgres.connect()
    return postgres


def _build_orchestrator(
    cfg: BotSettings,
    issue_store: IssueStore,
    gh_client: GitHubClient,
) -> IssueOrchestrator:
    """Wire all pipeline dependencies into an IssueOrchestrator."""
    completion = CompletionClient.from_settings(cfg)

    event_emitter = CompositeEventEmitter(
        [LoggingEventEmitter(), MetricsEventEmitter()]
    )

    return IssueOrchestrator(
        settings=cfg,
        store=issue_store,
        github=gh_client,
        analyzer=Analyzer(completion),
        solution_generator=SolutionGenerator(completion),
        applicator=FixApplicator(gh_client),
        event_emitter=event_emitter,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown."""
    global settings, store, orchestrator, webhook_handler, github_client

    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level)

    logger.info("Issue bot starting up...")
    _log_configuration(settings)

    store = await _create_store(settings)
    webhook_handler = WebhookHandler(secret=settings.webhook_secret)
    github_client = GitHubClient(
        token=settings.github_token,
        base_url=settings.github_api_url,
    )
    orchestrator = _build_orchestrator(settings, store, github_client)

    logger.info("Issue bot started successfully")

    yield

    logger.info("Issue bot shutting down...")

    if _background_tasks:
        await asyncio.gather(*_background_tasks, return_exceptions=True)
    if orchestrator is not None:
        await orchestrator.event_emitter.close()
    if github_client is not None:
        await github_client.close()
    if isinstance(store, PostgresIssueStore):
        await store.disconnect()

    logger.info("Issue bot shutdown complete")


app = FastAPI(
    title="Issue Bot",
    description="Analyzes GitHub issues and proposes or applies fixes",
    version="0.1.0",
    lifespan=lifespan,
)


@app.get("/health")
async def health():
    """Liveness probe endpoint."""
    return {"status": "healthy"}


@app.get("/ready")
async def ready():
    """Readiness probe endpoint.

    Checks the issue store and the GitHub API. Returns 503 when either
    is unavailable.
    """
    database_status = "unhealthy"
    github_status = "unhealthy"

    if store is not None and await store.health_check():
        database_status = "healthy"
    if github_client is not None and await github_client.health_check():
        github_status = "healthy"

    is_ready = database_status == "healthy" and github_status == "healthy"
    return JSONResponse(
        status_code=200 if is_ready else 503,
        content={
            "status": "ready" if is_ready else "not_ready",
            "dependencies": {
                "database": database_status,
                "github": github_status,
            },
        },
    )


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_metrics_output(),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )


@app.post("/webhooks/github")
async def github_webhook(request: Request):
    """GitHub webhook receiver endpoint.

    Verifies X-Hub-Signature-256 against the raw body, then schedules the
    event for processing and acknowledges with 202.
    """
    if webhook_handler is None or orchestrator is None:
        logger.error("Issue bot not initialized")
        return JSONResponse(
            status_code=503,
            content={"status": "error", "message": "Service not initialized"},
        )

    body = await request.body()
    signature = request.headers.get("X-Hub-Signature-256")
    if not webhook_handler.verify_signature(body, signature):
        logger.warning(
            "Rejected webhook with invalid signature",
            extra={"delivery": request.headers.get("X-GitHub-Delivery")},
        )
        return JSONResponse(
            status_code=401,
            content={"status": "error", "message": "Invalid signature"},
        )

    try:
        payload = json.loads(body)
    except ValueError:
        return JSONResponse(
            status_code=400,
            content={"status": "error", "message": "Invalid JSON payload"},
        )

    event_name = request.headers.get("X-GitHub-Event", "")
    event = webhook_handler.parse(event_name, payload)
    if event is None:
        return {"status": "ignored", "message": "Unsupported or invalid event"}

    task = asyncio.create_task(orchestrator.handle_event(event))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)

    return JSONResponse(
        status_code=202,
        content={"status": "accepted", "event": event_name},
    )
