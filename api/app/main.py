from __future__ import annotations

import logging
import os
import time
from typing import Mapping

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse

from app.adapters.split_store import InMemorySplitLedger
from app.routers import agent, allocations, health, reputation
from app.services.agent_framework import ToolNotFoundError, ToolRegistry
from app.services.agent_routing_service import AgentRoutingConfig
from app.services.command_service import CommandService, CommandSettings
from app.services.contribution_quality_service import QualitySettings
from app.services.github_client import GitHubRepoAnalyzer
from app.services.gitsplits_intents import build_default_agent
from app.services.reputation_service import ReputationService, ReputationSettings

app = FastAPI(title="GitSplits Agent API", version="1.0.0")
logger = logging.getLogger("gitsplits.api")
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    logger.addHandler(handler)
logger.propagate = False
logger.setLevel(logging.INFO)


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name, "1" if default else "").strip().lower()
    return raw in {"1", "true", "yes", "on"}


def _slow_request_ms_threshold() -> float:
    raw = os.getenv("API_SLOW_REQUEST_MS", "1500").strip()
    try:
        return max(25.0, float(raw))
    except ValueError:
        return 1500.0


def _client_identity(request: Request) -> str:
    xff = request.headers.get("x-forwarded-for")
    if xff:
        return xff.split(",", 1)[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def _correlation_id(request: Request) -> str:
    for key in ("x-request-id", "x-vercel-id", "x-amzn-trace-id", "cf-ray"):
        value = request.headers.get(key)
        if value:
            return value
    return "none"


def build_tools(env: Mapping[str, str] | None = None) -> ToolRegistry:
    """Collaborators for the agent, configured from the environment."""
    source = os.environ if env is None else env
    ledger = InMemorySplitLedger(persist_path=source.get("SPLIT_STORE_PATH") or None)
    return ToolRegistry(
        github=GitHubRepoAnalyzer(quality_settings=QualitySettings.from_env(source)),
        splits=ledger,
        reputation=ReputationService(ReputationSettings.from_env(source)),
        payments=ledger,
    )


def configure_state(target: FastAPI, tools: ToolRegistry | None = None, env: Mapping[str, str] | None = None) -> None:
    """Attach routing config, tools, agent and command service to ``target.state``."""
    registry = tools if tools is not None else build_tools(env)
    agent_ = build_default_agent(registry)
    target.state.routing_config = AgentRoutingConfig.from_env(env)
    target.state.tools = registry
    target.state.agent = agent_
    target.state.command_service = CommandService(agent_, CommandSettings.from_env(env))


# Configure CORS
allowed_origins_str = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000")
allowed_origins = [origin.strip() for origin in allowed_origins_str.split(",") if origin.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

configure_state(app)


@app.exception_handler(ToolNotFoundError)
async def _tool_not_found(request: Request, exc: ToolNotFoundError) -> JSONResponse:
    logger.error("tool_missing tool=%s path=%s", exc.name, request.url.path)
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.get("/", include_in_schema=False)
async def root():
    """Redirect to API documentation."""
    return RedirectResponse(url="/docs")


app.include_router(agent.router, prefix="/api", tags=["agent"])
app.include_router(allocations.router, prefix="/api", tags=["allocations"])
app.include_router(reputation.router, prefix="/api", tags=["reputation"])
app.include_router(health.router, prefix="/api", tags=["health"])


@app.middleware("http")
async def log_slow_requests(request: Request, call_next):
    start = time.perf_counter()
    status_code: int | None = None
    exc_name: str | None = None
    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    except Exception as exc:
        status_code = 500
        exc_name = exc.__class__.__name__
        raise
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000.0
        status_code = status_code or 500
        if elapsed_ms >= _slow_request_ms_threshold() or _env_flag("API_LOG_ALL_REQUESTS") or status_code >= 500:
            logger.warning(
                "slow_api_request method=%s path=%s status=%s elapsed_ms=%.2f correlation=%s client=%s exception=%s",
                request.method,
                request.url.path,
                status_code,
                elapsed_ms,
                _correlation_id(request),
                _client_identity(request),
                exc_name or "none",
            )
