import argparse
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI

from .api.budget import router as budget_router
from .api.health import router as health_router
from .api.proxy import router as proxy_router
from .api.stats import router as stats_router
from .config import Settings, get_settings
from .middleware.cors import LocalCORSMiddleware
from .middleware.error_handling import ErrorHandlingMiddleware, register_exception_handlers
from .services.budget import BudgetEvaluator, BudgetStore
from .services.proxy import ProxyEngine, build_upstream_client
from .services.usage_store import UsageStore
from .utils.logger import get_logger, setup_logging
from .utils.timezone import Clock

logger = get_logger(__name__)

def create_app(
    settings: Optional[Settings] = None,
    clock: Optional[Clock] = None,
    upstream_client: Optional[httpx.AsyncClient] = None
) -> FastAPI:
    """
    Build the agent application

    Args:
        settings: Defaults to the environment-derived settings
        clock: Defaults to a wall clock in settings.TIMEZONE
        upstream_client: Injected upstream HTTP client; when omitted one is
            created and closed by the application lifespan
    """
    settings = settings or get_settings()
    clock = clock or Clock(settings.TIMEZONE)

    usage_store = UsageStore(settings.usage_path, clock)
    budget_store = BudgetStore(settings.budget_path, clock)
    evaluator = BudgetEvaluator(usage_store, budget_store, clock)

    def make_engine(client: httpx.AsyncClient) -> ProxyEngine:
        return ProxyEngine(client, usage_store, evaluator)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage application lifespan events"""
        owns_client = app.state.proxy_engine is None
        if owns_client:
            client = build_upstream_client(settings.UPSTREAM_TIMEOUT, settings.UPSTREAM_CONNECT_TIMEOUT)
            app.state.proxy_engine = make_engine(client)
        logger.info(f"Starting {settings.APP_NAME}, state in {settings.data_path}")

        yield

        logger.info(f"Shutting down {settings.APP_NAME}...")
        if owns_client:
            await app.state.proxy_engine.client.aclose()
            app.state.proxy_engine = None

    app = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Local proxy that forwards Anthropic and OpenAI API calls, tracks "
            "token usage and cost, and enforces spend budgets. Request and "
            "response content is never logged or stored."
        ),
        version=settings.VERSION,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
    )

    app.state.settings = settings
    app.state.usage_store = usage_store
    app.state.budget_store = budget_store
    app.state.evaluator = evaluator
    app.state.proxy_engine = make_engine(upstream_client) if upstream_client is not None else None

    # Last added runs first: CORS wraps error handling
    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(LocalCORSMiddleware)
    register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(stats_router)
    app.include_router(budget_router)
    app.include_router(proxy_router)

    return app

BANNER = """
🦞 {app_name} running on http://{host}:{port}

PRIVACY: Only token counts are stored.
Request/response content is NEVER logged or saved.

Endpoints:
  GET  /stats              - View accumulated usage stats
  POST /reset              - Reset stats
  GET  /api/budget         - View budget config and status
  POST /api/budget         - Set budget limits
  GET  /api/budget/check   - Pre-flight budget check

Proxy routes (point your SDK here):
  /anthropic/*    -> api.anthropic.com/*
  /openai/*       -> api.openai.com/*

Example:
  export ANTHROPIC_BASE_URL=http://{host}:{port}/anthropic
  export OPENAI_BASE_URL=http://{host}:{port}/openai/v1
"""

def run(argv=None) -> None:
    """Console entry point: agentcost-agent [--host H] [--port P] [--log-level L]"""
    settings = get_settings()

    parser = argparse.ArgumentParser(
        prog="agentcost-agent",
        description="Local proxy that tracks AI API usage and enforces spend budgets"
    )
    parser.add_argument("--host", default=settings.HOST, help=f"Bind address (default: {settings.HOST})")
    parser.add_argument("--port", type=int, default=settings.PORT, help=f"Port (default: {settings.PORT})")
    parser.add_argument("--log-level", default=settings.LOG_LEVEL, help="Log level (default: %(default)s)")
    args = parser.parse_args(argv)

    settings = settings.model_copy(update={"HOST": args.host, "PORT": args.port, "LOG_LEVEL": args.log_level})
    setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)

    print(BANNER.format(app_name=settings.APP_NAME, host=settings.HOST, port=settings.PORT))
    uvicorn.run(
        create_app(settings),
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
        log_config=None,
        # Access lines would include query strings
        access_log=False,
    )

if __name__ == "__main__":
    run()
