"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

import structlog
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from autoflow import __version__
from autoflow.api import audit_log, credentials, executions, file_uploads, node_types, webhooks, workflows
from autoflow.api.dependencies import verify_api_key
from autoflow.config import get_settings
from autoflow.services import get_services

settings = get_settings()

logging.basicConfig(format="%(message)s", level=settings.log_level.upper())

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.dev.ConsoleRenderer() if settings.log_format == "console" else structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Re-register webhooks of active workflows and run the wait tracker."""
    services = get_services()
    active = await services.workflows.init()
    services.wait_tracker.start()
    logger.info(
        "application_startup",
        app_name=settings.app_name,
        environment=settings.environment,
        active_workflows=active,
    )
    yield
    await services.wait_tracker.stop()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.app_name,
    description="Workflow automation engine compatible with n8n workflows",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.in_development else settings.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS", "PUT", "PATCH", "DELETE"],
    allow_headers=["Origin", "X-Requested-With", "Content-Type", "Accept", "push-ref", "browser-id", "X-N8N-API-KEY"],
)

# REST API
rest = [Depends(verify_api_key)]
app.include_router(workflows.router, prefix="/rest", tags=["workflows"], dependencies=rest)
app.include_router(executions.router, prefix="/rest", tags=["executions"], dependencies=rest)
app.include_router(credentials.router, prefix="/rest", tags=["credentials"], dependencies=rest)
app.include_router(node_types.router, prefix="/rest", tags=["node-types"], dependencies=rest)
app.include_router(audit_log.router, prefix="/rest", tags=["audit-log"], dependencies=rest)
app.include_router(file_uploads.router, prefix="/rest", tags=["file-uploads"], dependencies=rest)

# Webhooks are public
app.include_router(webhooks.router, prefix=f"/{settings.endpoint_webhook}", tags=["webhooks"])


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": __version__}


def run() -> None:
    import uvicorn

    uvicorn.run("autoflow.main:app", host=settings.host, port=settings.port)
