import logging
from contextlib import asynccontextmanager

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from app.api.errors import install_exception_handlers
from app.api.routes import chat, companies, discovery, health, meeting_notes, screening, theses
from app.config import settings
from app.core.database import dispose_database, init_database

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")

    if settings.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            integrations=[
                FastApiIntegration(),
                LoggingIntegration(level=logging.INFO),
            ],
            traces_sample_rate=0.1,
            environment=settings.environment,
        )
        logger.info("Sentry initialized")

    if not settings.agent_configured:
        logger.warning("agent.not_configured", extra={"hint": "set OPENAI_API_KEY"})

    await init_database()

    logger.info("Application startup complete")

    yield

    logger.info("Shutting down application")
    await dispose_database()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="M&A deal pipeline tracker: screening, discovery, enrichment and meeting notes",
    lifespan=lifespan,
    debug=settings.debug,
)

if settings.cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.add_middleware(
    TrustedHostMiddleware, allowed_hosts=["*"] if settings.debug else ["localhost", "127.0.0.1"]
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all requests."""
    logger.info(f"{request.method} {request.url.path}")
    response = await call_next(request)
    logger.info(f"Response status: {response.status_code}")
    return response


install_exception_handlers(app)

app.include_router(health.router, prefix="/health", tags=["health"])
app.include_router(screening.router, prefix="/api", tags=["screening"])
app.include_router(discovery.router, prefix="/api", tags=["market-screening"])
app.include_router(companies.router, prefix="/api", tags=["companies"])
app.include_router(theses.router, prefix="/api", tags=["theses"])
app.include_router(meeting_notes.router, prefix="/api", tags=["meeting-notes"])
app.include_router(chat.router, prefix="/api", tags=["chat"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.environment,
    }
