# backend/mixlab/main.py
from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
from typing import AsyncGenerator

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware

from .core.broadcast import connect_broadcast, disconnect_broadcast, is_broadcast_initialized
from .core.config import settings
from .core.constants import ALLOWED_ORIGINS, API_DESCRIPTION, API_TITLE, API_VERSION, BRAND_NAME
from .database import Base, engine
from .errors import register_error_handlers
from .monitoring.prometheus_metrics import prometheus_metrics
from .routes import admin, bookings, webhooks
from .schemas.main_responses import HealthResponse

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown."""
    logger.info(f"{BRAND_NAME} API starting up...")
    logger.info(f"Environment: {settings.environment}")

    if settings.is_sqlite:
        # Local SQLite databases are created in place; PostgreSQL schemas come
        # from `alembic upgrade head`
        from . import models  # noqa: F401

        Base.metadata.create_all(bind=engine)

    try:
        await connect_broadcast()
    except Exception as e:
        # Bookings keep working without real-time delivery
        logger.error(f"Failed to connect broadcaster: {str(e)}")

    yield

    logger.info(f"{BRAND_NAME} API shutting down...")
    await disconnect_broadcast()


app = FastAPI(
    title=API_TITLE,
    description=API_DESCRIPTION,
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=app_lifespan,
)
register_error_handlers(app)

_allowed_origins = list(dict.fromkeys([*ALLOWED_ORIGINS, settings.frontend_url]))
app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "HEAD", "OPTIONS", "POST", "PATCH"],
    allow_headers=["*"],
)
logger.info("CORS allow_origins=%s", _allowed_origins)

app.include_router(bookings.router, prefix="/api/bookings")
app.include_router(webhooks.router, prefix="/api/webhooks")
app.include_router(admin.router, prefix="/api/admin")


@app.get("/health", response_model=HealthResponse)
def health_check() -> HealthResponse:
    return HealthResponse(
        status="healthy",
        service=API_TITLE,
        version=API_VERSION,
        environment=settings.environment,
        timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        realtime=is_broadcast_initialized(),
    )


@app.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    """Prometheus scrape endpoint."""
    return Response(
        content=prometheus_metrics.get_metrics(), media_type=prometheus_metrics.get_content_type()
    )
