import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from apps.api.middlewares.metrics import MetricsMiddleware
from apps.api.routers import analytics, auth, health, reports
from apps.workers.notifier import build_notifier
from core import close_redis
from core.config import settings
from core.errors import Forbidden, ReportDeskError
from services.attachments import AttachmentStore
from services.lifecycle import ReportLifecycle

logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    # Startup
    notifier = build_notifier(settings)
    app.state.lifecycle = ReportLifecycle(
        notifier,
        AttachmentStore(settings.upload_dir),
        max_file_size=settings.max_file_size,
        max_files_per_report=settings.max_files_per_report,
    )
    logger.info(f"Report desk API started ({settings.environment})")
    yield
    # Shutdown
    await notifier.close()
    await close_redis()


app = FastAPI(
    title="Report Desk API",
    description="Player reports, bug reports and feedback triage for game server staff",
    version="0.1.0",
    lifespan=lifespan,
)

# Middlewares
app.add_middleware(MetricsMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.is_development else [settings.public_base_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ReportDeskError)
async def report_desk_error_handler(request: Request, exc: ReportDeskError) -> JSONResponse:
    """Map service errors to JSON responses; denials carry their reason code."""
    content = {"detail": exc.message}
    if isinstance(exc, Forbidden):
        content["reason"] = exc.reason.value
    return JSONResponse(status_code=exc.status_code, content=content)


# Include routers
app.include_router(health.router, prefix="/health", tags=["health"])
app.include_router(auth.router)  # Already has /auth prefix
app.include_router(reports.router)  # Already has /reports prefix
app.include_router(analytics.router)  # Already has /analytics prefix


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {"status": "ok", "service": "report-desk"}


@app.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
