import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from template_interview.api.deps import MonitoringDep, get_job_queue
from template_interview.core.config import get_settings
from template_interview.core.logging_config import configure_logging
from template_interview.models.job import SESSION_CLEANUP, BackgroundJob

settings = get_settings()
configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    queue = get_job_queue()
    scheduler = None
    if settings.session_cleanup_interval_seconds > 0:
        scheduler = queue.schedule_every(
            settings.session_cleanup_interval_seconds,
            lambda: BackgroundJob(type=SESSION_CLEANUP),
        )
    yield
    if scheduler is not None:
        scheduler.cancel()
        await asyncio.gather(scheduler, return_exceptions=True)
    # Shutdown: let in-flight jobs finish
    await queue.drain()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# ── CORS ─────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ───────────────────────────────────────────────────────────────────
from template_interview.api.routes import flags, sessions

app.include_router(sessions.router, prefix="/sessions", tags=["Sessions"])
app.include_router(flags.router, prefix="/flags", tags=["Feature flags"])


# ── Health check ──────────────────────────────────────────────────────────────
@app.get("/health", tags=["Health"])
async def health() -> dict:
    return {"status": "ok", "version": settings.app_version}


@app.get("/health/usage", tags=["Health"])
async def usage(monitoring: MonitoringDep) -> dict:
    return monitoring.get_usage_stats()
