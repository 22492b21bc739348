import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.auth.router import router as auth_router
from app.auth.service import bootstrap_admin
from app.auth.sweeper import SessionSweeper
from app.cases.router import router as cases_router
from app.common.errors import register_error_handlers
from app.config import settings
from app.database import async_session, create_tables
from app.documents.router import router as documents_router
from app.middleware import CorrelationIDMiddleware, RateLimitMiddleware
from app.users.router import router as users_router

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.auto_create_tables:
        await create_tables()
    await bootstrap_admin()

    sweeper = SessionSweeper(async_session, settings.session_sweep_interval_seconds)
    sweeper.start()
    app.state.session_sweeper = sweeper
    logger.info("%s %s started (%s)", settings.app_name, settings.app_version, settings.environment)
    yield
    await sweeper.stop()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    docs_url="/api/docs",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

register_error_handlers(app)

# Middleware
if settings.rate_limit_enabled:
    app.add_middleware(RateLimitMiddleware)
app.add_middleware(CorrelationIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.backend_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(auth_router, prefix="/api/auth", tags=["Auth"])
app.include_router(cases_router, prefix="/api/cases", tags=["Cases"])
app.include_router(documents_router, prefix="/api/documents", tags=["Documents"])
app.include_router(users_router, prefix="/api/users", tags=["Users"])


@app.get("/api/health")
async def health_check():
    return {"status": "healthy", "version": settings.app_version}
