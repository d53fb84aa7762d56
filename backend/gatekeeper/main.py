import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Annotated

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import Session

from gatekeeper.db.crud.audit import purge_expired_entries
from gatekeeper.db.models import ApplicationInfo, HealthCheck
from gatekeeper.db.session import create_db_and_tables, get_engine
from gatekeeper.middleware import RefreshTokenMiddleware
from gatekeeper.routers import auth, log, token, users
from gatekeeper.utils.config import Settings
from gatekeeper.utils.dependencies import get_settings

logger = logging.getLogger(__name__)

# Invalid configuration stops the process here, before anything is served
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    engine = get_engine()
    create_db_and_tables(engine)
    with Session(engine) as session:
        purged = purge_expired_entries(session, datetime.now(UTC))
    if purged:
        logger.info("Purged %d expired audit entries", purged)
    yield


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    lifespan=lifespan,
)

app.add_middleware(RefreshTokenMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[str(origin) for origin in settings.BACKEND_CORS_ORIGINS],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


app.include_router(auth.router)
app.include_router(token.router)
app.include_router(users.router)
app.include_router(log.router)


@app.get("/")
async def root(settings: Annotated[Settings, Depends(get_settings)]) -> ApplicationInfo:
    return ApplicationInfo(app_name=settings.APP_NAME, version=settings.APP_VERSION)


@app.get("/health")
async def health_check() -> HealthCheck:
    return HealthCheck(status="ok", timestamp=datetime.now(UTC))
