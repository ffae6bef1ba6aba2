import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from roomservice.core.config import CORS_ORIGINS, DATABASE_URL
from roomservice.core.database import Base, engine
from roomservice.core.logging_setup import configure_logging
from roomservice.core.startup_checks import (
    ensure_migrations_applied,
    validate_database_environment,
    validate_payment_environment,
)
from roomservice.middleware.observability import ObservabilityMiddleware
import roomservice.models  # garante que os models são importados antes do create_all
from roomservice.routers.admin_orders import router as admin_orders_router
from roomservice.routers.billing import router as billing_router
from roomservice.routers.orders import router as orders_router
from roomservice.routers.payments import router as payments_router
from roomservice.routers.realtime import router as realtime_router
from roomservice.routers.webhook import router as webhook_router
from roomservice.services.realtime import RealtimeNotifier

configure_logging()

logger = logging.getLogger(__name__)
STARTUP_PREFIX = "[STARTUP]"
REPO_ROOT = Path(__file__).resolve().parents[1]
ALEMBIC_CONFIG_PATH = Path(os.getenv("ALEMBIC_CONFIG", str(REPO_ROOT / "alembic.ini")))


def _startup_tasks() -> None:
    try:
        validate_database_environment()
        validate_payment_environment()
        if DATABASE_URL.startswith("sqlite"):
            # Cria tabelas (dev). Em produção, use migrations.
            Base.metadata.create_all(bind=engine)
        else:
            ensure_migrations_applied(engine=engine, alembic_config_path=ALEMBIC_CONFIG_PATH)
    except Exception:
        logger.exception("%s ERROR startup failed", STARTUP_PREFIX)
        raise


@asynccontextmanager
async def lifespan(_: FastAPI):
    _startup_tasks()
    yield


app = FastAPI(
    title="Room Service API",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)
app.state.notifier = RealtimeNotifier()

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(ObservabilityMiddleware)

# Routers
app.include_router(orders_router)
app.include_router(payments_router)
app.include_router(webhook_router)
app.include_router(admin_orders_router)
app.include_router(billing_router)
app.include_router(realtime_router)


@app.get("/")
def root():
    return {"status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}
