from __future__ import annotations

import logging
from pathlib import Path

from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import inspect
from sqlalchemy.engine import Engine

from roomservice.core.config import (
    DATABASE_URL,
    IS_PROD,
    IS_TEST,
    PAYMENT_PROVIDER,
    SESSION_SECRET,
    XENDIT_SECRET_KEY,
    XENDIT_WEBHOOK_TOKEN,
)

logger = logging.getLogger(__name__)
MIGRATIONS_PREFIX = "[MIGRATIONS]"
PAYMENTS_PREFIX = "[PAYMENTS]"


def validate_database_environment() -> None:
    if IS_PROD and DATABASE_URL.startswith("sqlite"):
        logger.critical("%s SQLite is forbidden in production", MIGRATIONS_PREFIX)
        raise RuntimeError("SQLite is forbidden in production environment")


def validate_payment_environment() -> None:
    missing = []
    if PAYMENT_PROVIDER == "xendit" and not XENDIT_SECRET_KEY:
        missing.append("XENDIT_SECRET_KEY")
    if IS_PROD and not XENDIT_WEBHOOK_TOKEN:
        missing.append("XENDIT_WEBHOOK_TOKEN")
    if IS_PROD and not SESSION_SECRET:
        missing.append("SESSION_SECRET")

    if missing:
        logger.critical("%s missing settings: %s", PAYMENTS_PREFIX, ", ".join(missing))
        raise RuntimeError(f"Configuração obrigatória ausente: {', '.join(missing)}")

    if not XENDIT_WEBHOOK_TOKEN:
        # Sem token configurado todo callback é recusado.
        logger.warning("%s XENDIT_WEBHOOK_TOKEN is empty; webhooks will be rejected", PAYMENTS_PREFIX)
    logger.info("%s provider=%s", PAYMENTS_PREFIX, PAYMENT_PROVIDER)


def _expected_heads(alembic_config_path: Path) -> set[str]:
    if not alembic_config_path.exists():
        logger.critical("%s alembic config not found path=%s", MIGRATIONS_PREFIX, alembic_config_path)
        raise RuntimeError("alembic config not found")
    return set(ScriptDirectory.from_config(Config(str(alembic_config_path))).get_heads())


def _applied_heads(engine: Engine) -> set[str]:
    with engine.connect() as connection:
        if "alembic_version" not in inspect(connection).get_table_names():
            logger.critical("%s alembic_version table missing", MIGRATIONS_PREFIX)
            raise RuntimeError("Database has no migration state")
        rows = connection.exec_driver_sql("SELECT version_num FROM alembic_version").fetchall()
    return {row[0] for row in rows if row and row[0]}


def ensure_migrations_applied(*, engine: Engine, alembic_config_path: Path) -> None:
    """Recusa subir com o banco fora do head das migrations."""
    if IS_TEST:
        logger.info("%s skipped migration check in test environment", MIGRATIONS_PREFIX)
        return

    expected = _expected_heads(alembic_config_path)
    applied = _applied_heads(engine)
    if applied != expected:
        logger.critical(
            "%s pending migration detected applied=%s expected=%s",
            MIGRATIONS_PREFIX,
            sorted(applied),
            sorted(expected),
        )
        raise RuntimeError("Pending migrations detected")

    logger.info("%s migration state verified heads=%s", MIGRATIONS_PREFIX, sorted(expected))
