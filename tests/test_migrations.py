from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect

from roomservice.core import config as config_module
from roomservice.core.database import Base
import roomservice.models  # noqa: F401

REPO_ROOT = Path(__file__).resolve().parents[1]


def _alembic_config() -> Config:
    alembic_cfg = Config()
    alembic_cfg.set_main_option("script_location", str(REPO_ROOT / "alembic"))
    return alembic_cfg


def test_upgrade_creates_every_model_table_and_downgrade_drops_them(monkeypatch, tmp_path):
    url = f"sqlite:///{tmp_path / 'migrated.db'}"
    monkeypatch.setattr(config_module, "DATABASE_URL", url)
    engine = create_engine(url)

    command.upgrade(_alembic_config(), "head")

    tables = set(inspect(engine).get_table_names())
    assert set(Base.metadata.tables).issubset(tables)
    order_columns = {column["name"] for column in inspect(engine).get_columns("orders")}
    assert {column.name for column in Base.metadata.tables["orders"].columns} == order_columns

    command.downgrade(_alembic_config(), "base")

    assert set(inspect(engine).get_table_names()) & set(Base.metadata.tables) == set()
