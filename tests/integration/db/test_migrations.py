from __future__ import annotations

from alembic import command
from sqlalchemy import create_engine, inspect

from app.database.init_db import _build_alembic_config, _sqlite_db_path, upgrade_schema
from app.models import Base


def test_upgrade_to_head_matches_model_metadata(tmp_path):
    url = f"sqlite:///{tmp_path / 'orders.db'}"

    upgrade_schema(url)

    engine = create_engine(url)
    inspector = inspect(engine)
    tables = set(inspector.get_table_names())
    assert set(Base.metadata.tables).issubset(tables)
    line_item_columns = {column["name"] for column in inspector.get_columns("order_line_items")}
    assert {"metadata", "version", "assigned_domain_id", "wholesale_price"}.issubset(line_item_columns)
    engine.dispose()


def test_downgrade_removes_order_tables(tmp_path):
    url = f"sqlite:///{tmp_path / 'orders.db'}"
    upgrade_schema(url)

    command.downgrade(_build_alembic_config(url), "base")

    engine = create_engine(url)
    assert "orders" not in set(inspect(engine).get_table_names())
    engine.dispose()


def test_sqlite_path_resolution(tmp_path):
    assert _sqlite_db_path("sqlite:///:memory:") is None
    assert _sqlite_db_path("postgresql://db/orders") is None
    assert _sqlite_db_path(f"sqlite:///{tmp_path / 'x.db'}") == tmp_path / "x.db"
