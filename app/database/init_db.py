import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

from alembic import command
from alembic.config import Config as AlembicConfig
from sqlalchemy import func

PROJECT_ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(PROJECT_ROOT))

from app.core.config import get_config
from app.core.enums import UserType
from app.core.startup import bootstrap
import app.database.db as db_module
from app.models import User

logger = logging.getLogger(__name__)


def _build_alembic_config(database_url: str) -> AlembicConfig:
    cfg = AlembicConfig(str(PROJECT_ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(PROJECT_ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", database_url)
    return cfg


def _sqlite_db_path(database_url: str) -> Path | None:
    prefix = "sqlite:///"
    if not database_url.startswith(prefix):
        return None
    raw = database_url[len(prefix) :]
    if raw in {":memory:", ""}:
        return None
    path = Path(raw)
    if not path.is_absolute():
        path = (PROJECT_ROOT / path).resolve()
    return path


def _reset_sqlite_db(database_url: str) -> Path | None:
    db_path = _sqlite_db_path(database_url)
    if not db_path or not db_path.exists():
        db_module.reset_engine(database_url)
        return None

    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    backup_path = db_path.with_name(f"{db_path.stem}.backup_{timestamp}{db_path.suffix}")
    db_module.get_engine().dispose()
    db_path.replace(backup_path)
    db_module.reset_engine(database_url)
    return backup_path


def upgrade_schema(database_url: str) -> None:
    command.upgrade(_build_alembic_config(database_url), "head")


def ensure_system_user() -> bool:
    """Create the internal system user if missing. Returns True when a row was added."""
    email = get_config().SYSTEM_USER_EMAIL
    with db_module.get_db_session() as session:
        existing = (
            session.query(User)
            .filter(func.lower(User.email) == email.lower(), User.user_type == UserType.INTERNAL.value)
            .first()
        )
        if existing is not None:
            return False
        session.add(User(email=email, full_name="System", user_type=UserType.INTERNAL.value))
        session.commit()
    logger.info("database.system_user.created", extra={"event": "database.system_user.created"})
    return True


def init_db(create_system_user: bool = True) -> None:
    """Upgrade the order schema to head and make sure benchmarks have a system capturer.

    A local SQLite file whose schema no longer matches the migrations is backed
    up beside the original and rebuilt from scratch.
    """
    bootstrap()
    active_url = db_module.get_active_database_url()
    try:
        upgrade_schema(active_url)
    except Exception as exc:
        if not active_url.startswith("sqlite:///"):
            raise
        backup_path = _reset_sqlite_db(active_url)
        logger.warning(
            "database.sqlite.reset_for_schema_mismatch",
            extra={
                "event": "database.sqlite.reset_for_schema_mismatch",
                "error": f"{exc}; backup={backup_path}" if backup_path else str(exc),
            },
        )
        upgrade_schema(active_url)

    logger.info("database.schema.upgraded", extra={"event": "database.schema.upgraded"})
    if create_system_user:
        ensure_system_user()


if __name__ == "__main__":
    init_db()
