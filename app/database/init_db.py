"""Schema migration and first-run seeding."""

import logging
import sys
from pathlib import Path

from alembic import command
from alembic.config import Config as AlembicConfig

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import app.database.db as db_module
from app.core.startup import bootstrap
from app.models import Family
from app.services.stage_registry import StageRegistry

logger = logging.getLogger(__name__)


def _build_alembic_config(database_url: str) -> AlembicConfig:
    cfg = AlembicConfig(str(PROJECT_ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(PROJECT_ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", database_url)
    return cfg


def seed_default_stages() -> int:
    """Give every family without stages the default workflow. Returns families seeded."""
    seeded = 0
    with db_module.get_db_session() as session:
        registry = StageRegistry(db=session)
        for family in session.query(Family).order_by(Family.id.asc()).all():
            if registry.first_stage(family.id) is not None:
                continue
            registry.ensure_default_stages(family.id)
            seeded += 1
    return seeded


def init_db() -> None:
    bootstrap()
    active_url = db_module.get_active_database_url()
    command.upgrade(_build_alembic_config(active_url), "head")
    seeded = seed_default_stages()
    logger.info(
        "database.schema.ready",
        extra={"event": "database.schema.ready", "database_url": active_url, "families_seeded": seeded},
    )


if __name__ == "__main__":
    init_db()
