"""Programmatic Alembic upgrades for the job store database."""

from __future__ import annotations

import logging
from pathlib import Path

from alembic import command
from alembic.config import Config
from alembic.script import ScriptDirectory

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[3]


def alembic_config(db_path: Path) -> Config:
    """Config bound to the bundled migration scripts and `db_path`."""

    config = Config(str(PROJECT_ROOT / "alembic.ini"))
    config.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    config.set_main_option("sqlalchemy.url", f"sqlite:///{db_path}")
    return config


def upgrade_head(db_path: Path) -> None:
    """Create the database file if needed and migrate it to the latest revision."""

    db_path.parent.mkdir(parents=True, exist_ok=True)
    logger.debug("Upgrading job store schema at %s", db_path)
    command.upgrade(alembic_config(db_path), "head")


def head_revision() -> str | None:
    script = ScriptDirectory.from_config(alembic_config(Path("unused.db")))
    return script.get_current_head()
