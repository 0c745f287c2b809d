from __future__ import annotations

import logging
import os
from pathlib import Path

from sqlalchemy import inspect as sa_inspect
from sqlalchemy import text
from sqlmodel import SQLModel

from leaderboard_node.db import tables  # noqa: F401  registers table metadata
from leaderboard_node.db.session import engine

logger = logging.getLogger(__name__)

# Child tables first so CASCADE has nothing left to chase.
RESET_TABLES = ("score_records", "participants", "alembic_version")


def _has_migrations(path: Path) -> bool:
    return path.is_dir() and (path / "env.py").exists() and (path / "versions").is_dir()


def find_alembic_dir() -> Path | None:
    """Locate the migrations directory.

    ``ALEMBIC_DIR`` wins, then ``alembic/`` at the repository root, then one
    bundled inside the package. ``None`` means callers use ``create_all``.
    """
    here = Path(__file__).resolve()
    candidates = [
        Path(os.environ["ALEMBIC_DIR"]) if os.getenv("ALEMBIC_DIR") else None,
        here.parents[2] / "alembic",
        here.parents[1] / "alembic",
    ]
    return next((p for p in candidates if p is not None and _has_migrations(p)), None)


def upgrade_to_head(alembic_dir: Path) -> None:
    from alembic import command
    from alembic.config import Config

    config = Config()
    config.set_main_option("script_location", str(alembic_dir))
    config.set_main_option("sqlalchemy.url", engine.url.render_as_string(hide_password=False))

    if engine.dialect.name == "postgresql":
        # DDL must not queue forever behind long leaderboard reads
        with engine.connect() as conn:
            conn.execute(text("SET lock_timeout = '30s'"))
            conn.commit()

    command.upgrade(config, "head")


def migrate() -> None:
    """Bring the schema up to date. Never drops data."""
    alembic_dir = find_alembic_dir()
    if alembic_dir is None:
        logger.info("No migrations directory found, creating tables from metadata")
        SQLModel.metadata.create_all(engine)
        return

    logger.info("Running migrations from %s", alembic_dir)
    try:
        upgrade_to_head(alembic_dir)
    except Exception:
        logger.exception("Migration failed, falling back to create_all")
        SQLModel.metadata.create_all(engine)


def reset_db() -> None:
    """Drop every leaderboard table and rebuild the schema."""
    logger.warning("Dropping tables: %s", ", ".join(RESET_TABLES))
    with engine.begin() as conn:
        for table in RESET_TABLES:
            conn.execute(text(f"DROP TABLE IF EXISTS {table} CASCADE"))
    migrate()


def auto_migrate() -> None:
    """Create the schema on first use, otherwise apply pending migrations."""
    if not sa_inspect(engine).has_table("score_records"):
        migrate()
        return

    alembic_dir = find_alembic_dir()
    if alembic_dir is None:
        return
    try:
        upgrade_to_head(alembic_dir)
    except Exception:
        logger.exception("Pending migrations could not be applied")


if __name__ == "__main__":
    import sys

    from leaderboard_node.utils.logging_config import setup_logging

    setup_logging(os.getenv("LOG_LEVEL", "INFO").upper())
    if "--reset" in sys.argv:
        reset_db()
    else:
        migrate()
    logger.info("Database ready")
