"""Database helper utilities for ensuring schema consistency."""
from __future__ import annotations

from typing import Iterable, Set

from sqlalchemy import inspect, text
from sqlalchemy.exc import SQLAlchemyError

from .extensions import db


def _get_column_names(table_name: str) -> Set[str]:
    inspector = inspect(db.engine)
    return {column["name"] for column in inspector.get_columns(table_name)}


def ensure_database_schema() -> None:
    """Ensure that essential schema updates are applied.

    Runs on every application start. It creates the story tables when they are
    missing and adds the ``language`` column to ``stories`` for databases
    created before stories carried a language code.
    """

    try:
        inspector = inspect(db.engine)
        table_names: Iterable[str] = inspector.get_table_names()

        # Import locally to avoid circular import issues during application setup.
        from .models import Chapter, Story

        required_tables = {
            "stories": Story.__table__,
            "chapters": Chapter.__table__,
        }

        for table_name, table in required_tables.items():
            if table_name not in table_names:
                table.create(bind=db.engine)

        if "stories" in table_names:
            story_columns = _get_column_names("stories")
            if "language" not in story_columns:
                with db.engine.begin() as connection:
                    connection.execute(
                        text("ALTER TABLE stories ADD COLUMN language VARCHAR(8) NOT NULL DEFAULT 'en'")
                    )
    except SQLAlchemyError:
        # A partially configured schema is worse than a failed start.
        raise
