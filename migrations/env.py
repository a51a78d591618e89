"""Alembic environment for the skul-relay schema.

Migrations cover the conversation tables (profiles, tutor profiles,
conversations, messages), the moderation tables (flagged messages, user
violations, message feedback) and the notification tables (notifications,
preferences, push tokens).

The URL comes from ``ALEMBIC_URL`` when set, then from the Alembic config,
then from the application settings.
"""
from __future__ import annotations

import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

from skul_relay.core.settings import settings
from skul_relay.db.session import Base

config = context.config

if config.config_file_name is not None and os.path.exists(config.config_file_name):
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _database_url() -> str:
    return (
        os.getenv("ALEMBIC_URL")
        or config.get_main_option("sqlalchemy.url")
        or settings.database_url_sync
    )


def include_object(obj, name, type_, reflected, compare_to):
    """Leave ``alembic_version`` out of autogenerated revisions."""
    return not (type_ == "table" and name == "alembic_version")


def _configure(url: str, **options) -> None:
    # SQLite cannot ALTER most columns in place; batch mode rebuilds the table.
    context.configure(
        target_metadata=target_metadata,
        include_object=include_object,
        render_as_batch=url.startswith("sqlite"),
        **options,
    )


def run_migrations_offline() -> None:
    """Emit the migration SQL for ``_database_url()`` without connecting."""
    url = _database_url()
    _configure(url, url=url, literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Apply pending revisions over a single unpooled connection."""
    url = _database_url()
    connectable = create_engine(url, poolclass=pool.NullPool)
    with connectable.connect() as connection:
        _configure(url, connection=connection)
        with context.begin_transaction():
            context.run_migrations()
    connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
