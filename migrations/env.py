"""Alembic environment for the RisqLab schema.

Connection settings come from :func:`risqlab.core.config.load_config`,
so migrations run against the same ``DB_*`` settings (and ``.env`` file)
as the engines. Tables are created with explicit ``op`` calls; there is
no declarative metadata to autogenerate from.
"""

from __future__ import annotations

from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool
from sqlalchemy.engine import URL

from risqlab.core.config import load_config


config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = None


def _database_url() -> URL:
    db = load_config().db
    return URL.create(
        "postgresql+psycopg2",
        username=db.user,
        password=db.password or None,
        host=db.host,
        port=db.port,
        database=db.name,
    )


def run_migrations_offline() -> None:
    """Emit the migration SQL to stdout without connecting."""

    context.configure(
        url=_database_url().render_as_string(hide_password=False),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Apply migrations over a single non-pooled connection."""

    engine = create_engine(_database_url(), poolclass=pool.NullPool)

    with engine.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
