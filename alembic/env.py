import os
import sys
from logging.config import fileConfig

from sqlalchemy import engine_from_config
from sqlalchemy import pool

from alembic import context

# Make the wgportal package importable when alembic runs from the repo root
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

# Import Base and all models to ensure metadata is populated
from wgportal.core.database import Base
from wgportal.models import (  # noqa: F401
    AcceptedDomain,
    APIKey,
    AuditEvent,
    ConfigEntry,
    ImportBatch,
    Peer,
    RoleDefinition,
    User,
    UserLimitHistory,
)

# this is the Alembic Config object, which provides
# access to the values within the .ini file in use.
config = context.config

# Interpret the config file for Python logging.
if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

# Set target_metadata for autogenerate support
target_metadata = Base.metadata


def get_database_url():
    """Get database URL from environment, converting postgres:// to postgresql+psycopg2:// if needed."""
    database_url = os.getenv("DATABASE_URL")

    if not database_url:
        # Fall back to settings if DATABASE_URL not set
        from wgportal.core.config import get_settings
        database_url = get_settings().sqlalchemy_database_uri

    if not database_url:
        raise ValueError("DATABASE_URL not set and no fallback available")

    # Hosted providers hand out postgres:// which SQLAlchemy no longer accepts
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql+psycopg2://", 1)

    if database_url.startswith("postgresql") and "sslmode" not in database_url and os.getenv("DATABASE_SSLMODE"):
        separator = "&" if "?" in database_url else "?"
        database_url = f"{database_url}{separator}sslmode={os.getenv('DATABASE_SSLMODE')}"

    return database_url


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode.

    This configures the context with just a URL
    and not an Engine, though an Engine is acceptable
    here as well.  By skipping the Engine creation
    we don't even need a DBAPI to be available.
    """
    url = get_database_url() if os.getenv("DATABASE_URL") else config.get_main_option("sqlalchemy.url")

    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode.

    In this scenario we need to create an Engine
    and associate a connection with the context.
    """
    configuration = config.get_section(config.config_ini_section, {})
    configuration["sqlalchemy.url"] = get_database_url()

    connectable = engine_from_config(
        configuration,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection, target_metadata=target_metadata
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
