from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine

from sqlmodel import SQLModel
from app.core.config import settings
from app.core.db import to_driver_url
from app.models import (  # noqa: F401 - register tables on SQLModel.metadata
    Availability,
    Booking,
    CalendarConnection,
    EventType,
    User,
)

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Migrations run synchronously through psycopg2
database_url = to_driver_url(settings.database_url, "psycopg2")
target_metadata = SQLModel.metadata


def run_migrations_offline() -> None:
    context.configure(
        url=database_url,
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = create_engine(database_url)

    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata, compare_type=True)
        with context.begin_transaction():
            context.run_migrations()
    connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
