"""Alembic environment for the reminder schema."""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

from journal_reminders.config import settings
from journal_reminders.database.base import Base
from journal_reminders.entries import models as entry_models  # noqa: F401
from journal_reminders.notifications import models as notification_models  # noqa: F401

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)


def _database_url() -> str:
    # main.py passes the URL explicitly; the alembic CLI falls back to settings
    return config.get_main_option("sqlalchemy.url") or settings.effective_database_url


def run() -> None:
    url = _database_url()
    options = {"target_metadata": Base.metadata, "compare_type": True}

    if context.is_offline_mode():
        context.configure(url=url, literal_binds=True, **options)
        with context.begin_transaction():
            context.run_migrations()
        return

    engine = create_engine(url, poolclass=pool.NullPool)
    with engine.connect() as connection:
        context.configure(connection=connection, **options)
        with context.begin_transaction():
            context.run_migrations()
    engine.dispose()


run()
