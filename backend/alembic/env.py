"""
Alembic migration environment for the enrollment schema.

The target URL comes from DATABASE_URL_SYNC unless overridden on the
command line (`alembic -x url=sqlite:///enrollment.db upgrade head`).
SQLite targets run in batch mode so constraint changes can be replayed.
"""

from logging.config import fileConfig
from sqlalchemy import engine_from_config, pool
from alembic import context

from enrollment.db.base import Base
from enrollment.models import Teacher, Timeslot, Reservation, TuitionPayment  # noqa: F401 - registers tables on Base
from enrollment.core.config import get_settings

config = context.config
settings = get_settings()

url = context.get_x_argument(as_dictionary=True).get("url") or settings.DATABASE_URL_SYNC
config.set_main_option("sqlalchemy.url", url)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _configure_options() -> dict:
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "render_as_batch": url.startswith("sqlite"),
    }


def run_migrations_offline() -> None:
    """Emit the migration as a SQL script for review by the DBA."""
    context.configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_configure_options(),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(connection=connection, **_configure_options())
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
