from __future__ import annotations
from logging.config import fileConfig
from sqlalchemy import engine_from_config, pool
from alembic import context
import os, sys

# backend/ on sys.path so `alembic -c backend/alembic.ini` works from the repo root
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from backoffice.config.settings import load_settings  # noqa: E402
from backoffice.models.authz import Base  # noqa: E402
import backoffice.models.catalog  # noqa: F401,E402
import backoffice.models.audit  # noqa: F401,E402

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# same DATABASE_URL resolution as the running app (.env included)
db_url = load_settings()['DATABASE_URL']
config.set_main_option('sqlalchemy.url', db_url)

target_metadata = Base.metadata
# SQLite cannot ALTER most constraints in place
batch = db_url.startswith('sqlite')


def run_migrations_offline():
    context.configure(
        url=db_url, target_metadata=target_metadata, literal_binds=True,
        render_as_batch=batch, compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    connectable = engine_from_config(
        config.get_section(config.config_ini_section),
        prefix='sqlalchemy.',
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(
            connection=connection, target_metadata=target_metadata,
            render_as_batch=batch, compare_type=True,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
