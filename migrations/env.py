"""Alembic environment; the database URL comes from application settings."""
from alembic import context
from sqlalchemy import create_engine, pool

from agrilink.config import Settings
from agrilink.models import Base

target_metadata = Base.metadata

# Same source as the API process: env vars, then .env
url = Settings().database_url
context.config.set_main_option("sqlalchemy.url", url)


def _configure_options(is_sqlite: bool) -> dict:
    # SQLite cannot alter constraints in place; batch mode rebuilds the table.
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "compare_server_default": True,
        "render_as_batch": is_sqlite,
    }


def run_migrations_offline() -> None:
    context.configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_configure_options(url.startswith("sqlite")),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = create_engine(url, poolclass=pool.NullPool)
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            **_configure_options(connection.dialect.name == "sqlite"),
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
