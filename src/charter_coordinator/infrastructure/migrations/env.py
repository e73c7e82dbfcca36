"""Alembic environment for the Charter Coordinator schema.

Online migrations run through the same ``build_engine`` the application
uses, with pooling disabled. The target database defaults to
``DATABASE_URL`` and can be overridden per run:

    alembic -x database_url=sqlite+aiosqlite:///./var/dev.db upgrade head

Autogenerate renders ``TZDateTime`` as a plain timezone-aware DateTime and
the JSON/JSONB variant as JSONB, so revision files do not import
application code. Autogenerate runs that detect no changes write no file.
"""

import asyncio
import sys
from logging.config import fileConfig
from pathlib import Path
from typing import Any

from alembic import context
from sqlalchemy.engine import Connection
from sqlalchemy.pool import NullPool

sys.path.insert(0, str(Path(__file__).resolve().parents[3]))

from charter_coordinator.config import get_settings  # noqa: E402
from charter_coordinator.infrastructure.database.engine import build_engine  # noqa: E402
from charter_coordinator.infrastructure.database.orm_models import (  # noqa: E402
    Base,
    TZDateTime,
)

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def database_url() -> str:
    return context.get_x_argument(as_dictionary=True).get(
        "database_url", get_settings().database_url
    )


def render_item(type_: str, obj: Any, autogen_context: Any) -> str | bool:
    """Render custom column types without referencing application modules."""
    if type_ != "type":
        return False
    if isinstance(obj, TZDateTime):
        return "sa.DateTime(timezone=True)"
    if getattr(obj, "_variant_mapping", None) and "postgresql" in obj._variant_mapping:
        autogen_context.imports.add("from sqlalchemy.dialects import postgresql")
        return "sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')"
    return False


def skip_empty_revisions(context_: Any, revision: Any, directives: list) -> None:
    if getattr(config.cmd_opts, "autogenerate", False):
        script = directives[0]
        if script.upgrade_ops.is_empty():
            directives[:] = []


def configure(**kwargs: Any) -> None:
    sqlite = kwargs.pop("sqlite")
    context.configure(
        target_metadata=target_metadata,
        render_item=render_item,
        process_revision_directives=skip_empty_revisions,
        compare_type=True,
        render_as_batch=sqlite,
        **kwargs,
    )


def run_migrations_offline() -> None:
    """Emit SQL to stdout instead of touching a database."""
    url = database_url()
    configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        sqlite=url.startswith("sqlite"),
    )
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    configure(connection=connection, sqlite=connection.dialect.name == "sqlite")
    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    engine = build_engine(database_url(), poolclass=NullPool)
    async with engine.connect() as connection:
        await connection.run_sync(do_run_migrations)
    await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_async_migrations())
