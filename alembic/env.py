from __future__ import annotations

import os
import re
import sys
from logging.config import fileConfig

from alembic import context  # type: ignore[attr-defined]
from alembic.script import ScriptDirectory
from sqlalchemy import engine_from_config, pool

# Add project path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from assessment_catalog.infrastructure.config import get_settings  # noqa
from assessment_catalog.infrastructure.models import Base  # noqa

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

# An empty sqlalchemy.url in alembic.ini means "use the DB_* settings"
if not config.get_main_option("sqlalchemy.url"):
    url = get_settings().database.get_connection_url()
    config.set_main_option("sqlalchemy.url", url.replace("%", "%%"))


def _slugify(message: str | None) -> str:
    slug = re.sub(r"[^a-zA-Z0-9]+", "_", message or "").strip("_").lower()
    return slug or "revision"


def _next_revision_id(slug: str) -> str:
    """Revisions are numbered 0001_, 0002_, ... rather than alembic's random hex ids."""
    numbers = [
        int(match.group(1))
        for revision in ScriptDirectory.from_config(config).walk_revisions()
        if (match := re.match(r"^(\d+)", revision.revision or ""))
    ]
    return f"{max(numbers, default=0) + 1:04d}_{slug}"


def _process_revision_directives(context, revision, directives):  # type: ignore[unused-argument]
    cmd_opts = getattr(config, "cmd_opts", None)
    if (cmd_opts and getattr(cmd_opts, "rev_id", None)) or not directives:
        return
    script = directives[0]
    script.rev_id = _next_revision_id(_slugify(getattr(script, "message", None)))


def run_migrations_offline() -> None:
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        process_revision_directives=_process_revision_directives,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            process_revision_directives=_process_revision_directives,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
