from __future__ import annotations

from pathlib import Path
from typing import Dict

import click
from alembic import command
from alembic.config import Config as AlembicConfig
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from flask import Flask
from sqlalchemy import create_engine, pool


_PROJECT_ROOT = Path(__file__).resolve().parents[1]


def to_sqlalchemy_url(db_path: str) -> str:
    """Map `DB_PATH` (a postgres URL or a sqlite file path) to a SQLAlchemy URL."""
    raw = (db_path or "").strip()
    if not raw:
        raise RuntimeError("DB_PATH is not set; cannot run migrations.")
    if raw.startswith("postgres://"):
        return "postgresql://" + raw[len("postgres://") :]
    if raw.startswith(("postgresql://", "sqlite://")):
        return raw
    return f"sqlite:///{Path(raw).expanduser().resolve().as_posix()}"


def build_alembic_config(app: Flask) -> AlembicConfig:
    alembic_cfg = AlembicConfig(str(_PROJECT_ROOT / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", (_PROJECT_ROOT / "migrations").as_posix())
    alembic_cfg.set_main_option("sqlalchemy.url", to_sqlalchemy_url(app.config["DB_PATH"]))
    alembic_cfg.attributes["configured_by_app"] = True
    return alembic_cfg


def head_revision(app: Flask) -> str | None:
    script = ScriptDirectory.from_config(build_alembic_config(app))
    return script.get_current_head()


def current_revision(app: Flask) -> str | None:
    """Revision stamped in ``alembic_version``; ``None`` for an unmigrated database."""
    engine = create_engine(to_sqlalchemy_url(app.config["DB_PATH"]), poolclass=pool.NullPool)
    try:
        with engine.connect() as connection:
            return MigrationContext.configure(connection).get_current_revision()
    finally:
        engine.dispose()


def schema_status(app: Flask) -> Dict[str, object]:
    current = current_revision(app)
    head = head_revision(app)
    return {"current": current, "head": head, "up_to_date": current == head}


def register_db_cli(app: Flask) -> None:
    @app.cli.group("db")
    def db_group() -> None:
        """Schema migrations (Alembic)."""

    @db_group.command("upgrade")
    @click.argument("revision", required=False, default="head")
    def db_upgrade(revision: str) -> None:
        cfg = build_alembic_config(app)
        command.upgrade(cfg, revision)
        click.echo(f"Upgraded to {revision}.")

    @db_group.command("downgrade")
    @click.argument("revision", required=False, default="-1")
    def db_downgrade(revision: str) -> None:
        cfg = build_alembic_config(app)
        command.downgrade(cfg, revision)
        click.echo(f"Downgraded to {revision}.")

    @db_group.command("current")
    def db_current() -> None:
        status = schema_status(app)
        click.echo(f"current: {status['current'] or '<none>'}")
        click.echo(f"head: {status['head'] or '<none>'}")

    @db_group.command("check")
    def db_check() -> None:
        """Exit non-zero when the database is behind the latest migration."""
        status = schema_status(app)
        if not status["up_to_date"]:
            raise click.ClickException(
                f"schema at {status['current'] or '<none>'}, expected {status['head'] or '<none>'}; "
                "run `flask db upgrade`."
            )
        click.echo(f"Schema is up to date ({status['head']}).")

    @db_group.command("init")
    def db_init() -> None:
        """Create the read model tables without Alembic (local development only)."""
        from member_sync.db import init_db

        init_db()
        click.echo("Read model tables created.")
