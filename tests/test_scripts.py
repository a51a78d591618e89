# tests/test_scripts.py
"""Tests for the operator scripts."""

import os

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect

from skul_relay.core.security import decode_subject
from skul_relay.core.settings import settings
from skul_relay.db.session import Base, drop_tables, engine
from skul_relay.init_db import init_db
from skul_relay.scripts import migrate, tokens


def test_token_script_prints_bearer_header(capsys) -> None:
    assert tokens.main(["profile-123", "--no-check"]) == 0

    line = capsys.readouterr().out.strip()
    assert line.startswith("Authorization: Bearer ")
    assert decode_subject(line.removeprefix("Authorization: Bearer ")) == "profile-123"


def test_token_script_prints_cookie(capsys) -> None:
    assert tokens.main(["profile-123", "--no-check", "--cookie", "--minutes", "5"]) == 0
    assert capsys.readouterr().out.startswith(f"Cookie: {settings.session_cookie_name}=")


def test_token_script_checks_profile(mocker, capsys) -> None:
    session = mocker.MagicMock()
    session.__enter__.return_value = session
    session.get.return_value = None
    mocker.patch.object(tokens, "SessionLocal", return_value=session)

    assert tokens.main(["missing-profile"]) == 1
    assert "not found" in capsys.readouterr().err


def test_migration_config_points_at_project_migrations() -> None:
    cfg = migrate.build_config()
    assert cfg.get_main_option("script_location") == migrate.MIGRATIONS_DIR
    assert os.path.isfile(os.path.join(migrate.MIGRATIONS_DIR, "env.py"))
    assert cfg.get_main_option("sqlalchemy.url") == settings.database_url_sync


def test_init_db_creates_schema() -> None:
    init_db()
    try:
        tables = set(inspect(engine).get_table_names())
        assert {"conversations", "messages", "flagged_messages", "user_violations"} <= tables
    finally:
        drop_tables()


def test_migrations_build_the_full_schema(tmp_path, monkeypatch) -> None:
    monkeypatch.delenv("ALEMBIC_URL", raising=False)
    url = f"sqlite:///{tmp_path / 'relay.db'}"
    cfg = Config()
    cfg.set_main_option("script_location", migrate.MIGRATIONS_DIR)
    cfg.set_main_option("sqlalchemy.url", url)

    command.upgrade(cfg, "head")

    migrated = create_engine(url)
    try:
        inspector = inspect(migrated)
        assert set(Base.metadata.tables) <= set(inspector.get_table_names())
        columns = {column["name"] for column in inspector.get_columns("flagged_messages")}
        assert {"idempotency_key", "status", "flags"} <= columns
    finally:
        migrated.dispose()


def test_alembic_url_overrides_configured_database(tmp_path, monkeypatch) -> None:
    target = tmp_path / "override.db"
    monkeypatch.setenv("ALEMBIC_URL", f"sqlite:///{target}")
    cfg = Config()
    cfg.set_main_option("script_location", migrate.MIGRATIONS_DIR)
    cfg.set_main_option("sqlalchemy.url", f"sqlite:///{tmp_path / 'ignored.db'}")

    command.upgrade(cfg, "head")

    assert target.exists()
    assert not (tmp_path / "ignored.db").exists()
