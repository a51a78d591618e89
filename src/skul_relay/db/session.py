"""Engine, session factory and declarative base for skul-relay.

One engine per process, built from ``settings.effective_database_url``.
Request handlers get a session through ``get_db``; the notification
worker and the operator scripts open their own from ``SessionLocal``.
"""

from __future__ import annotations

from collections.abc import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from skul_relay.core.settings import settings


class Base(DeclarativeBase):
    """Base for the conversation, moderation and notification models."""


# Registers every table on Base.metadata.
import skul_relay.models  # noqa: E402,F401


def _engine_options(url: str) -> dict:
    options: dict = {"pool_pre_ping": True, "echo": settings.sql_debug}
    if url.startswith("sqlite"):
        # sessions are handed across the request threadpool
        options["connect_args"] = {"check_same_thread": False}
    return options


engine = create_engine(
    settings.effective_database_url,
    **_engine_options(settings.effective_database_url),
)

SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=True)


def get_db() -> Generator[Session, None, None]:
    """Yield a session that is closed once the request finishes."""
    with SessionLocal() as db:
        yield db


def create_tables() -> None:
    Base.metadata.create_all(bind=engine)


def drop_tables() -> None:
    Base.metadata.drop_all(bind=engine)
