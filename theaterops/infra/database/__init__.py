"""
theaterops.infra.database – PostgreSQL async engine, session, models and repositories.

Public API
──────────
  build_engine, build_session_factory, atomic, init_db, close_engine
  Base and the ORM models
  BaseRepository and the per-entity repositories
"""
from theaterops.infra.database.engine import (
    atomic,
    build_engine,
    build_session_factory,
    close_engine,
    ensure_database_exists,
    init_db,
)
from theaterops.infra.database.models import Base

__all__ = [
    "atomic",
    "build_engine",
    "build_session_factory",
    "close_engine",
    "ensure_database_exists",
    "init_db",
    "Base",
]
