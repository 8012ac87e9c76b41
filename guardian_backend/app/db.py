# -*- coding: utf-8 -*-
"""
@file db.py
@brief Database connection settings and SQLAlchemy session management.

Sets up the engine, the session factory and the FastAPI session dependency.
SQLite is the default; any other database is selected with DATABASE_URL.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
import os
import pathlib

# --------------------------------------------------------------------
# Default database location
# --------------------------------------------------------------------
# ./data/guardian.db, the directory is created only when the default is used
default_db_path = pathlib.Path("./data/guardian.db")

DB_URL = os.getenv("DATABASE_URL")
if not DB_URL:
    default_db_path.parent.mkdir(parents=True, exist_ok=True)
    DB_URL = f"sqlite:///{default_db_path.as_posix()}"


def _is_memory_sqlite(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:")


def make_engine(url: str):
    """
    Build an engine with the connect options each backend needs.

    - SQLite: check_same_thread=False, requests run in the threadpool
    - In-memory SQLite: one shared connection (StaticPool), otherwise every
      connection would see its own empty database
    - Anything else: driver defaults

    Args:
        url (str): SQLAlchemy database URL

    Returns:
        Engine: configured engine
    """
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True)
    kwargs = {"connect_args": {"check_same_thread": False}}
    if _is_memory_sqlite(url):
        kwargs["poolclass"] = StaticPool
    return create_engine(url, **kwargs)


# --------------------------------------------------------------------
# Engine and session factory
# --------------------------------------------------------------------
engine = make_engine(DB_URL)

# autocommit=False, autoflush=False: handlers commit explicitly
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for every model
Base = declarative_base()


def get_db():
    """
    FastAPI dependency yielding a database session.

    Used as `db: Session = Depends(get_db)`; the session is closed once the
    request has been answered.

    Yields:
        Session: SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
