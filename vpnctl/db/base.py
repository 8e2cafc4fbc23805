"""
SQLAlchemy declarative base and peer store engine configuration
"""
from pathlib import Path

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool

DB_FILENAME = "vpn.db"

# Create declarative base
Base = declarative_base()


def create_store_engine(db_path: Path) -> Engine:
    """
    Create the SQLite engine for the peer store

    The pool holds exactly one connection, so concurrent sessions in this
    process wait for each other. Every transaction begins with
    BEGIN IMMEDIATE, which takes SQLite's write lock up front and makes
    other processes opening the same file serialize behind it.

    Args:
        db_path: Path of the SQLite database file

    Returns:
        Engine bound to the database file
    """
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
        poolclass=QueuePool,
        pool_size=1,
        max_overflow=0,
        echo=False
    )

    @event.listens_for(engine, "connect")
    def _disable_implicit_begin(dbapi_connection, connection_record):
        # let the "begin" hook below own transaction start
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    """
    Create sessionmaker for the peer store

    Objects stay loaded after commit so callers can use returned peers
    once the transaction is closed.
    """
    return sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False
    )
