"""Database setup for the points ledger."""

from datetime import datetime
import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Text, create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import settings


def _utcnow() -> datetime:
    return datetime.utcnow()


def _new_id() -> str:
    return str(uuid.uuid4())


def _enable_sqlite_transactions(engine: Engine) -> None:
    """Make pysqlite emit BEGIN for reads as well as writes.

    Without this the driver only opens a transaction before DML, so two
    SELECTs in one session may observe different committed states.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_ledger_engine(url: str, timeout: float | None = None) -> Engine:
    """Create an engine for ``url``, configuring SQLite transaction handling.

    ``timeout`` is the SQLite busy timeout in seconds.
    """
    connect_args = {"timeout": timeout} if timeout is not None else {}
    engine = create_engine(url, future=True, connect_args=connect_args)
    if engine.dialect.name == "sqlite":
        _enable_sqlite_transactions(engine)
    return engine


engine = create_ledger_engine(settings.database_url)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
Base = declarative_base()


class Transaction(Base):
    """One append-only ledger entry against a user's balance."""

    __tablename__ = "transactions"

    id = Column(Text, primary_key=True, default=_new_id)
    user_id = Column(Text, ForeignKey("users.id"), nullable=False)
    amount = Column(Integer, nullable=False)
    description = Column(Text, nullable=False)
    # The store default only has second resolution; inserts from the ORM
    # carry microseconds so newest-first ordering is stable.
    created_at = Column(DateTime, default=_utcnow, server_default=text("CURRENT_TIMESTAMP"))


def init_db(bind: Engine | None = None) -> None:
    """Create database tables if they do not exist."""
    from .models import user  # noqa: F401  registers the users table

    Base.metadata.create_all(bind=bind or engine)
