"""Database engine, declarative base and the unit of work.

Aggregates are SQLAlchemy mapped classes that carry their own business
methods. Every workflow runs inside :func:`unit_of_work`, which commits on a
clean exit and rolls back when an exception escapes.

SQLite connections are switched to manual transaction control and begin with
``BEGIN IMMEDIATE``: savepoints then behave, and concurrent writers queue on
the database lock instead of failing half way through a workflow.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from uuid import uuid4

import structlog
from sqlalchemy import Engine, MetaData, create_engine, event
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from shared.config import get_settings

logger = structlog.get_logger(__name__)

CENTS = Decimal("0.01")

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


def new_id() -> str:
    return str(uuid4())


def utc_now() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


_engine: Engine | None = None
_session_factory: sessionmaker | None = None


def _enable_sqlite_transactions(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(connection):
        connection.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(database_uri: str) -> Engine:
    if database_uri.startswith("sqlite"):
        options = {"connect_args": {"check_same_thread": False}}
        if database_uri in ("sqlite://", "sqlite:///:memory:"):
            options["poolclass"] = StaticPool
        engine = create_engine(database_uri, **options)
        _enable_sqlite_transactions(engine)
        return engine
    return create_engine(database_uri, pool_pre_ping=True)


def configure_database(database_uri: str | None = None) -> Engine:
    """Point the module at a database. Replaces any previously configured engine."""
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()

    _engine = build_engine(database_uri or get_settings().database_uri)
    _session_factory = sessionmaker(bind=_engine, expire_on_commit=False)
    logger.debug("Database configured", url=_engine.url.render_as_string(hide_password=True))
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        configure_database()
    return _engine


@contextmanager
def unit_of_work() -> Iterator[Session]:
    """Open a session inside a transaction that commits when the block exits cleanly."""
    get_engine()
    session = _session_factory()
    try:
        with session.begin():
            yield session
    finally:
        session.close()


def _load_models() -> None:
    # Importing the model modules registers their tables on Base.metadata.
    import booking.booking  # noqa: F401
    import catalogue.models  # noqa: F401
    import identity.address  # noqa: F401
    import ordering.cart.cart  # noqa: F401
    import ordering.order.order  # noqa: F401
    import payments.payment.payment  # noqa: F401
    import shared.numbering  # noqa: F401


def setup_db(engine: Engine | None = None) -> None:
    """Setup database schema"""
    _load_models()
    Base.metadata.create_all(engine or get_engine())


def drop_db(engine: Engine | None = None) -> None:
    """Drop database schema"""
    _load_models()
    Base.metadata.drop_all(engine or get_engine())
