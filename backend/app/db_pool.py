# backend/app/db_pool.py
"""
Explicit connection pool handle.

The pool is constructed by the application factory (or a test) and handed
to the services that need it. Nothing in here is a module-level singleton.

LIFECYCLE:
1. ConnectionPool() - unopened handle
2. init(...)        - engine built (or adopted) and sessions can be acquired
3. close()          - owned engine disposed, further acquisition fails

Every acquisition path releases its connection on exit, including the
rollback branch of transaction().
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker


class PoolClosedError(RuntimeError):
    """Raised when a connection is requested from a pool that is not open."""


class ConnectionPool:
    def __init__(self) -> None:
        self._engine: Engine | None = None
        self._session_factory: sessionmaker | None = None
        self._owns_engine = False

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise PoolClosedError("Connection pool is not initialized")
        return self._engine

    def init(
        self,
        database_uri: str | None = None,
        *,
        engine: Engine | None = None,
        **engine_options,
    ) -> "ConnectionPool":
        """
        Open the pool.

        Either build an engine from database_uri (the pool owns and later
        disposes it) or adopt an existing engine such as the one managed by
        Flask-SQLAlchemy (left alone on close).
        """
        if self._engine is not None:
            raise RuntimeError("Connection pool is already initialized")
        if engine is None and not database_uri:
            raise ValueError("database_uri or engine is required")

        if engine is not None:
            self._engine = engine
            self._owns_engine = False
        else:
            self._engine = create_engine(database_uri, **engine_options)
            self._owns_engine = True

        self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False)
        return self

    def close(self) -> None:
        if self._engine is None:
            return
        if self._owns_engine:
            self._engine.dispose()
        self._engine = None
        self._session_factory = None
        self._owns_engine = False

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Acquire one session (one pooled connection) and always release it."""
        if self._session_factory is None:
            raise PoolClosedError("Connection pool is not initialized")
        session = self._session_factory()
        try:
            yield session
        finally:
            session.close()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Acquire a session inside an explicit transaction.

        Commits when the block exits normally; rolls back and re-raises on any
        exception, so no partial write is ever visible to other readers.
        """
        with self.session() as session:
            with session.begin():
                yield session

    def ping(self) -> bool:
        with self.session() as session:
            return session.execute(text("SELECT 1")).scalar() == 1


def engine_options_from_config(config) -> dict:
    """Translate Config pool settings into create_engine() keyword arguments."""
    options = {"pool_pre_ping": True}
    uri = config.get("SQLALCHEMY_DATABASE_URI") or ""
    if uri and make_url(uri).get_backend_name() != "sqlite":
        options.update(
            pool_size=config.get("DB_POOL_SIZE", 10),
            max_overflow=config.get("DB_MAX_OVERFLOW", 5),
            pool_timeout=config.get("DB_POOL_TIMEOUT", 30),
            pool_recycle=config.get("DB_POOL_RECYCLE", 1800),
        )
    return options
