"""
Database engine and session lifecycle management.

This module owns the SQLAlchemy engine for the application. The engine
is created once at startup and disposed on shutdown. Each request gets
its own session through session_scope().

TRANSACTIONS:
    - session_scope() commits when the block exits normally
    - Any exception rolls the session back and is re-raised
    - The session is always closed

FAIL FAST BEHAVIOR:
    - If the database cannot be reached at startup: raises DatabaseUnavailableError

Usage:
    # At application startup
    db_manager = DatabaseManager("postgresql+psycopg2://...")
    db_manager.initialize()

    # Per request
    with db_manager.session_scope() as session:
        order = session.get(Order, order_id)

    # At application shutdown
    db_manager.cleanup()
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from models.base import Base
from .exceptions import DatabaseUnavailableError


class DatabaseManager:
    """
    Manages the SQLAlchemy engine and session factory.

    Attributes:
        database_url: SQLAlchemy URL of the relational store
        is_initialized: True if the engine is active
        engine: SQLAlchemy Engine (read-only after init)
    """

    def __init__(
        self,
        database_url: str,
        echo: bool = False,
        create_tables: bool = True,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize database manager.

        Args:
            database_url: SQLAlchemy database URL
            echo: Log every SQL statement (debugging only)
            create_tables: Create missing tables on initialize()
            logger: Logger instance (optional, creates default if not provided)

        Note:
            This does NOT connect - call initialize() to do that.
        """
        self._database_url = database_url
        self._echo = echo
        self._create_tables = create_tables
        self._logger = logger or logging.getLogger("catfecito.core.database")
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None

    @property
    def database_url(self) -> str:
        """URL of the relational store."""
        return self._database_url

    @property
    def is_initialized(self) -> bool:
        """True if the engine is created and connected."""
        return self._engine is not None

    @property
    def engine(self) -> Engine:
        """
        SQLAlchemy engine.

        Raises:
            RuntimeError: If not initialized
        """
        if self._engine is None:
            raise RuntimeError("Database not initialized - call initialize() first")
        return self._engine

    def initialize(self) -> Engine:
        """
        Create the engine, verify connectivity and create missing tables.

        Returns:
            The SQLAlchemy engine

        Raises:
            DatabaseUnavailableError: If the database cannot be reached
            RuntimeError: If called when already initialized
        """
        if self._engine is not None:
            raise RuntimeError("Database already initialized")

        self._logger.info(f"Initializing database: {self._safe_url()}")

        engine_kwargs = {"echo": self._echo, "future": True}
        if self._database_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in self._database_url or self._database_url == "sqlite://":
                # One shared connection so in-memory databases survive across sessions
                engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs["pool_pre_ping"] = True
            engine_kwargs["pool_recycle"] = 3600

        engine = create_engine(self._database_url, **engine_kwargs)

        try:
            with engine.connect() as connection:
                connection.execute(text("SELECT 1"))
            if self._create_tables:
                Base.metadata.create_all(engine)
        except SQLAlchemyError as e:
            self._logger.critical(f"Cannot connect to database: {e}")
            engine.dispose()
            raise DatabaseUnavailableError(self._safe_url(), str(e))

        self._engine = engine
        self._session_factory = sessionmaker(
            bind=engine,
            autoflush=False,
            expire_on_commit=False,
            class_=Session,
        )

        self._logger.info("Database initialized successfully")
        return engine

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """
        Provide a transactional scope around a series of operations.

        Yields:
            Session bound to the engine

        Raises:
            RuntimeError: If not initialized
        """
        if self._session_factory is None:
            raise RuntimeError("Database not initialized - call initialize() first")

        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def ping(self) -> bool:
        """Return True if a trivial query succeeds (used by /health)."""
        if self._engine is None:
            return False
        try:
            with self._engine.connect() as connection:
                connection.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            self._logger.warning(f"Database ping failed: {e}")
            return False

    def cleanup(self) -> None:
        """
        Dispose of the engine and its connection pool.

        Safe to call multiple times (idempotent).
        """
        if self._engine is None:
            self._logger.debug("Database not initialized, nothing to clean up")
            return

        self._engine.dispose()
        self._engine = None
        self._session_factory = None
        self._logger.info("Database connections closed")

    def _safe_url(self) -> str:
        """Database URL with the password masked, for logging."""
        try:
            return make_url(self._database_url).render_as_string(hide_password=True)
        except ArgumentError:
            return "<unparseable database url>"

    def __enter__(self) -> "DatabaseManager":
        """Context manager entry - initialize database."""
        self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit - dispose engine."""
        self.cleanup()
