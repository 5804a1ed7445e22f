"""
stone/database.py

Database pool handle with lazy, one-time engine creation
"""

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from fastapi import Request
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)


Base = declarative_base()


class DatabasePool:
    """
    Shared handle around a SQLAlchemy engine and its connection pool.

    The engine is created on first use, exactly once, even when several
    requests hit a cold handle concurrently. Holders call `acquire()` /
    `release()`; the pool is disposed when the last holder releases it.
    """

    def __init__(self, url: str, **engine_options):
        if not url:
            raise ValueError("Database URL is not configured")
        self.url = url
        self.engine_options = engine_options
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None
        self._lock = threading.Lock()
        self._refs = 0

    @classmethod
    def from_settings(cls, settings) -> "DatabasePool":
        url = settings.DATABASE_URL
        connect_args = dict(settings.DATABASE_CONNECT_DICT)

        if url and url.startswith("sqlite"):
            # One shared connection so an in-memory database survives
            return cls(
                url,
                connect_args=connect_args,
                poolclass=StaticPool,
            )

        return cls(
            url,
            pool_size=settings.DATABASE_POOL_SIZE,
            max_overflow=settings.DATABASE_MAX_OVERFLOW,
            pool_timeout=settings.DATABASE_POOL_TIMEOUT,
            pool_recycle=settings.DATABASE_POOL_RECYCLE,
            pool_pre_ping=True,
            connect_args=connect_args,
        )

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            with self._lock:
                if self._engine is None:
                    self._engine = self._create_engine()
        return self._engine

    @property
    def initialized(self) -> bool:
        return self._engine is not None

    @property
    def refs(self) -> int:
        return self._refs

    def _create_engine(self) -> Engine:
        engine = create_engine(self.url, **self.engine_options)
        _install_pool_listeners(engine)
        self._session_factory = sessionmaker(
            bind=engine,
            autoflush=False,
            expire_on_commit=False,
        )
        logger.info(
            f"Database engine created ({engine.url.get_backend_name()})"
        )
        return engine

    def make_session(self) -> Session:
        if self._session_factory is None:
            self.engine  # also builds the session factory
        return self._session_factory()

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Transactional scope: commit on success, rollback on error"""
        session = self.make_session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def create_all(self) -> None:
        # Register models on the metadata
        from stone.users import models  # noqa

        Base.metadata.create_all(bind=self.engine)

    def ping(self) -> None:
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))

    def stats(self) -> dict:
        """Current pool statistics for monitoring"""
        if not self.initialized:
            return {"initialized": False}
        pool = self.engine.pool
        stats = {"initialized": True, "status": pool.status()}
        if hasattr(pool, "checkedout"):
            stats.update(
                size=pool.size(),
                checked_in=pool.checkedin(),
                checked_out=pool.checkedout(),
                overflow=pool.overflow(),
            )
        return stats

    def acquire(self) -> "DatabasePool":
        with self._lock:
            self._refs += 1
        return self

    def release(self) -> None:
        with self._lock:
            if self._refs == 0:
                return
            self._refs -= 1
            if self._refs == 0:
                self._dispose()

    def close(self) -> None:
        with self._lock:
            self._refs = 0
            self._dispose()

    def _dispose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database pool closed")


def _install_pool_listeners(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def receive_connect(dbapi_conn, connection_record):
        logger.debug("New database connection created")

    @event.listens_for(engine, "checkout")
    def receive_checkout(dbapi_conn, connection_record, connection_proxy):
        logger.debug(f"Pool status: {engine.pool.status()}")


_shared_pool: Optional[DatabasePool] = None
_shared_lock = threading.Lock()


def get_pool(settings=None) -> DatabasePool:
    """Process-wide pool, built once; each call takes a reference"""
    global _shared_pool
    with _shared_lock:
        if _shared_pool is None or _shared_pool.refs == 0:
            if settings is None:
                from stone.config import get_settings

                settings = get_settings()
            _shared_pool = DatabasePool.from_settings(settings)
        return _shared_pool.acquire()


def get_db_session(request: Request) -> Iterator[Session]:
    """Dependency for FastAPI endpoints"""
    pool: DatabasePool = request.app.state.db_pool
    with pool.session() as session:
        yield session
