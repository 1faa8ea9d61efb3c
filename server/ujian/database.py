"""
Storage backend bootstrap.

A single StorageBackend is created at startup and handed to every gateway.
It owns the SQLAlchemy engine when the durable database is reachable
(remote mode) and falls back to local JSON storage otherwise.
"""
import enum
import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from ujian.errors import Conflict, Unavailable

Base = declarative_base()

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"


class StorageMode(str, enum.Enum):
    REMOTE = "remote"
    LOCAL = "local"


def _create_engine(url: str) -> Engine:
    kwargs = {"pool_pre_ping": True}
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
    return create_engine(url, **kwargs)


def _is_unique_violation(error: IntegrityError) -> bool:
    code = getattr(error.orig, "pgcode", None) or getattr(error.orig, "sqlstate", None)
    if code:
        return code == UNIQUE_VIOLATION
    message = str(error.orig).lower()
    return "unique" in message or "duplicate" in message


class StorageBackend:
    """Holds the storage mode for the whole process."""

    def __init__(self, database_url: str = "", local_data_dir: str = "./database"):
        self.database_url = database_url
        self.local_data_dir = local_data_dir
        self.mode = StorageMode.LOCAL
        self.bootstrapped = False
        self.engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None

    @property
    def is_remote(self) -> bool:
        return self.mode == StorageMode.REMOTE

    def connect(self) -> StorageMode:
        """Try the durable database; any failure leaves the process in local mode."""
        self.bootstrapped = True
        url = (self.database_url or "").strip()
        if not url:
            logger.info("📁 No database URL found. Using LOCAL JSON storage mode.")
            self._use_local()
            return self.mode

        engine = None
        try:
            logger.info("🔌 Connecting to database...")
            engine = _create_engine(url)
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))

            # Register models on Base before creating tables
            from ujian import models  # noqa: F401
            Base.metadata.create_all(engine)
        except (SQLAlchemyError, ImportError) as e:
            logger.warning("⚠️ Database connection failed: %s", e)
            if engine is not None:
                engine.dispose()
            logger.info("📁 Falling back to LOCAL JSON storage mode.")
            self._use_local()
            return self.mode

        self._release_engine()
        event.listen(engine, "handle_error", self._on_engine_error)
        self.engine = engine
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)
        self.mode = StorageMode.REMOTE
        logger.info("✅ Database connected: %s", engine.url.render_as_string(hide_password=True))
        return self.mode

    def reconnect(self, database_url: str) -> StorageMode:
        self.database_url = database_url
        return self.connect()

    def mark_disconnected(self, reason: object = None) -> None:
        if self.mode == StorageMode.LOCAL:
            return
        logger.warning("⚠️ Database disconnected (%s). Falling back to local storage.", reason)
        self._use_local()

    def close(self) -> None:
        self._use_local()

    def _on_engine_error(self, context) -> None:
        if context.is_disconnect:
            self.mark_disconnected(context.original_exception)

    def _use_local(self) -> None:
        self.mode = StorageMode.LOCAL
        self._session_factory = None
        self._release_engine()

    def _release_engine(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
            self.engine = None

    @contextmanager
    def session(self, purpose: str = "This operation") -> Iterator[Session]:
        """Transactional session; commits on success, rolls back on any error."""
        factory = self._session_factory
        if not self.is_remote or factory is None:
            raise Unavailable(f"{purpose} requires a durable database connection")

        db = factory()
        try:
            yield db
            db.commit()
        except IntegrityError as e:
            db.rollback()
            if _is_unique_violation(e):
                raise Conflict("Record already exists") from e
            raise
        except DBAPIError as e:
            db.rollback()
            if e.connection_invalidated:
                self.mark_disconnected(e.orig)
                raise Unavailable("Database connection lost. Please try again later.") from e
            raise
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
