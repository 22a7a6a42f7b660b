import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from fastapi import Request
from sqlalchemy import create_engine, event, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from app.core.config import Settings
from app.core.errors import Conflict, InventoryError, StorageError


logger = logging.getLogger(__name__)

Base = declarative_base()


def _engine_options(settings: Settings) -> Dict[str, Any]:
    options: Dict[str, Any] = {"pool_pre_ping": True}
    if settings.is_sqlite:
        busy_timeout = (settings.db_lock_timeout_ms or 5000) / 1000
        options["connect_args"] = {"check_same_thread": False, "timeout": busy_timeout}
        return options

    options.update(
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout,
        pool_recycle=settings.db_pool_recycle,
    )
    connect_args: Dict[str, Any] = {"connect_timeout": settings.db_connect_timeout}
    server_options = []
    if settings.db_lock_timeout_ms:
        server_options.append(f"-c lock_timeout={settings.db_lock_timeout_ms}")
    if settings.db_statement_timeout_ms:
        server_options.append(f"-c statement_timeout={settings.db_statement_timeout_ms}")
    if server_options:
        connect_args["options"] = " ".join(server_options)
    options["connect_args"] = connect_args
    return options


def _enable_sqlite_locking(engine) -> None:
    # pysqlite defers BEGIN until the first write; take the write lock up front
    # so a read followed by an update behaves like SELECT ... FOR UPDATE.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class Database:
    """Store client: one engine and session factory per process.

    Built by the application lifespan and handed to whatever needs persistence.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.engine = create_engine(settings.database_url, **_engine_options(settings))
        if settings.is_sqlite:
            _enable_sqlite_locking(self.engine)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def session(self) -> Session:
        return self.SessionLocal()

    def create_all(self) -> None:
        # Register every model on the metadata before creating tables
        import app.models  # noqa: F401

        Base.metadata.create_all(bind=self.engine)

    def drop_all(self) -> None:
        import app.models  # noqa: F401

        Base.metadata.drop_all(bind=self.engine)

    def ping(self) -> None:
        try:
            with self.engine.connect() as connection:
                connection.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            raise StorageError("Database unreachable") from exc

    def dispose(self) -> None:
        self.engine.dispose()


def get_db(request: Request) -> Iterator[Session]:
    db = request.app.state.database.session()
    try:
        yield db
    finally:
        # Closing discards any transaction that was not committed
        db.close()


@contextmanager
def transaction(session: Session, conflict_message: Optional[str] = None) -> Iterator[Session]:
    """
    Unit of work over ``session``: commits when the block finishes, rolls back
    on any exception. Store failures surface as ``Conflict`` (integrity
    violations) or ``StorageError`` (everything else).
    """
    try:
        yield session
        session.commit()
    except InventoryError:
        session.rollback()
        raise
    except IntegrityError as exc:
        session.rollback()
        logger.info("Integrity violation: %s", exc.orig)
        raise Conflict(conflict_message or "Operation conflicts with existing data") from exc
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("Storage failure: %s", exc)
        raise StorageError("Storage operation failed, try again") from exc
    except BaseException:
        session.rollback()
        raise
