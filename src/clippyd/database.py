"""
clippyd.database

Shared SQLAlchemy declarative base and session management for the history store.

Overview:
- Provides a single `declarative_base()` instance (`Base`) inherited by the ORM
    entities of the daemon.
- Includes a utility class for generating SQLAlchemy sessions bound to the SQLite
    history database.

Contents:
- Base:
    Singleton `declarative_base` instance. HistoryEntryEntity inherits from it.

- DatabaseSessionGenerator:
    Utility class to generate SQLAlchemy sessions bound to a specific engine.
    - __init__(database_url: str):
        Creates the engine and installs the SQLite connection pragmas.
    - get_session() -> Session:
        Creates a new synchronous SQLAlchemy session.
    - init_db():
        Creates all tables defined in the ORM models.
    - dispose():
        Releases every pooled connection.

Design Notes:
- Every new SQLite connection switches to WAL journaling so readers are not
    blocked by the single writer.
- `check_same_thread` is disabled because clipboard reads run in worker threads
    and sessions are opened from whichever thread the daemon happens to be on;
    writes are serialized by the ContentStore.
"""

from sqlalchemy import engine, event
from sqlalchemy.orm import declarative_base, sessionmaker


Base = declarative_base()
"""Singleton `declarative_base` instance for ORM models."""


def _set_sqlite_pragmas(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode = WAL")
    cursor.execute("PRAGMA foreign_keys = ON")
    cursor.close()


class DatabaseSessionGenerator:
    """
    Utility class to generate SQLAlchemy sessions bound to a specific engine.

    Attributes:
        engine (sqlalchemy.engine.Engine): The SQLAlchemy engine to bind sessions to.
    """

    def __init__(self, database_url: str):
        self.engine = engine.create_engine(
            database_url,
            connect_args={"check_same_thread": False},
        )
        event.listen(self.engine, "connect", _set_sqlite_pragmas)
        self.__session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)

    def get_session(self):
        """
        Creates a new SQLAlchemy session bound to the configured engine.

        Returns:
            sqlalchemy.orm.Session: A new session instance.
        """
        return self.__session_factory()

    def init_db(self):
        """
        Initializes the database by creating all tables defined in the ORM models.
        """
        # Import so the entity is registered on Base.metadata.
        from clippyd.models import history  # noqa: F401

        Base.metadata.create_all(self.engine)

    def dispose(self):
        """Close every pooled connection."""
        self.engine.dispose()
