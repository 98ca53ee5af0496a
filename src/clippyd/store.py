# region Docstring
"""
clippyd.store
Content-addressed, encrypted clipboard history table.
Overview:
- ContentStore wraps the SQLite history database behind the operations the daemon
    needs: dedup-aware insert, retrieval, deletion and two independent retention
    policies (by age and by count).
Contents:
- Exceptions:
    - ContentStoreError: Raised when the database cannot be opened or written.
- Services:
    - ContentStore:
        - open() / close()
        - insert_or_touch(content_hash, ciphertext, nonce, content_type, content_length) -> InsertResult
        - get_recent(limit) -> list[HistoryEntry]
        - get_by_id(entry_id) -> HistoryEntry | None
        - touch(entry_id) -> bool
        - delete_entry(entry_id) -> bool
        - delete_all() -> int
        - prune_by_count(max_entries) -> int
        - prune_by_age(days) -> int
        - get_count() -> int
        - check_integrity() -> bool
Design Notes:
- Writes take an internal lock and run inside one transaction, so the hash lookup
    of insert_or_touch and the insert or touch that follows cannot interleave with
    another write. Reads open their own session and never take the lock.
- "Most recently accessed" orders by accessed_at, then id, both descending.
- Age-based pruning looks at created_at only: it bounds how long a copied secret
    stays on disk, however often it is reused.
"""
# endregion
# region Imports
import threading
from datetime import datetime, timedelta, timezone
from logging import Logger as T_Logger
from typing import Callable, NamedTuple, Optional

from sqlalchemy import delete, func, select, text, update
from sqlalchemy.exc import SQLAlchemyError

from clippyd.database import DatabaseSessionGenerator as DBSession
from clippyd.models import HistoryEntry, HistoryEntryEntity


class ContentStoreError(Exception):
    """Custom exception for content store errors."""

    pass


class InsertResult(NamedTuple):
    id: int
    is_new: bool


def utc_now() -> datetime:
    """Current UTC time as the naive datetime stored in SQLite."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# endregion
# region ContentStore


class ContentStore:
    """
    Encrypted clipboard history persisted in SQLite.

    Attributes:
        __db_session (DBSession): Session generator bound to the history database.
        __logger (Logger): The logger instance.
        __clock (Callable[[], datetime]): Source of naive UTC timestamps.
        __write_lock (threading.Lock): Serializes writes.
    """

    __db_session: DBSession
    __logger: T_Logger
    __clock: Callable[[], datetime]
    __write_lock: threading.Lock

    def __init__(
        self,
        db_session: DBSession,
        logger: T_Logger,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.__db_session = db_session
        self.__logger = logger.getChild(self.__class__.__name__)
        self.__clock = clock
        self.__write_lock = threading.Lock()

    def open(self) -> None:
        """
        Create the history table if needed.

        Raises:
            ContentStoreError: If the database cannot be opened.
        """
        try:
            self.__db_session.init_db()
        except SQLAlchemyError as e:
            self.__logger.exception("Failed to open history database. %s", str(e))
            raise ContentStoreError(f"Failed to open history database: {e}") from e

    def close(self) -> None:
        self.__db_session.dispose()

    def insert_or_touch(
        self,
        content_hash: str,
        ciphertext: bytes,
        nonce: bytes,
        content_type: str,
        content_length: int,
    ) -> InsertResult:
        """
        Insert a new entry, or advance accessed_at of the entry with the same hash.

        Returns:
            InsertResult: The entry id and whether a row was created.
        """
        now = self.__clock()
        with self.__write_lock, self.__db_session.get_session() as session:
            with session.begin():
                existing_id = session.scalar(
                    select(HistoryEntryEntity.id).where(
                        HistoryEntryEntity.content_hash == content_hash
                    )
                )
                if existing_id is not None:
                    session.execute(
                        update(HistoryEntryEntity)
                        .where(HistoryEntryEntity.id == existing_id)
                        .values(accessed_at=now)
                    )
                    self.__logger.debug("Touched entry %s.", existing_id)
                    return InsertResult(id=existing_id, is_new=False)

                entity = HistoryEntryEntity(
                    content_hash=content_hash,
                    ciphertext=ciphertext,
                    nonce=nonce,
                    content_type=content_type,
                    content_length=content_length,
                    created_at=now,
                    accessed_at=now,
                )
                session.add(entity)
                session.flush()
                self.__logger.debug("Inserted entry %s.", entity.id)
                return InsertResult(id=entity.id, is_new=True)

    def get_recent(self, limit: int) -> list[HistoryEntry]:
        """Most recently accessed entries first."""
        if limit <= 0:
            return []
        with self.__db_session.get_session() as session:
            rows = session.scalars(
                select(HistoryEntryEntity)
                .order_by(
                    HistoryEntryEntity.accessed_at.desc(),
                    HistoryEntryEntity.id.desc(),
                )
                .limit(limit)
            ).all()
            return [row.model for row in rows]

    def get_by_id(self, entry_id: int) -> Optional[HistoryEntry]:
        with self.__db_session.get_session() as session:
            entity = session.get(HistoryEntryEntity, entry_id)
            return entity.model if entity is not None else None

    def touch(self, entry_id: int) -> bool:
        """Advance accessed_at of an entry; False if it does not exist."""
        with self.__write_lock, self.__db_session.get_session() as session:
            with session.begin():
                result = session.execute(
                    update(HistoryEntryEntity)
                    .where(HistoryEntryEntity.id == entry_id)
                    .values(accessed_at=self.__clock())
                )
                return result.rowcount > 0

    def delete_entry(self, entry_id: int) -> bool:
        with self.__write_lock, self.__db_session.get_session() as session:
            with session.begin():
                result = session.execute(
                    delete(HistoryEntryEntity).where(HistoryEntryEntity.id == entry_id)
                )
                return result.rowcount > 0

    def delete_all(self) -> int:
        with self.__write_lock, self.__db_session.get_session() as session:
            with session.begin():
                result = session.execute(delete(HistoryEntryEntity))
                self.__logger.info("Deleted %d entries.", result.rowcount)
                return result.rowcount

    def prune_by_count(self, max_entries: int) -> int:
        """Delete all but the `max_entries` most recently accessed entries."""
        keep = (
            select(HistoryEntryEntity.id)
            .order_by(
                HistoryEntryEntity.accessed_at.desc(),
                HistoryEntryEntity.id.desc(),
            )
            .limit(max(max_entries, 0))
        )
        with self.__write_lock, self.__db_session.get_session() as session:
            with session.begin():
                result = session.execute(
                    delete(HistoryEntryEntity)
                    .where(HistoryEntryEntity.id.not_in(keep))
                    .execution_options(synchronize_session=False)
                )
                return result.rowcount

    def prune_by_age(self, days: int) -> int:
        """Delete entries created more than `days` days ago."""
        cutoff = self.__clock() - timedelta(days=days)
        with self.__write_lock, self.__db_session.get_session() as session:
            with session.begin():
                result = session.execute(
                    delete(HistoryEntryEntity)
                    .where(HistoryEntryEntity.created_at < cutoff)
                    .execution_options(synchronize_session=False)
                )
                return result.rowcount

    def get_count(self) -> int:
        with self.__db_session.get_session() as session:
            return session.scalar(select(func.count(HistoryEntryEntity.id))) or 0

    def check_integrity(self) -> bool:
        """Run SQLite's integrity check; any database error counts as a failure."""
        try:
            with self.__db_session.get_session() as session:
                return session.execute(text("PRAGMA integrity_check")).scalar() == "ok"
        except SQLAlchemyError as e:
            self.__logger.warning("Integrity check failed to run: %s", e)
            return False


# endregion

__all__ = ["ContentStore", "ContentStoreError", "InsertResult", "utc_now"]
