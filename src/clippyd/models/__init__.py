"""
clippyd.models
Persistence and domain models for the clipboard daemon.
Contents:
- Entity Models:
    - HistoryEntryEntity: SQLAlchemy row of the encrypted history table.
- Domain Models:
    - HistoryEntry: Pydantic view of a history row.
"""

from .history import HistoryEntry, HistoryEntryEntity  # noqa: F401


__entities__ = ["HistoryEntryEntity"]
__models__ = ["HistoryEntry"]
__all__ = [*__entities__, *__models__]
