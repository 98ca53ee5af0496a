# region Docstring
"""
clippyd.models.history
Persistence and domain models for the encrypted clipboard history.
Overview:
- Provides the SQLAlchemy entity persisting one encrypted history entry per distinct
    clipboard content.
- Provides the Pydantic model mirroring the persisted entity for the rest of the
    daemon (store results, state assembly).
Contents:
- SQLAlchemy entities:
    - HistoryEntryEntity:
        Stores the ciphertext and nonce of a captured text, the SHA-256 hash of the
        plaintext used as dedup key, the plaintext length, and creation/access
        timestamps. The .model property converts to HistoryEntry.
- Pydantic models:
    - HistoryEntry:
        A single history entry as seen by the daemon. Timestamps are UTC.
Design notes:
- content_hash is unique: copying content already in history touches the existing
    row instead of inserting a second one.
- content_length is stored in the clear so previews and size displays do not
    require decryption.
- Timestamps are written by the store (UTC, naive in SQLite) rather than by the
    database so ordering by accessed_at has sub-second resolution.
"""
# endregion
# region Imports
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import DateTime, Integer, LargeBinary, String
from sqlalchemy.orm import Mapped, mapped_column

from clippyd.database import Base


# endregion
# region SQLAlchemy Model
class HistoryEntryEntity(Base):
    """
    Model representing an encrypted clipboard history entry.
    Attributes:
        id (int): Primary key.
        content_hash (str): SHA-256 hex digest of the plaintext, unique.
        ciphertext (bytes): AES-GCM ciphertext including the authentication tag.
        nonce (bytes): Per-encryption random nonce.
        content_type (str): Type of the content; always "text" for now.
        content_length (int): Plaintext length in characters.
        created_at (datetime): First time the content was captured.
        accessed_at (datetime): Last capture or restore of the content.
    """

    __tablename__ = "entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    content_hash: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    ciphertext: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    nonce: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    content_type: Mapped[str] = mapped_column(
        String(50), nullable=False, default="text"
    )
    content_length: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    accessed_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, index=True
    )

    def __repr__(self) -> str:
        return f"<HistoryEntry(id={self.id}, content_type='{self.content_type}', accessed_at={self.accessed_at})>"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, HistoryEntryEntity):
            return NotImplemented
        return self.id == other.id and self.content_hash == other.content_hash

    def __hash__(self) -> int:
        return hash((self.id, self.content_hash))

    @property
    def model(self) -> "HistoryEntry":
        return HistoryEntry(
            id=self.id,
            content_hash=self.content_hash,
            ciphertext=self.ciphertext,
            nonce=self.nonce,
            content_type=self.content_type,
            content_length=self.content_length,
            created_at=self.created_at,
            accessed_at=self.accessed_at,
        )


# endregion
# region Pydantic Model
class HistoryEntry(BaseModel):
    id: int = Field(..., description="The unique ID of the history entry")
    content_hash: str = Field(..., description="SHA-256 hash of the plaintext")
    ciphertext: bytes = Field(..., description="Encrypted content")
    nonce: bytes = Field(..., description="Nonce used to encrypt the content")
    content_type: str = Field("text", description="The type of content")
    content_length: int = Field(..., description="Plaintext length in characters")
    created_at: datetime = Field(..., description="First capture (UTC)")
    accessed_at: datetime = Field(..., description="Last capture or restore (UTC)")

    model_config = ConfigDict(from_attributes=True)

    @field_validator("created_at", "accessed_at", mode="after")
    def as_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)


# endregion

__all__ = ["HistoryEntryEntity", "HistoryEntry"]
