"""
SQLAlchemy Models

Defines the database schema for note embeddings stored with pgvector.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Column,
    DateTime,
    Index,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from pgvector.sqlalchemy import Vector


# text-embedding-3-small
EMBEDDING_DIM = 1536


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class NoteEmbedding(Base):
    """
    One embedding vector per note (or per manually ingested document).

    `note_id` is nullable because manual ingestion may not reference a note.
    """
    __tablename__ = "note_embedding"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    note_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    updated_at: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    indexed_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
    )

    embedding = Column(Vector(EMBEDDING_DIM), nullable=False)

    __table_args__ = (
        Index("idx_note_embedding_user", "user_id"),
        Index("idx_note_embedding_note", "note_id"),
    )
