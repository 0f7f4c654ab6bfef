"""
Database Package

Provides SQLAlchemy async session management, the embedding table and the
pgvector-backed VectorIndex.
"""

from .session import create_engine, create_session_factory, init_schema
from .models import Base, NoteEmbedding
from .vector_store import PgVectorIndex

__all__ = [
    "create_engine",
    "create_session_factory",
    "init_schema",
    "Base",
    "NoteEmbedding",
    "PgVectorIndex",
]
